import logging
import re
from typing import Any, Mapping

log = logging.getLogger(__name__)

TEMPLATE_PATTERN = re.compile(r'\$\{([^}]+)\}')


def replace_text(value: Any, replacements: Mapping[str, str]) -> Any:
    """
    Patches literal markers such as ':workspace:' in a settings value.

    Non-string values (numbers, flags) pass through untouched.
    """
    if not isinstance(value, str):
        return value

    for marker, replacement in replacements.items():
        if not isinstance(replacement, str):
            log.warning(f"Ignoring non-string replacement for '{marker}'")
            continue
        value = value.replace(marker, replacement)
    return value


def render_template(value: str, variables: Mapping[str, Any]) -> str:
    """Substitutes every ${name} placeholder; unknown or empty names render as ''."""
    def substitute(match: 're.Match[str]') -> str:
        replacement = variables.get(match.group(1))
        return str(replacement) if replacement else ''

    return TEMPLATE_PATTERN.sub(substitute, value)
