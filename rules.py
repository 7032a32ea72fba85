import logging
import platform
import re
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

log = logging.getLogger(__name__)


# --- Platform Detection ---

OS_NAMES = {'Windows': 'windows', 'Darwin': 'osx', 'Linux': 'linux'}
ARCH_NAMES = {
    'amd64': 'x64', 'x86_64': 'x64',
    'i386': 'x86', 'i686': 'x86', 'x86': 'x86',
    'arm64': 'arm64', 'aarch64': 'arm64',
}


def get_os_name() -> str:
    """Manifest name of the host OS; unknown systems keep their lowercased name."""
    system = platform.system()
    return OS_NAMES.get(system, system.lower())


def get_arch_name() -> str:
    machine = platform.machine().lower()
    if machine in ARCH_NAMES:
        return ARCH_NAMES[machine]
    if machine.startswith('arm') and '64' not in machine:
        return 'arm32'
    log.warning(f"Unknown machine type '{platform.machine()}', assuming x64")
    return 'x64'


@dataclass(frozen=True)
class Platform:
    """Describes the machine a rule list is evaluated against."""
    name: str
    arch: str
    release: str = ''
    features: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def current(cls, features: Iterable[str] = ()) -> 'Platform':
        return cls(
            name=get_os_name(),
            arch=get_arch_name(),
            release=platform.release(),
            features=frozenset(features),
        )

    @property
    def arch_bits(self) -> str:
        """Value substituted for ${arch} in legacy native classifiers."""
        if self.arch == 'x64': return '64'
        if self.arch == 'x86': return '32'
        return self.arch


# --- Rule Processing ---

@dataclass(frozen=True)
class OsConstraint:
    name: Optional[str] = None
    arch: Optional[str] = None
    version: Optional[str] = None

    def matches(self, target: Platform) -> bool:
        if self.arch and self.arch != target.arch:
            return False
        if self.name and self.name != target.name:
            return False
        if self.version and not re.search(self.version, target.release, re.IGNORECASE):
            return False
        return True


@dataclass(frozen=True)
class Rule:
    """
    A single allow/disallow clause from a manifest.

    The base verdict is ``action == 'allow'``. When the rule is constrained to
    an OS (or to launcher features) that the platform does not match, the
    verdict is inverted.
    """
    action: str = 'allow'
    os: Optional[OsConstraint] = None
    features: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Rule':
        os_data = data.get('os')
        os_constraint = None
        if isinstance(os_data, dict):
            os_constraint = OsConstraint(
                name=os_data.get('name'),
                arch=os_data.get('arch'),
                version=os_data.get('version'),
            )
        features = data.get('features')
        return cls(
            action=data.get('action', 'allow'),
            os=os_constraint,
            features=dict(features) if isinstance(features, dict) else {},
        )

    def _features_match(self, target: Platform) -> bool:
        for feature, expected in self.features.items():
            if bool(expected) != (feature in target.features):
                return False
        return True

    def permits(self, target: Platform) -> bool:
        """Returns True if this rule allows inclusion on ``target``."""
        verdict = self.action == 'allow'
        if self.os is not None and not self.os.matches(target):
            return not verdict
        if self.features and not self._features_match(target):
            return not verdict
        return verdict


def resolve_rules(rules: Optional[Iterable[Any]], target: Optional[Platform] = None) -> bool:
    """
    Checks if an item (library/argument) should be included based on its rules array.
    An empty or missing list always includes; any rule that does not permit vetoes.
    """
    if not rules:
        return True

    target = target or Platform.current()
    for raw_rule in rules:
        rule = raw_rule if isinstance(raw_rule, Rule) else Rule.from_dict(raw_rule)
        if not rule.permits(target):
            return False
    return True


def resolve_argument_list(entries: Optional[Iterable[Any]], target: Optional[Platform] = None) -> List[str]:
    """Flattens a structured argument list, dropping entries whose rules do not apply."""
    target = target or Platform.current()
    resolved: List[str] = []
    for entry in entries or []:
        if isinstance(entry, str):
            resolved.append(entry)
            continue
        if not isinstance(entry, dict):
            log.warning(f"Unsupported argument format: {entry}")
            continue
        if not resolve_rules(entry.get('rules'), target):
            continue
        value = entry.get('value')
        if isinstance(value, list):
            resolved.extend(str(item) for item in value)
        elif value is not None:
            resolved.append(str(value))
    return resolved
