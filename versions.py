import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from errors import ResolutionError
from forge import Forge, ForgeVersion

log = logging.getLogger(__name__)

VERSION_MANIFEST_URL = 'https://launchermeta.mojang.com/mc/game/version_manifest.json'

LATEST = 'latest'
LATEST_SNAPSHOT = 'latest-snapshot'
RECOMMEND = 'recommend'


@dataclass(frozen=True)
class VersionRef:
    id: str
    url: str
    type: str = 'release'


@dataclass
class VersionIndex:
    latest_release: str
    latest_snapshot: str
    versions: List[VersionRef] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'VersionIndex':
        latest = data.get('latest') or {}
        return cls(
            latest_release=latest.get('release', ''),
            latest_snapshot=latest.get('snapshot', ''),
            versions=[
                VersionRef(id=entry['id'], url=entry['url'], type=entry.get('type', 'release'))
                for entry in data.get('versions', [])
                if 'id' in entry and 'url' in entry
            ],
        )

    def find(self, version_id: str) -> Optional[VersionRef]:
        for version in self.versions:
            if version.id == version_id:
                return version
        return None


def resolve_game_version(index: VersionIndex, selector: str) -> VersionRef:
    """Turns 'latest', 'latest-snapshot' or an explicit id into an index entry."""
    version_id = selector
    if selector == LATEST:
        version_id = index.latest_release
    elif selector == LATEST_SNAPSHOT:
        version_id = index.latest_snapshot

    version = index.find(version_id)
    if version is None:
        raise ResolutionError(f"Can't find Minecraft with version '{version_id}'.")
    return version


def check_loader_compatible(index: VersionIndex, game_selector: str) -> None:
    """Forge is never built for snapshots."""
    if game_selector == LATEST_SNAPSHOT:
        raise ResolutionError("Can't use Forge on snapshot releases of Minecraft")
    version = index.find(game_selector)
    if version is not None and version.type == 'snapshot':
        raise ResolutionError("Can't use Forge on snapshot releases of Minecraft")


async def resolve_forge_version(
    index: VersionIndex,
    forge: Forge,
    game_selector: str,
    forge_selector: str,
) -> ForgeVersion:
    """
    Resolves the Forge selector ('recommend', 'latest' or an explicit version).

    The returned ForgeVersion carries the Minecraft version the build targets;
    callers must use it in place of the requested game version. An explicit
    Forge version targets the resolved game selector.
    """
    check_loader_compatible(index, game_selector)

    if forge_selector == RECOMMEND and game_selector == LATEST:
        version = await forge.get_recommended_version()
        if version is None:
            raise ResolutionError("Can't find recommend version for forge")
        return version

    if forge_selector in (RECOMMEND, LATEST):
        game_version = index.latest_release if game_selector == LATEST else game_selector
        if forge_selector == RECOMMEND:
            version = await forge.get_recommended_for_version(game_version)
        else:
            version = await forge.get_latest_for_version(game_version)
        if version is None:
            raise ResolutionError(f"Can't find {forge_selector} for Minecraft version {game_version}")
        return version

    game_version = resolve_game_version(index, game_selector).id
    return ForgeVersion(minecraft_version=game_version, forge_version=forge_selector)
