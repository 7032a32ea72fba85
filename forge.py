import asyncio
import json
import logging
import pathlib
import zipfile
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from downloads import Downloader
from errors import FetchError

log = logging.getLogger(__name__)

FORGE_MAVEN_URL = 'https://files.minecraftforge.net/maven'
LIBRARIES_URL = 'https://libraries.minecraft.net'


@dataclass(frozen=True)
class ForgeVersion:
    minecraft_version: str
    forge_version: str

    @property
    def full(self) -> str:
        return f"{self.minecraft_version}-{self.forge_version}"


@dataclass(frozen=True)
class ForgeLibrary:
    url: str
    relative_path: str  # posix path below the libraries directory


def maven_path(coordinate: str) -> str:
    """'group.id:name:version' -> 'group/id/name/version/name-version.jar'."""
    group, name, version = coordinate.split(':')[:3]
    return f"{group.replace('.', '/')}/{name}/{version}/{name}-{version}.jar"


def forge_libraries(manifest: Dict[str, Any], mode: str, libraries_url: str = LIBRARIES_URL) -> List[ForgeLibrary]:
    """Libraries of a Forge version.json flagged as required for ``mode``."""
    required_key = 'clientreq' if mode == 'client' else 'serverreq'
    result = []
    for library in manifest.get('libraries', []):
        if required_key not in library:
            continue
        relative_path = maven_path(library['name'])
        base_url = (library.get('url') or libraries_url).rstrip('/')
        result.append(ForgeLibrary(url=f"{base_url}/{relative_path}", relative_path=relative_path))
    return result


# Sync zip read (run in executor)
def _read_version_json_sync(jar_path: pathlib.Path) -> Dict[str, Any]:
    with zipfile.ZipFile(jar_path, 'r') as zip_ref:
        try:
            data = zip_ref.read('version.json')
        except KeyError:
            raise FetchError(f"{jar_path.name} does not contain version.json")
    return json.loads(data.decode('utf-8'))


class Forge:
    """Client for the Forge maven: promotions, universal jars and their manifests."""

    def __init__(self, downloader: Downloader, base_url: str = FORGE_MAVEN_URL) -> None:
        self.downloader = downloader
        self.base_url = base_url.rstrip('/')

    async def get_promotions(self) -> Dict[str, Any]:
        return await self.downloader.get_json(f"{self.base_url}/net/minecraftforge/forge/promotions.json")

    async def get_promotion(self, key: str) -> Optional[ForgeVersion]:
        promotions = await self.get_promotions()
        promo = (promotions.get('promos') or {}).get(key)
        if promo is None:
            log.debug(f"No Forge promotion named '{key}'")
            return None
        return ForgeVersion(minecraft_version=promo['mcversion'], forge_version=promo['version'])

    async def get_recommended_version(self) -> Optional[ForgeVersion]:
        return await self.get_promotion('recommended')

    async def get_recommended_for_version(self, minecraft_version: str) -> Optional[ForgeVersion]:
        return await self.get_promotion(f"{minecraft_version}-recommended")

    async def get_latest_for_version(self, minecraft_version: str) -> Optional[ForgeVersion]:
        return await self.get_promotion(f"{minecraft_version}-latest")

    def get_download_url(self, version: ForgeVersion) -> str:
        return f"{self.base_url}/net/minecraftforge/forge/{version.full}/forge-{version.full}-universal.jar"

    async def read_manifest(self, jar_path: pathlib.Path) -> Dict[str, Any]:
        """Reads version.json out of a downloaded universal jar."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, _read_version_json_sync, jar_path)
