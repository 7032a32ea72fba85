import asyncio
import logging
import pathlib
import zipfile
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import aiofiles.os

from config import CLIENT, MODES, SERVER, ConfigStore, Profile, Settings
from downloads import Downloader, write_json
from errors import ResolutionError
from forge import Forge, ForgeLibrary, ForgeVersion, forge_libraries
from pipeline import Listener, ParallelMap, Pipeline, Step
from rules import Platform, resolve_rules
from versions import VersionIndex, resolve_forge_version, resolve_game_version

log = logging.getLogger(__name__)

MINECRAFT_JAR = 'minecraft.jar'
FORGE_JAR = 'forge.jar'
MANIFEST_FILENAME = 'manifest.json'
CLIENT_PROFILE_FILENAME = 'emo.client.json'
PROFILE_SUMMARY_FILENAME = 'emo.json'
FORGE_LIBRARY_DIR = 'libraries/net/minecraftforge/forge'


@dataclass
class InstallRequest:
    name: str
    path: str
    minecraft_version: str = 'latest'
    forge_version: Optional[str] = None
    mode: str = CLIENT


@dataclass(frozen=True)
class Artifact:
    url: str
    path: pathlib.Path


@dataclass(frozen=True)
class NativeArchive:
    path: pathlib.Path
    exclude: Sequence[str] = ()


@dataclass
class InstallState:
    """Values handed from one install step to the next."""
    version_index: Optional[VersionIndex] = None
    game_version: Optional[str] = None
    forge_version: Optional[ForgeVersion] = None
    manifest: Optional[Dict[str, Any]] = None
    libraries: Optional[List[Artifact]] = None
    natives: Optional[List[NativeArchive]] = None
    asset_index: Optional[Dict[str, Any]] = None
    forge_manifest: Optional[Dict[str, Any]] = None
    forge_downloads: Optional[List[ForgeLibrary]] = None
    forge_libraries: Optional[List[str]] = None
    profile: Optional[Profile] = None


# Sync zip extraction (run in executor)
def _extract_native_sync(archive: NativeArchive, extract_to_dir: pathlib.Path) -> None:
    with zipfile.ZipFile(archive.path, 'r') as zip_ref:
        for member in zip_ref.infolist():
            if member.is_dir():
                continue
            if any(member.filename.startswith(prefix) for prefix in archive.exclude):
                continue
            zip_ref.extract(member, extract_to_dir)


class InstallJob:
    """One install run: the steps for a request and the actions behind them."""

    def __init__(self, installer: 'Installer', request: InstallRequest) -> None:
        self.installer = installer
        self.request = request
        self.location = pathlib.Path(request.path).resolve()

    @property
    def downloader(self) -> Downloader:
        return self.installer.downloader

    @property
    def settings(self) -> Settings:
        return self.installer.settings

    @property
    def with_forge(self) -> bool:
        return bool(self.request.forge_version)

    def steps(self) -> List[Step]:
        is_client = self.request.mode == CLIENT
        steps = [
            Step('Fetching Minecraft version list', self.fetch_version_index, produces=('version_index',)),
        ]
        if self.with_forge:
            steps.append(Step('Resolving Forge version', self.resolve_forge,
                              requires=('version_index',), produces=('forge_version', 'game_version')))
        steps.append(Step('Fetching Minecraft version manifest', self.fetch_manifest,
                          requires=('version_index',), produces=('manifest', 'game_version')))
        if is_client:
            steps.extend([
                Step('Planning Minecraft libraries', self.plan_libraries,
                     requires=('manifest',), produces=('libraries', 'natives')),
                Step('Fetching Minecraft libraries',
                     parallel=ParallelMap(items=lambda state: state.libraries, action=self.fetch_artifact),
                     requires=('libraries',)),
                Step('Fetching Minecraft asset index', self.fetch_asset_index,
                     requires=('manifest',), produces=('asset_index',)),
                Step('Fetching Minecraft assets',
                     parallel=ParallelMap(items=self.asset_artifacts, action=self.fetch_artifact,
                                          limit=self.settings.asset_concurrency),
                     requires=('asset_index',)),
                Step('Extracting natives',
                     parallel=ParallelMap(items=lambda state: state.natives, action=self.extract_native),
                     requires=('natives',)),
            ])
        steps.append(Step('Fetching Minecraft executable', self.fetch_executable,
                          requires=('manifest', 'game_version')))
        if self.with_forge:
            steps.extend([
                Step('Fetching Forge', self.fetch_forge, requires=('forge_version',)),
                Step('Extracting Forge manifest', self.read_forge_manifest, produces=('forge_manifest',)),
                Step('Planning Forge libraries', self.plan_forge_libraries,
                     requires=('forge_manifest',), produces=('forge_downloads', 'forge_libraries')),
                Step('Fetching Forge libraries',
                     parallel=ParallelMap(items=self.forge_artifacts, action=self.fetch_artifact),
                     requires=('forge_downloads',)),
            ])
            if is_client:
                steps.append(Step('Installing Forge into libraries', self.relocate_forge,
                                  requires=('forge_version', 'forge_libraries')))
        if is_client:
            steps.append(Step('Creating emo client profile', self.write_client_profile,
                              requires=('manifest',)))
        steps.append(Step('Saving emo profile', self.save_profile,
                          requires=('game_version',), produces=('profile',)))
        return steps

    # --- Resolution ---

    async def fetch_version_index(self, state: InstallState) -> None:
        data = await self.downloader.get_json(self.settings.version_manifest_url)
        state.version_index = VersionIndex.from_dict(data)

    async def resolve_forge(self, state: InstallState) -> None:
        version = await resolve_forge_version(
            state.version_index,
            self.installer.forge,
            self.request.minecraft_version,
            self.request.forge_version,
        )
        log.info(f" > Selected Forge {version.forge_version} for Minecraft {version.minecraft_version}")
        state.forge_version = version
        state.game_version = version.minecraft_version

    async def fetch_manifest(self, state: InstallState) -> None:
        version = resolve_game_version(state.version_index, state.game_version or self.request.minecraft_version)
        log.info(f" > Selected version: {version.id}")
        state.game_version = version.id
        state.manifest = await self.downloader.get_json(version.url)

    # --- Client artifacts ---

    async def plan_libraries(self, state: InstallState) -> None:
        platform = self.installer.platform
        libraries_dir = self.location / 'libraries'
        state.libraries = []
        state.natives = []

        for lib in state.manifest.get('libraries', []):
            if not resolve_rules(lib.get('rules'), platform):
                continue

            downloads = lib.get('downloads') or {}
            artifact = downloads.get('artifact')
            if artifact and artifact.get('path') and artifact.get('url'):
                state.libraries.append(Artifact(artifact['url'], libraries_dir / artifact['path']))

            classifier = (lib.get('natives') or {}).get(platform.name)
            if not classifier:
                continue
            classifier = classifier.replace('${arch}', platform.arch_bits)
            native_info = (downloads.get('classifiers') or {}).get(classifier)
            if not native_info:
                log.warning(f"Library {lib.get('name', 'N/A')} has no '{classifier}' classifier, skipping natives")
                continue
            native_path = libraries_dir / native_info['path']
            state.libraries.append(Artifact(native_info['url'], native_path))
            state.natives.append(NativeArchive(
                path=native_path,
                exclude=tuple((lib.get('extract') or {}).get('exclude', [])),
            ))

        log.info(f"{len(state.libraries)} library files, {len(state.natives)} native archives")

    async def fetch_artifact(self, artifact: Artifact, state: InstallState) -> None:
        await self.downloader.download(artifact.url, artifact.path)

    async def fetch_asset_index(self, state: InstallState) -> None:
        asset_index_info = state.manifest['assetIndex']
        state.asset_index = await self.downloader.get_json(asset_index_info['url'])
        index_path = self.location / 'assets' / 'indexes' / f"{asset_index_info['id']}.json"
        await write_json(index_path, state.asset_index)

    def asset_artifacts(self, state: InstallState) -> List[Artifact]:
        objects_dir = self.location / 'assets' / 'objects'
        base_url = self.settings.assets_url.rstrip('/')
        artifacts: Dict[str, Artifact] = {}
        for asset_key, asset in (state.asset_index.get('objects') or {}).items():
            asset_hash = asset.get('hash')
            if not asset_hash:
                log.warning(f"Asset '{asset_key}' is missing hash in index, skipping.")
                continue
            # Several names can share one object
            if asset_hash in artifacts:
                continue
            hash_prefix = asset_hash[:2]
            artifacts[asset_hash] = Artifact(
                f"{base_url}/{hash_prefix}/{asset_hash}",
                objects_dir / hash_prefix / asset_hash,
            )
        return list(artifacts.values())

    async def extract_native(self, archive: NativeArchive, state: InstallState) -> None:
        natives_dir = self.location / 'natives'
        await aiofiles.os.makedirs(natives_dir, exist_ok=True)
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, _extract_native_sync, archive, natives_dir)

    async def fetch_executable(self, state: InstallState) -> None:
        mode = self.request.mode
        download = (state.manifest.get('downloads') or {}).get(mode)
        if not download or not download.get('url'):
            raise ResolutionError(f"Minecraft {state.game_version} has no {mode} download")

        jar_name = MINECRAFT_JAR
        if self.with_forge and mode == SERVER:
            jar_name = f"minecraft_server.{state.game_version}.jar"
        await self.downloader.download(download['url'], self.location / jar_name, force=True)

    # --- Forge ---

    async def fetch_forge(self, state: InstallState) -> None:
        url = self.installer.forge.get_download_url(state.forge_version)
        await self.downloader.download(url, self.location / FORGE_JAR, force=True)

    async def read_forge_manifest(self, state: InstallState) -> None:
        state.forge_manifest = await self.installer.forge.read_manifest(self.location / FORGE_JAR)

    async def plan_forge_libraries(self, state: InstallState) -> None:
        state.forge_downloads = forge_libraries(state.forge_manifest, self.request.mode, self.settings.libraries_url)
        state.forge_libraries = [f"libraries/{library.relative_path}" for library in state.forge_downloads]

    def forge_artifacts(self, state: InstallState) -> List[Artifact]:
        libraries_dir = self.location / 'libraries'
        return [Artifact(library.url, libraries_dir / library.relative_path) for library in state.forge_downloads]

    async def relocate_forge(self, state: InstallState) -> None:
        relative_path = f"{FORGE_LIBRARY_DIR}/forge-{state.forge_version.full}.jar"
        target = self.location / relative_path
        await aiofiles.os.makedirs(target.parent, exist_ok=True)
        await aiofiles.os.replace(self.location / FORGE_JAR, target)
        state.forge_libraries.append(relative_path)

    # --- Profiles ---

    async def write_client_profile(self, state: InstallState) -> None:
        manifest = state.manifest
        translation_table = {
            'natives_directory': 'natives',
            'assets_root': 'assets',
            'assets_index_name': manifest['assetIndex']['id'],
            'version_name': manifest.get('id', state.game_version),
            'version_type': manifest.get('type', 'release'),
            'launcher_name': self.settings.launcher_name,
            'launcher_version': self.settings.launcher_version,
            'game_directory': '.',
        }
        client_profile: Dict[str, Any] = {'name': self.request.name, 'vars': translation_table}
        if state.forge_manifest is not None:
            client_profile['forge'] = {
                'minecraftArguments': state.forge_manifest.get('minecraftArguments', ''),
                'mainClass': state.forge_manifest['mainClass'],
                'libraries': list(state.forge_libraries or []),
            }

        await write_json(self.location / MANIFEST_FILENAME, manifest, indent=4)
        await write_json(self.location / CLIENT_PROFILE_FILENAME, client_profile, indent=2)

    async def save_profile(self, state: InstallState) -> None:
        forge_version = state.forge_version.forge_version if state.forge_version else None
        profile = Profile(
            name=self.request.name,
            path=str(self.location),
            minecraft_version=state.game_version,
            forge_version=forge_version,
            mode=self.request.mode,
        )
        await write_json(self.location / PROFILE_SUMMARY_FILENAME, {
            'name': profile.name,
            'minecraft': profile.minecraft_version,
            'forge': profile.forge_version,
            'mode': profile.mode,
        }, indent=2)
        self.installer.config.add_profile(profile)
        state.profile = profile


class Installer:
    """Builds and runs the install pipeline for game versions and Forge."""

    def __init__(
        self,
        config: ConfigStore,
        downloader: Downloader,
        settings: Optional[Settings] = None,
        platform: Optional[Platform] = None,
        forge: Optional[Forge] = None,
    ) -> None:
        self.config = config
        self.downloader = downloader
        self.settings = settings or Settings()
        self.platform = platform or Platform.current()
        self.forge = forge or Forge(downloader, self.settings.forge_url)

    def build_pipeline(self, request: InstallRequest, listener: Optional[Listener] = None) -> Pipeline:
        if request.mode not in MODES:
            raise ValueError(f"Install mode must be one of {MODES}, got '{request.mode}'")
        return Pipeline(InstallJob(self, request).steps(), listener)

    async def install(self, request: InstallRequest, listener: Optional[Listener] = None) -> Profile:
        """Runs every install step for ``request`` and returns the saved profile."""
        log.info(f"Installing '{request.name}' ({request.mode}) into {request.path}")
        pipeline = self.build_pipeline(request, listener)
        result = await pipeline.execute(InstallState())
        result.raise_for_failure()
        return result.state.profile
