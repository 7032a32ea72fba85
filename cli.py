import argparse
import asyncio
import getpass
import logging
import os
import pathlib
import sys
from typing import List, Optional

from tqdm.asyncio import tqdm

from auth import AccountManager, Auth
from config import MODES, ConfigStore, Settings, default_workspace
from downloads import Downloader
from errors import LauncherError
from installer import InstallRequest, Installer
from launch import LaunchBuilder
from pipeline import PipelineEvent

log = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


class ProgressReporter:
    """Logs each pipeline step and shows a tqdm bar while a step fans out."""

    def __init__(self) -> None:
        self._bar: Optional[tqdm] = None
        self._step: Optional[int] = None

    def __call__(self, event: PipelineEvent) -> None:
        if event.kind == 'step':
            self.close()
            log.info(f"[{event.index + 1}/{event.total}] {event.description}")
            return

        if self._bar is None or self._step != event.index:
            self.close()
            self._bar = tqdm(total=event.count, desc=event.description, unit='file', leave=False)
            self._step = event.index
        self._bar.update(1)
        if event.completed >= event.count:
            self.close()

    def close(self) -> None:
        if self._bar is not None:
            self._bar.close()
        self._bar = None
        self._step = None


# --- Commands ---

async def cmd_init(args, config: ConfigStore, settings: Settings, downloader: Downloader) -> int:
    forge_version = None if args.forge in (None, 'no') else args.forge
    request = InstallRequest(
        name=args.name,
        path=args.path,
        minecraft_version=args.minecraft,
        forge_version=forge_version,
        mode=args.mode,
    )
    installer = Installer(config, downloader, settings)
    reporter = ProgressReporter()
    try:
        profile = await installer.install(request, listener=reporter)
    finally:
        reporter.close()
    forge_note = f", forge {profile.forge_version}" if profile.forge_version else ''
    log.info(f"Installed {profile.name}: Minecraft {profile.minecraft_version}{forge_note} at {profile.path}")
    return 0


async def cmd_list_profiles(args, config: ConfigStore, settings: Settings, downloader: Downloader) -> int:
    for profile in config.profiles():
        print(f"{profile.name} [{profile.path}][version: {profile.minecraft_version}, forge: {profile.forge_version or 'no'}]")
    return 0


async def cmd_login(args, config: ConfigStore, settings: Settings, downloader: Downloader) -> int:
    password = getpass.getpass('Password: ')
    accounts = AccountManager(config, Auth(config.client_token, downloader, settings.auth_url))
    account = await accounts.login(args.username, password)
    print(f"Logged in for {account.name}")
    return 0


async def cmd_start(args, config: ConfigStore, settings: Settings, downloader: Downloader) -> int:
    accounts = AccountManager(config, Auth(config.client_token, downloader, settings.auth_url))
    builder = LaunchBuilder(config, accounts)
    spec = await builder.build(args.profile or os.getcwd(), args.account)

    log.info(f"Launching {spec.program} in {spec.cwd}")
    try:
        process = await asyncio.create_subprocess_exec(spec.program, *spec.args, cwd=spec.cwd)
    except OSError as error:
        log.error(f"Failed to start minecraft: {error}")
        return 1
    log.info(f"Minecraft process started (PID: {process.pid}). Waiting for exit...")
    return_code = await process.wait()
    log.info(f"Minecraft process exited with code {return_code}.")
    return return_code


# --- Entry Point ---

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='emo', description='Install and start Minecraft clients and servers.')
    parser.add_argument('-w', '--workspace', help='Where emo keeps its config (default: $EMO_HOME or the user data directory)')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')
    subcommands = parser.add_subparsers(dest='command')

    init = subcommands.add_parser('init', help='Install a Minecraft version as a new profile')
    init.add_argument('name')
    init.add_argument('-m', '--minecraft', default='latest',
                      help='Minecraft version to install: a version id, latest or latest-snapshot')
    init.add_argument('-F', '--forge', default=None,
                      help='Forge version to install: no, a Forge version, latest or recommend')
    init.add_argument('-p', '--path', default=os.getcwd(), help='Where this installation should live')
    init.add_argument('-M', '--mode', default='client', choices=MODES, help='Install a client or a server')
    init.set_defaults(handler=cmd_init)

    list_profiles = subcommands.add_parser('list-profiles', help='List installed profiles')
    list_profiles.set_defaults(handler=cmd_list_profiles)

    login = subcommands.add_parser('login', help='Log in to a Mojang account')
    login.add_argument('username')
    login.set_defaults(handler=cmd_login)

    start = subcommands.add_parser('start', help='Start an installed profile')
    start.add_argument('profile', nargs='?', help='Profile path or name (default: current directory)')
    start.add_argument('-a', '--account', help='Which account to start Minecraft with')
    start.set_defaults(handler=cmd_start)

    return parser


async def run_command(args) -> int:
    workspace = pathlib.Path(args.workspace) if args.workspace else default_workspace()
    async with Downloader() as downloader:
        try:
            config = ConfigStore.load(workspace)
            settings = Settings.load(workspace)
            return await args.handler(args, config, settings, downloader)
        except LauncherError as error:
            log.error(f"{args.command} failed: {error}")
            return 1
        except Exception:
            log.exception(f"--- An error occurred during {args.command} ---")
            return 1


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format=LOG_FORMAT)

    if not args.command:
        parser.print_help()
        return 1

    try:
        return asyncio.run(run_command(args))
    except KeyboardInterrupt:
        log.info("Cancelled by user.")
        return 130


if __name__ == '__main__':
    sys.exit(main())
