import json
import logging
import os
import pathlib
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from auth import AccountManager
from config import CLIENT, Account, ConfigStore, Profile
from downloads import read_json
from errors import NoAccountError, ProfileNotFoundError
from installer import CLIENT_PROFILE_FILENAME, FORGE_JAR, MANIFEST_FILENAME, MINECRAFT_JAR
from replacer import render_template
from rules import Platform, resolve_argument_list, resolve_rules

log = logging.getLogger(__name__)

JAVA_PROGRAM = 'java'
USER_TYPE = 'mojang'

# Used when a manifest only carries the legacy minecraftArguments string
DEFAULT_JVM_ARGUMENTS = [
    '-Djava.library.path=${natives_directory}',
    '-Dminecraft.launcher.brand=${launcher_name}',
    '-Dminecraft.launcher.version=${launcher_version}',
    '-cp',
    '${classpath}',
]


@dataclass
class LaunchSpec:
    cwd: str
    program: str
    args: List[str] = field(default_factory=list)


def build_classpath(
    manifest: Dict[str, Any],
    forge_libraries: Optional[List[str]] = None,
    platform: Optional[Platform] = None,
) -> List[str]:
    """Rule-accepted library jars, then Forge libraries, then the game jar."""
    classpath = []
    for lib in manifest.get('libraries', []):
        if not resolve_rules(lib.get('rules'), platform):
            continue
        artifact = (lib.get('downloads') or {}).get('artifact')
        if artifact and artifact.get('path'):
            classpath.append(os.path.join('libraries', artifact['path']))
    classpath.extend(forge_libraries or [])
    classpath.append(MINECRAFT_JAR)
    return classpath


def build_client_arguments(
    manifest: Dict[str, Any],
    client_profile: Dict[str, Any],
    account: Account,
    platform: Optional[Platform] = None,
) -> List[str]:
    """
    Assembles JVM arguments, main class and game arguments for a client launch.

    A Forge block in the client profile replaces the main class and the game
    arguments; JVM arguments always come from the game manifest. Every
    ${name} placeholder is rendered against the template variables.
    """
    platform = platform or Platform.current()
    forge = client_profile.get('forge')
    classpath = build_classpath(manifest, forge.get('libraries') if forge else None, platform)

    template_vars: Dict[str, Any] = {
        'classpath': os.pathsep.join(classpath),
        'classpath_separator': os.pathsep,
        'library_directory': 'libraries',
        'user_type': USER_TYPE,
        'auth_uuid': account.id,
        'auth_player_name': account.name,
        'auth_access_token': account.access_token,
    }
    template_vars.update(client_profile.get('vars') or {})

    main_class = manifest.get('mainClass')
    arguments = manifest.get('arguments')
    if arguments:
        jvm_arguments = resolve_argument_list(arguments.get('jvm'), platform)
        game_arguments = resolve_argument_list(arguments.get('game'), platform)
    else:
        jvm_arguments = list(DEFAULT_JVM_ARGUMENTS)
        game_arguments = (manifest.get('minecraftArguments') or '').split()

    if forge:
        main_class = forge['mainClass']
        game_arguments = (forge.get('minecraftArguments') or '').split()

    return [render_template(arg, template_vars) for arg in [*jvm_arguments, main_class, *game_arguments]]


class LaunchBuilder:
    """Turns a saved profile into a LaunchSpec."""

    def __init__(self, config: ConfigStore, accounts: AccountManager, platform: Optional[Platform] = None) -> None:
        self.config = config
        self.accounts = accounts
        self.platform = platform or Platform.current()

    def _get_profile(self, profile_id: str) -> Profile:
        profile = self.config.get_profile(profile_id)
        if profile is None:
            raise ProfileNotFoundError(f"Can't find profile with id '{profile_id}'")
        return profile

    async def build(self, profile_id: str, account_id: Optional[str] = None) -> LaunchSpec:
        profile = self._get_profile(profile_id)
        if profile.mode == CLIENT:
            return await self.build_client(profile, account_id)
        return self.build_server(profile)

    def build_server(self, profile: Profile) -> LaunchSpec:
        jar_name = FORGE_JAR if profile.forge_version else MINECRAFT_JAR
        return LaunchSpec(cwd=profile.path, program=JAVA_PROGRAM, args=['-jar', jar_name, 'nogui'])

    async def build_client(self, profile: Profile, account_id: Optional[str] = None) -> LaunchSpec:
        if not account_id:
            account = self.config.get_selected_account()
            if account is None:
                raise NoAccountError('No selected account to start Minecraft with')
            account_id = account.id

        account = await self.accounts.refresh_account(account_id)

        location = pathlib.Path(profile.path)
        try:
            client_profile = await read_json(location / CLIENT_PROFILE_FILENAME)
            manifest = await read_json(location / MANIFEST_FILENAME)
        except (OSError, json.JSONDecodeError) as error:
            raise ProfileNotFoundError(f"No or corrupt profile found at: {location}") from error

        log.info(f"Starting {profile.name} ({profile.minecraft_version}) as {account.name}")
        args = build_client_arguments(manifest, client_profile, account, self.platform)
        return LaunchSpec(cwd=profile.path, program=JAVA_PROGRAM, args=args)
