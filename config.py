import json
import logging
import os
import pathlib
import uuid
from dataclasses import dataclass, fields
from typing import Any, Dict, List, Optional

from errors import ConfigError
from forge import FORGE_MAVEN_URL, LIBRARIES_URL
from replacer import replace_text
from versions import VERSION_MANIFEST_URL

log = logging.getLogger(__name__)

CONFIG_FILENAME = 'config.json'
SETTINGS_FILENAME = 'launcher.json'

CLIENT = 'client'
SERVER = 'server'
MODES = (CLIENT, SERVER)


def default_workspace() -> pathlib.Path:
    """EMO_HOME, then the per-user data directory for the platform."""
    if os.environ.get('EMO_HOME'):
        return pathlib.Path(os.environ['EMO_HOME'])
    if os.name == 'nt' and os.environ.get('APPDATA'):
        return pathlib.Path(os.environ['APPDATA']) / 'emo'
    if os.environ.get('HOME'):
        return pathlib.Path(os.environ['HOME']) / '.local' / 'share' / 'emo'
    return pathlib.Path('/var/lib/emo')


# --- Launcher Settings ---

@dataclass
class Settings:
    version_manifest_url: str = VERSION_MANIFEST_URL
    assets_url: str = 'https://resources.download.minecraft.net/'
    libraries_url: str = LIBRARIES_URL
    forge_url: str = FORGE_MAVEN_URL
    auth_url: str = 'https://authserver.mojang.com'
    launcher_name: str = 'python-emo-thirdparty'
    launcher_version: str = 'Ocelot'
    asset_concurrency: int = 20

    @classmethod
    def load(cls, workspace: pathlib.Path) -> 'Settings':
        """Reads optional overrides from launcher.json, patching ':workspace:' in strings."""
        settings = cls()
        settings_path = workspace / SETTINGS_FILENAME
        if not settings_path.exists():
            return settings
        try:
            with open(settings_path, 'r', encoding='utf-8') as f:
                raw = json.load(f)
        except json.JSONDecodeError as e:
            log.warning(f"Could not parse {settings_path}: {e}. Using defaults.")
            return settings

        known = {f.name for f in fields(cls)}
        for key, value in raw.items():
            if key not in known:
                log.warning(f"Ignoring unknown setting '{key}' in {settings_path}")
                continue
            setattr(settings, key, replace_text(value, {':workspace:': str(workspace)}))
        settings.asset_concurrency = int(settings.asset_concurrency)
        return settings


# --- Records ---

@dataclass
class Account:
    id: str
    name: str
    access_token: str

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'name': self.name, 'accessToken': self.access_token}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Account':
        return cls(id=str(data['id']), name=str(data.get('name', '')), access_token=str(data.get('accessToken', '')))


@dataclass
class Profile:
    name: str
    path: str
    minecraft_version: str
    forge_version: Optional[str] = None
    mode: str = CLIENT

    def __post_init__(self) -> None:
        if self.mode not in MODES:
            raise ValueError(f"Profile mode must be one of {MODES}, got '{self.mode}'")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'path': self.path,
            'minecraftVersion': self.minecraft_version,
            'forgeVersion': self.forge_version,
            'mode': self.mode,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Profile':
        return cls(
            name=str(data['name']),
            path=str(data['path']),
            minecraft_version=str(data['minecraftVersion']),
            forge_version=data.get('forgeVersion') or None,
            mode=data.get('mode', CLIENT),
        )


# --- Config Store ---

class ConfigStore:
    """
    Client token, accounts and profiles of one workspace.

    Every mutation rewrites config.json in full before returning.
    """

    def __init__(self, path: pathlib.Path, data: Optional[Dict[str, Any]] = None) -> None:
        self.path = path
        self.client_token = str(uuid.uuid4())
        self._accounts: Dict[str, Account] = {}
        self._profiles: Dict[str, Profile] = {}
        self._selected_account: Optional[str] = None
        if data:
            self._merge(data)

    def _merge(self, data: Dict[str, Any]) -> None:
        if data.get('clientToken'):
            self.client_token = data['clientToken']
        if data.get('accounts'):
            self._accounts = {key: Account.from_dict(value) for key, value in data['accounts'].items()}
        if data.get('profiles'):
            self._profiles = {key: Profile.from_dict(value) for key, value in data['profiles'].items()}
        if data.get('selectedAccount'):
            self._selected_account = data['selectedAccount']

    @classmethod
    def load(cls, workspace: pathlib.Path) -> 'ConfigStore':
        """Loads config.json from the workspace (missing file means defaults) and saves it back."""
        workspace.mkdir(parents=True, exist_ok=True)
        config_path = workspace / CONFIG_FILENAME
        data = None
        if config_path.exists():
            with open(config_path, 'r', encoding='utf-8') as f:
                try:
                    data = json.load(f)
                except json.JSONDecodeError as error:
                    raise ConfigError(f"Corrupt config file {config_path}: {error}") from error
        store = cls(config_path, data)
        store.save()
        return store

    def to_dict(self) -> Dict[str, Any]:
        return {
            'clientToken': self.client_token,
            'accounts': {key: account.to_dict() for key, account in self._accounts.items()},
            'profiles': {key: profile.to_dict() for key, profile in self._profiles.items()},
            'selectedAccount': self._selected_account,
        }

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix('.json.tmp')
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(self.to_dict(), f, indent=2)
        tmp_path.replace(self.path)

    # --- Accounts ---

    def add_account(self, account: Account) -> None:
        self._accounts[account.id] = account
        self.save()

    def get_account(self, account_id: Optional[str]) -> Optional[Account]:
        if not account_id:
            return None
        return self._accounts.get(account_id)

    def accounts(self) -> List[Account]:
        return list(self._accounts.values())

    @property
    def selected_account_id(self) -> Optional[str]:
        return self._selected_account

    def select_account(self, account_id: str) -> None:
        self._selected_account = account_id
        self.save()

    def get_selected_account(self) -> Optional[Account]:
        """The selected account, falling back to (and persisting) the first one."""
        account = self.get_account(self._selected_account)
        if account is not None:
            return account

        accounts = self.accounts()
        if not accounts:
            return None
        log.info(f"Selected account '{self._selected_account}' not found, selecting {accounts[0].name}")
        self.select_account(accounts[0].id)
        return accounts[0]

    # --- Profiles ---

    def add_profile(self, profile: Profile) -> None:
        self._profiles[profile.path] = profile
        self.save()

    def get_profile(self, profile_id: str) -> Optional[Profile]:
        """Looks a profile up by path, then by name."""
        if profile_id in self._profiles:
            return self._profiles[profile_id]
        resolved = str(pathlib.Path(profile_id).resolve())
        if resolved in self._profiles:
            return self._profiles[resolved]
        for profile in self._profiles.values():
            if profile.name == profile_id:
                return profile
        return None

    def profiles(self) -> List[Profile]:
        return list(self._profiles.values())
