import logging
from typing import Any, Dict

from config import Account, ConfigStore
from downloads import Downloader
from errors import AuthError, NoAccountError, OwnershipError

log = logging.getLogger(__name__)

AUTH_SERVER_URL = 'https://authserver.mojang.com'
AGENT = {'name': 'Minecraft', 'version': 1}


class Auth:
    """Client for the Yggdrasil identity service."""

    def __init__(self, client_token: str, downloader: Downloader, base_url: str = AUTH_SERVER_URL) -> None:
        self.client_token = client_token
        self.downloader = downloader
        self.base_url = base_url.rstrip('/')

    async def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        status, payload = await self.downloader.post_json(self.base_url + path, body)
        if status not in (200, 204):
            payload = payload or {}
            raise AuthError(f"{payload.get('error', status)}: {payload.get('errorMessage', '')}")
        return payload or {}

    @staticmethod
    def _account_from(response: Dict[str, Any]) -> Account:
        profile = response.get('selectedProfile')
        if not profile:
            raise OwnershipError("User doesn't own Minecraft")
        return Account(id=profile['id'], name=profile['name'], access_token=response['accessToken'])

    async def authenticate(self, username: str, password: str) -> Account:
        response = await self._post('/authenticate', {
            'username': username,
            'password': password,
            'agent': AGENT,
            'clientToken': self.client_token,
        })
        return self._account_from(response)

    async def validate(self, access_token: str) -> bool:
        status, _ = await self.downloader.post_json(self.base_url + '/validate', {
            'clientToken': self.client_token,
            'accessToken': access_token,
        })
        return status == 204

    async def refresh(self, access_token: str) -> Account:
        response = await self._post('/refresh', {
            'clientToken': self.client_token,
            'accessToken': access_token,
        })
        return self._account_from(response)

    async def invalidate(self, access_token: str) -> None:
        await self._post('/invalidate', {
            'clientToken': self.client_token,
            'accessToken': access_token,
        })


class AccountManager:
    """Keeps the accounts in the config store in step with the identity service."""

    def __init__(self, config: ConfigStore, auth: Auth) -> None:
        self.config = config
        self.auth = auth

    async def login(self, username: str, password: str) -> Account:
        account = await self.auth.authenticate(username, password)
        self.config.add_account(account)
        log.info(f"Logged in as {account.name}")
        return account

    async def refresh_account(self, account_id: str) -> Account:
        """Validates the stored token and refreshes it when the service rejects it."""
        account = self.config.get_account(account_id)
        if account is None:
            raise NoAccountError(f"Can't find account with id '{account_id}'")

        if await self.auth.validate(account.access_token):
            return account

        log.info(f"Access token for {account.name} expired, refreshing")
        account = await self.auth.refresh(account.access_token)
        self.config.add_account(account)
        return account
