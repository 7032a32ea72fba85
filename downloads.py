import asyncio
import json
import logging
import pathlib
from typing import Any, Optional, Tuple

import aiofiles
import aiofiles.os
import aiohttp

from errors import FetchError

log = logging.getLogger(__name__)

CHUNK_SIZE = 8192


async def file_exists(file_path: pathlib.Path) -> bool:
    """A regular file at ``file_path`` counts as an already fetched artifact."""
    return await aiofiles.os.path.isfile(file_path)


async def write_json(file_path: pathlib.Path, data: Any, indent: Optional[int] = None) -> None:
    """Writes ``data`` as JSON, creating parent directories as needed."""
    await aiofiles.os.makedirs(file_path.parent, exist_ok=True)
    async with aiofiles.open(file_path, 'w', encoding='utf-8') as f:
        await f.write(json.dumps(data, indent=indent))


async def read_json(file_path: pathlib.Path) -> Any:
    async with aiofiles.open(file_path, 'r', encoding='utf-8') as f:
        return json.loads(await f.read())


class Downloader:
    """
    Fetch primitive shared by the installer, the Forge client and the auth client.

    Owns one aiohttp session for its lifetime; use it as an async context
    manager or call ``close()`` when done.
    """

    def __init__(self, session: Optional[aiohttp.ClientSession] = None, chunk_size: int = CHUNK_SIZE) -> None:
        self._session = session
        self._owns_session = session is None
        self.chunk_size = chunk_size

    async def __aenter__(self) -> 'Downloader':
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def get_json(self, url: str) -> Any:
        session = await self.get_session()
        log.debug(f"Fetching JSON from {url}")
        try:
            async with session.get(url) as response:
                if not response.ok:
                    raise FetchError(f"Failed to fetch {url}: {response.status} {response.reason}")
                return await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as error:
            raise FetchError(f"Request failed for {url}: {error!r}") from error
        except json.JSONDecodeError as error:
            raise FetchError(f"Invalid JSON from {url}") from error

    async def download(self, url: str, dest_path: pathlib.Path, force: bool = False) -> bool:
        """
        Streams ``url`` into ``dest_path``.

        An existing destination counts as a completed download and is not
        re-fetched unless ``force`` is set. Returns True if a download occurred.
        """
        await aiofiles.os.makedirs(dest_path.parent, exist_ok=True)
        if not force and await file_exists(dest_path):
            log.debug(f"Skipping {dest_path.name}, already present")
            return False

        session = await self.get_session()
        try:
            async with session.get(url) as response:
                if not response.ok:
                    raise FetchError(f"Failed to download {url}: {response.status} {response.reason}")
                async with aiofiles.open(dest_path, 'wb') as f:
                    async for chunk in response.content.iter_chunked(self.chunk_size):
                        await f.write(chunk)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError, FetchError) as error:
            log.error(f"Error downloading {url}: {error}")
            # Clean up potentially incomplete file
            try:
                if await aiofiles.os.path.exists(dest_path): await aiofiles.os.remove(dest_path)
            except OSError as remove_error:
                log.warning(f"Could not remove partial file {dest_path}: {remove_error}")
            if isinstance(error, FetchError):
                raise
            raise FetchError(f"Download failed for {url}: {error!r}") from error
        return True

    async def post_json(self, url: str, body: Any) -> Tuple[int, Any]:
        """POSTs a JSON body. Returns the status and the decoded body (None when empty)."""
        session = await self.get_session()
        try:
            async with session.post(url, json=body) as response:
                text = await response.text()
                payload = json.loads(text) if text.strip() else None
                return response.status, payload
        except (aiohttp.ClientError, asyncio.TimeoutError) as error:
            raise FetchError(f"Request failed for {url}: {error!r}") from error
        except json.JSONDecodeError as error:
            raise FetchError(f"Invalid JSON from {url}") from error
