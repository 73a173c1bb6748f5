"""Shared aiohttp session handling for the remote clients."""

from typing import Optional

import aiohttp

from addin_discoverer import __version__

USER_AGENT = f"cake-addin-discoverer/{__version__}"
DEFAULT_TIMEOUT = aiohttp.ClientTimeout(total=300, sock_connect=30)


class HttpClient:
    """Owner of one lazily created aiohttp.ClientSession.

    The registry and GitHub clients derive from it. Used on its own, it
    downloads the reference icons.
    """

    def __init__(self, session: Optional[aiohttp.ClientSession] = None) -> None:
        """Initialize the client.

        Args:
            session: Session owned by the caller. close() leaves it open.
        """
        self._session: Optional[aiohttp.ClientSession] = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = self._create_session()
            self._owns_session = True
        return self._session

    def _create_session(self) -> aiohttp.ClientSession:
        """Build the session on first use.

        Subclasses override this when they need other defaults.
        """
        return aiohttp.ClientSession(
            headers={"User-Agent": USER_AGENT}, timeout=DEFAULT_TIMEOUT
        )

    async def get_bytes(self, url: str) -> bytes:
        """Download a resource.

        Raises:
            aiohttp.ClientResponseError: If the server answers with an error status.
        """
        session = await self._get_session()
        async with session.get(url) as response:
            response.raise_for_status()
            return await response.read()

    async def close(self) -> None:
        """Release the session, unless the caller owns it."""
        if not self._owns_session or self._session is None:
            return
        if not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
