"""
Shared aiohttp session handling for the REST and JSON-RPC clients.

Each client owns one lazily created session (or borrows an injected one)
and applies an explicit ClientTimeout to every request.
"""
import logging
from typing import Any, Dict, Optional

import aiohttp

logger = logging.getLogger(__name__)


class HttpClient:
    """Base for clients that talk HTTP through a reusable aiohttp session."""

    def __init__(
        self,
        timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None
        self._headers = headers or {}

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers=self._headers)
            self._owns_session = True
        return self._session

    def _timeout(self, seconds: Optional[float] = None) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(total=seconds or self.timeout)

    async def close(self):
        """Close the HTTP session if this client created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()

    async def _json_rpc(
        self,
        url: str,
        method: str,
        params: Any,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """POST a JSON-RPC 2.0 request and return the decoded envelope."""
        session = await self._get_session()
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        async with session.post(url, json=payload, timeout=self._timeout(timeout)) as resp:
            return await resp.json(content_type=None)
