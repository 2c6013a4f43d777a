from __future__ import annotations
import asyncio
import logging
from typing import Dict, Optional, Protocol, Tuple

import aiohttp

from harvestbridge.errors import MalformedResponseError, TransportError

logger = logging.getLogger(__name__)


class HttpTransport(Protocol):
    """What the connector needs from an HTTP client: one GET, status and body back."""

    async def get(self, url: str, headers: Dict[str, str]) -> Tuple[int, str]: ...

    async def close(self) -> None: ...


class AiohttpTransport:
    """
    HttpTransport over a shared aiohttp.ClientSession (connection pooling).

    Status codes are returned as-is; interpreting them is the connector's job.
    Connection failures and timeouts become TransportError; a body that
    does not decode in its declared charset becomes MalformedResponseError.
    """

    def __init__(
        self,
        timeout_s: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._timeout_s = timeout_s
        self._session = session
        self._own_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout_s)
            )
        return self._session

    async def get(self, url: str, headers: Dict[str, str]) -> Tuple[int, str]:
        session = await self._get_session()
        try:
            async with session.get(url, headers=headers) as resp:
                body = await resp.text()
                return resp.status, body
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.error("GET %s failed: %s", url, exc)
            raise TransportError(f"Unable to make a connection to Harvest: {exc}") from exc
        except UnicodeDecodeError as exc:
            logger.error("GET %s returned an undecodable body: %s", url, exc)
            raise MalformedResponseError(f"Response body from {url} is not valid text: {exc}") from exc

    async def close(self) -> None:
        if self._own_session and self._session and not self._session.closed:
            await self._session.close()
