from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Optional

import aiohttp

from restsql.errors import ResponseParseError, TransportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HttpRequest:
    method: str
    url: str
    headers: Dict[str, str]
    body: Optional[str] = None
    connect_timeout_s: float = 10.0
    response_timeout_s: float = 30.0


@dataclass(frozen=True)
class HttpResponse:
    status: int
    content_type: str
    text: str


class HttpTransport:
    """
    Process-scoped aiohttp connection pool shared by every page source.

    Created once (gateway startup) and closed at shutdown. Timeouts are
    applied per request; nothing is retried here.
    """

    def __init__(self, session: Optional[aiohttp.ClientSession] = None) -> None:
        self._session = session
        self._own_session = session is None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._own_session = True

    async def close(self) -> None:
        if self._own_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "HttpTransport":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            await self.start()
        return self._session

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def send(self, request: HttpRequest) -> HttpResponse:
        """
        Perform one HTTP exchange.

        Raises:
            TransportError: connection failure, timeout, or non-2xx status.
            ResponseParseError: the body is not valid in its declared charset.
        """
        session = await self._get_session()
        timeout = aiohttp.ClientTimeout(
            sock_connect=request.connect_timeout_s,
            sock_read=request.response_timeout_s,
        )
        logger.debug("%s %s body=%s", request.method, request.url, request.body)
        try:
            async with session.request(
                request.method,
                request.url,
                headers=request.headers,
                data=request.body.encode("utf-8") if request.body is not None else None,
                timeout=timeout,
            ) as resp:
                raw = await resp.read()
                if resp.status < 200 or resp.status >= 300:
                    snippet = raw[:200].decode("utf-8", errors="replace")
                    raise TransportError(
                        f"HTTP {resp.status} from {request.url}: {snippet}",
                        address=request.url,
                        status=resp.status,
                    )
                logger.debug("HTTP %d from %s (%d bytes)", resp.status, request.url, len(raw))
                text = _decode(raw, resp.charset or "utf-8", request.url)
                return HttpResponse(
                    status=resp.status,
                    content_type=resp.headers.get("Content-Type", ""),
                    text=text,
                )
        except asyncio.TimeoutError as exc:
            raise TransportError(
                f"Timed out requesting {request.url}", address=request.url, timed_out=True
            ) from exc
        except aiohttp.ClientError as exc:
            raise TransportError(
                f"Request to {request.url} failed: {exc}", address=request.url
            ) from exc


def _decode(raw: bytes, charset: str, url: str) -> str:
    """
    Raises:
        ResponseParseError: the body is not valid in its declared charset.
    """
    try:
        return raw.decode(charset)
    except (UnicodeDecodeError, LookupError) as exc:
        raise ResponseParseError(
            f"Response from {url} cannot be decoded as {charset}: {exc}"
        ) from exc
