"""Timed JSON GET requests against a configured host."""

import logging
import time
from typing import Any

import httpx

from ..core.config import get_settings
from ..core.errors import DecodeError, HttpStatusError, TransportError

logger = logging.getLogger(__name__)

USER_AGENT = "tmtop"


class HttpClient:
    """Issues GET requests against one host and decodes JSON bodies."""

    def __init__(
        self,
        host: str,
        invoker: str = "tmtop",
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.host = host.rstrip("/")
        self.invoker = invoker
        self.timeout = timeout if timeout is not None else get_settings().request_timeout
        self.transport = transport

    async def get(self, relative_url: str) -> Any:
        """Fetch `relative_url` and return the decoded JSON body."""
        url = f"{self.host}{relative_url}"
        start = time.monotonic()

        logger.debug(f"[{self.invoker}] Doing a query: {url}")

        async with httpx.AsyncClient(
            timeout=self.timeout,
            transport=self.transport,
            headers={"User-Agent": USER_AGENT},
        ) as client:
            try:
                response = await client.get(url)
            except httpx.TimeoutException as e:
                logger.warning(f"[{self.invoker}] Query timed out: {url}")
                raise TransportError(f"timeout querying {url}") from e
            except httpx.RequestError as e:
                logger.warning(f"[{self.invoker}] Query failed: {url}: {e}")
                raise TransportError(f"error querying {url}: {e}") from e

        elapsed = time.monotonic() - start
        logger.debug(f"[{self.invoker}] Query finished in {elapsed:.3f}s: {url}")

        if not response.is_success:
            logger.warning(
                f"[{self.invoker}] Query failed: {url}: HTTP {response.status_code}"
            )
            raise HttpStatusError(url, response.status_code, _try_json(response))

        try:
            return response.json()
        except ValueError as e:
            logger.warning(f"[{self.invoker}] Failed to parse JSON from {url}: {e}")
            raise DecodeError(f"invalid JSON from {url}: {e}") from e


def _try_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None
