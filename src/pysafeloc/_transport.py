"""HTTP transport for JSON directory providers."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from pysafeloc._redact import redact_for_log
from pysafeloc.exceptions import SafelocTransportError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by provider modules.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`JsonTransport`) concrete.
    """

    async def get_json(self, url: str, params: Mapping[str, Any]) -> Any:
        ...


class JsonTransport:
    """GET-and-decode-JSON transport on top of a shared aiohttp session."""

    def __init__(
        self,
        http_session: aiohttp.ClientSession,
        *,
        user_agent: str,
        timeout: float | None = None,
    ) -> None:
        self._http = http_session
        self._headers = {
            "accept": "application/json",
            "user-agent": user_agent,
        }
        self._timeout = aiohttp.ClientTimeout(total=timeout) if timeout else None

    async def get_json(self, url: str, params: Mapping[str, Any]) -> Any:
        """GET *url* and return the decoded JSON body.

        Raises
        ------
        SafelocTransportError
            On network failure, a non-200 status or a body that is not JSON.
        """
        _logger.debug("GET %s params=%s", url, redact_for_log(dict(params)))

        query = {key: str(value) for key, value in params.items() if value is not None}
        request_kwargs: dict[str, Any] = {"params": query, "headers": self._headers}
        if self._timeout is not None:
            request_kwargs["timeout"] = self._timeout
        try:
            async with self._http.get(url, **request_kwargs) as resp:
                text = await resp.text()
                if resp.status != 200:
                    raise SafelocTransportError(
                        f"HTTP {resp.status} from {url}: {text[:200]}",
                        status_code=resp.status,
                        url=url,
                    )
        except SafelocTransportError:
            raise
        except aiohttp.ClientError as exc:
            raise SafelocTransportError(f"Request to {url} failed: {exc}", url=url) from exc

        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise SafelocTransportError(f"Invalid JSON from {url}: {text[:200]}", url=url) from exc
