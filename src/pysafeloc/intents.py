"""Outbound call / directions intents.

The engine never places calls or opens maps itself. It builds an intent
and hands it to the host's :class:`IntentDispatcher` without waiting for
the outcome.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import re
from typing import Any, Protocol
from urllib.parse import urlencode

from pydantic import computed_field

from pysafeloc._constants import GOOGLE_DIRECTIONS_URL
from pysafeloc.models._base import SafelocBaseModel
from pysafeloc.models.position import Coordinate

_logger = logging.getLogger(__name__)

_DIAL_CHARS = re.compile(r"[^0-9+*#]")


class CallIntent(SafelocBaseModel):
    phone: str

    @computed_field  # type: ignore[prop-decorator]
    @property
    def uri(self) -> str:
        """``tel:`` URI with formatting characters stripped."""
        return f"tel:{_DIAL_CHARS.sub('', self.phone)}"


class DirectionsIntent(SafelocBaseModel):
    origin: Coordinate | None = None
    destination: Coordinate

    @computed_field  # type: ignore[prop-decorator]
    @property
    def url(self) -> str:
        """Google Maps directions deep link."""
        params = {"api": "1", "destination": f"{self.destination.latitude},{self.destination.longitude}"}
        if self.origin is not None:
            params["origin"] = f"{self.origin.latitude},{self.origin.longitude}"
        return f"{GOOGLE_DIRECTIONS_URL}?{urlencode(params, safe=',')}"


Intent = CallIntent | DirectionsIntent


class IntentDispatcher(Protocol):
    """Host hook (telephony, maps deep link). May be sync or async."""

    def dispatch(self, intent: Intent) -> Any:
        ...


def _log_task_failure(task: asyncio.Task[Any]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        _logger.warning("Intent dispatch failed: %s", exc)


def dispatch_intent(
    dispatcher: IntentDispatcher | None,
    intent: Intent,
    *,
    pending: set[asyncio.Task[Any]],
) -> None:
    """Fire-and-forget *intent*.

    A coroutine returned by the dispatcher is scheduled on the running
    loop and never awaited here; failures are only logged. The task is
    held in the caller's *pending* set until it finishes.
    """
    if dispatcher is None:
        _logger.debug("No intent dispatcher configured; dropping %s", type(intent).__name__)
        return
    try:
        result = dispatcher.dispatch(intent)
    except Exception:
        _logger.warning("Intent dispatch failed", exc_info=True)
        return
    if inspect.isawaitable(result):
        task = asyncio.ensure_future(result)
        pending.add(task)
        task.add_done_callback(pending.discard)
        task.add_done_callback(_log_task_failure)
