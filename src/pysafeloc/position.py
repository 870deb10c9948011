"""Device position source.

The host owns the platform location API and adapts it to
:class:`PositionProvider`. :class:`PositionSource` bounds every call by
the operation timeout and normalises failures into the
:class:`pysafeloc.exceptions.PositionError` taxonomy.
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Any, Protocol

from pydantic import ValidationError

from pysafeloc.exceptions import PositionError, PositionTimeoutError, PositionUnavailableError
from pysafeloc.models.position import PositionFix, PositionOptions

_logger = logging.getLogger(__name__)


class PositionProvider(Protocol):
    """Host adapter around the device's asynchronous position API.

    Implementations return a :class:`PositionFix` (or a mapping with
    ``lat``/``lng``/``accuracy`` keys) and raise one of
    :class:`PositionPermissionDeniedError`, :class:`PositionUnavailableError`
    or :class:`PositionTimeoutError`.
    """

    async def request_position(self, options: PositionOptions) -> PositionFix | dict[str, Any]:
        ...


class PositionSource:
    """Timeout-bounded wrapper around a :class:`PositionProvider`."""

    def __init__(self, provider: PositionProvider) -> None:
        self._provider = provider

    async def request(self, options: PositionOptions) -> PositionFix:
        """Request one fix.

        Raises
        ------
        PositionPermissionDeniedError
            Location access was refused.
        PositionUnavailableError
            The provider failed or returned an unusable fix.
        PositionTimeoutError
            No answer within ``options.timeout_ms``.
        """
        try:
            raw = await asyncio.wait_for(self._provider.request_position(options), options.timeout_ms / 1000)
        except TimeoutError as exc:
            raise PositionTimeoutError(f"No position within {options.timeout_ms} ms") from exc
        except (PositionError, asyncio.CancelledError):
            raise
        except Exception as exc:
            raise PositionUnavailableError(f"Position provider failed: {exc}") from exc

        return self._validate(raw)

    @staticmethod
    def _validate(raw: PositionFix | dict[str, Any]) -> PositionFix:
        if isinstance(raw, PositionFix):
            fix = raw
        else:
            try:
                fix = PositionFix.model_validate(raw)
            except ValidationError as exc:
                raise PositionUnavailableError(f"Unusable position fix: {exc.error_count()} invalid field(s)") from exc
        if not all(math.isfinite(v) for v in (fix.latitude, fix.longitude, fix.accuracy_meters)):
            raise PositionUnavailableError("Position fix contains non-finite values")
        _logger.debug("Position fix accuracy=%.0fm", fix.accuracy_meters)
        return fix
