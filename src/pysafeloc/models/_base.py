"""Base model shared by every pysafeloc data type.

Every model inherits from :class:`SafelocBaseModel` which provides:

* ``frozen=True`` so snapshots and records can be shared by reference
  with read-only observers; replacements are built with ``model_copy``.
* ``populate_by_name`` so provider aliases (``lat``, ``vicinity``...)
  and the snake_case field names are both accepted.
* A ``model_validator(mode="before")`` that drops provider sentinel
  values (``""``, ``"--"``, NaN) so the field default is used.
"""

from __future__ import annotations

import math
from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator

# Sentinel strings providers use for "not available".
_SENTINELS = frozenset({"", "--", "NaN", "nan"})


class SafelocBaseModel(BaseModel):
    """Base for immutable pysafeloc models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    @staticmethod
    def _clean_dict(values: dict[str, Any]) -> dict[str, Any]:
        cleaned: dict[str, Any] = {}
        for key, value in values.items():
            if value is None:
                continue
            if isinstance(value, str) and value.strip() in _SENTINELS:
                continue
            if isinstance(value, float) and math.isnan(value):
                continue
            cleaned[key] = value
        return cleaned

    @model_validator(mode="before")
    @classmethod
    def _drop_sentinels(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        return SafelocBaseModel._clean_dict(values)
