"""Deterministic retry and staleness policy.

This module intentionally contains *no* I/O. The tracking controller and
the discovery engine ask it how long to wait and whether a result may
still be applied.
"""

from __future__ import annotations


def next_tick_delay(
    *,
    interval_s: float,
    consecutive_failures: int,
    backoff_enabled: bool,
    max_interval_s: float,
) -> float:
    """Seconds until the next scheduled position request.

    Policy:
    - Backoff disabled: always the fixed interval.
    - Backoff enabled: ``interval * 2**failures`` capped at *max_interval_s*;
      a success resets *consecutive_failures* to zero.
    """
    if not backoff_enabled or consecutive_failures <= 0:
        return interval_s
    # Cap the exponent so the intermediate value stays a sane float.
    exponent = min(consecutive_failures, 32)
    return min(interval_s * (2**exponent), max(max_interval_s, interval_s))


def is_current(token: int, current: int) -> bool:
    """A result is applied only if nothing superseded the work that produced it."""
    return token == current
