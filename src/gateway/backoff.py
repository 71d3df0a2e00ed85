"""Retry delay computation, kept free of I/O so it can be tested directly."""

from __future__ import annotations

import random
from collections.abc import Callable
from enum import StrEnum

MAX_JITTER = 0.5


class BackoffMode(StrEnum):
    FIXED = "fixed"
    EXPONENTIAL = "exponential"


def compute_delay(
    attempt: int,
    base_delay: float,
    mode: BackoffMode,
    jitter: Callable[[float, float], float] | None = None,
) -> float:
    """Seconds to wait after failed *attempt* (1-based) before the next one.

    Fixed mode always waits ``base_delay``. Exponential mode doubles the
    delay with each attempt and adds up to ``MAX_JITTER`` seconds so that
    repeated retries do not line up against a single local model process.
    """
    if attempt < 1:
        raise ValueError(f"attempt must be >= 1, got {attempt}")
    if mode == BackoffMode.FIXED:
        return base_delay
    uniform = jitter or random.uniform
    return base_delay * 2 ** (attempt - 1) + uniform(0.0, MAX_JITTER)
