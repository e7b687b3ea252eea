"""Retry delay policy for transient job failures."""

import math
import random

from core.utils.constants import SQS_MAX_DELAY_SECONDS


def backoff_seconds(
    attempt: int,
    *,
    base_seconds: float,
    max_seconds: float,
    jitter_ratio: float = 0.0,
) -> float:
    """Exponential delay before retrying after ``attempt`` failed.

    ``min(base * 2**(attempt - 1), max)``, optionally spread by up to
    ``jitter_ratio`` of the delay in either direction.
    """
    delay = min(base_seconds * (2 ** max(attempt - 1, 0)), max_seconds)
    if jitter_ratio > 0:
        delay += delay * random.uniform(-jitter_ratio, jitter_ratio)
    return max(delay, 0.0)


def queue_delay_seconds(delay: float) -> int:
    """Round a delay up to whole seconds within the SQS limit."""
    return min(int(math.ceil(delay)), SQS_MAX_DELAY_SECONDS)
