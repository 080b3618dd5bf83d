"""Retry delay schedule for failed sync requests."""

import random

from hulunote_outline.config import RETRY_BASE_MS, RETRY_CAP_MS


def compute_retry_delay_ms(
    retry_count: int,
    *,
    base_ms: int = RETRY_BASE_MS,
    cap_ms: int = RETRY_CAP_MS,
    rng: random.Random | None = None,
) -> int:
    """Exponential backoff with a cap and "equal jitter".

    ``retry_count`` is the number of failures so far (1 after the first failure):
    1s, 2s, 4s, ... up to ``cap_ms``; the result is drawn from ``[delay/2, delay]``.
    """
    exp = min(max(retry_count, 1) - 1, 16)
    delay = min(base_ms * 2**exp, cap_ms)
    half = delay // 2
    return half + (rng or random).randint(0, delay - half)
