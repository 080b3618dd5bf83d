"""Tests for the retry delay schedule."""

import random

from hulunote_outline.core.sync.backoff import compute_retry_delay_ms


def test_delay_doubles_within_jitter_window() -> None:
    rng = random.Random(7)
    for retry_count, full in [(1, 1000), (2, 2000), (3, 4000), (6, 32000)]:
        delay = compute_retry_delay_ms(retry_count, rng=rng)
        assert full // 2 <= delay <= full


def test_delay_is_capped() -> None:
    rng = random.Random(7)
    for retry_count in (7, 20, 1000):
        assert 30_000 <= compute_retry_delay_ms(retry_count, rng=rng) <= 60_000


def test_custom_base_and_cap() -> None:
    rng = random.Random(1)
    assert 5 <= compute_retry_delay_ms(1, base_ms=10, cap_ms=10, rng=rng) <= 10
    assert compute_retry_delay_ms(0, base_ms=0, cap_ms=0, rng=rng) == 0
