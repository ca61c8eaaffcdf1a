"""Resample irregular (state, timestamp) samples into uniform buckets."""

from __future__ import annotations

import math
from typing import Sequence

from helman.errors import MissingSample
from helman.platform.base import HistorySample


def parse_power_state(state: str | None) -> float:
    """Parse a raw state string into watts.

    Raises MissingSample for absent, non-numeric or non-finite states
    ("unavailable", "unknown", "", NaN).
    """
    if state is None:
        raise MissingSample("state is missing")
    try:
        value = float(state)
    except (TypeError, ValueError):
        raise MissingSample(f"non-numeric state {state!r}") from None
    if not math.isfinite(value):
        raise MissingSample(f"non-finite state {state!r}")
    return value


def bucket_end_times(bucket_count: int, bucket_duration: float, now: float) -> list[float]:
    """End time of each bucket, oldest first; the last bucket ends at ``now``."""
    return [now - (bucket_count - 1 - i) * bucket_duration for i in range(bucket_count)]


def resample(
    samples: Sequence[HistorySample],
    bucket_count: int,
    bucket_duration: float,
    now: float,
) -> list[float]:
    """Step-resample ``samples`` (oldest first) into ``bucket_count`` buckets.

    Each bucket holds the last numeric sample recorded strictly before the
    bucket's end time (last value carried forward, no interpolation).
    Buckets before the first sample hold 0. Unparseable samples are skipped
    and the previous value carries over. The sample pointer only moves
    forward.
    """
    values: list[float] = []
    current = 0.0
    ptr = 0
    n = len(samples)
    for end in bucket_end_times(bucket_count, bucket_duration, now):
        while ptr < n and samples[ptr].last_updated < end:
            try:
                current = parse_power_state(samples[ptr].state)
            except MissingSample:
                pass  # carry the previous value
            ptr += 1
        values.append(current)
    return values
