"""One-shot historical backfill.

Fetches the history of every bound sensor once, resamples it into the
configured buckets, derives virtual and unmeasured histories bottom-up, swaps
the results into the forest in a single synchronous pass and reruns source
attribution. A failed fetch leaves the live-built history untouched.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone

from helman.history.attribution import attribute_sources
from helman.history.resample import resample
from helman.platform.base import HistorySample, HistorySource
from helman.tree.aggregate import sum_histories
from helman.tree.node import Node, walk_forest, walk_forest_post_order
from helman.tree.unmeasured import residual_history

logger = logging.getLogger(__name__)


def sensor_ids(forest: list[Node]) -> list[str]:
    """Distinct bound power sensors, in tree order."""
    ids = (node.power_sensor_id for node in walk_forest(forest) if node.power_sensor_id)
    return list(dict.fromkeys(ids))


def compute_histories(
    forest: list[Node],
    samples: dict[str, list[HistorySample]],
    bucket_count: int,
    bucket_duration: float,
    now: float,
) -> dict[str, list[float]]:
    """Resampled history per node id, computed without touching the nodes."""
    per_sensor: dict[str, list[float]] = {}
    result: dict[str, list[float]] = {}

    for node in walk_forest_post_order(forest):
        if node.is_unmeasured:
            continue  # filled by its parent below
        if node.is_virtual:
            values = sum_histories([result[c.id] for c in node.measured_children])
            if not values:
                values = [0.0] * bucket_count
        else:
            sensor = node.power_sensor_id
            if sensor not in per_sensor:
                entity_samples = samples.get(sensor, [])
                if not entity_samples:
                    logger.debug("No history for %s, backfilling zeros", sensor)
                per_sensor[sensor] = resample(entity_samples, bucket_count, bucket_duration, now)
            values = [node.value_type.apply(v) for v in per_sensor[sensor]]
        result[node.id] = values

        unmeasured = node.unmeasured_child
        if unmeasured is not None:
            result[unmeasured.id] = residual_history(
                values, [result[c.id] for c in node.measured_children],
            )
    return result


def apply_histories(forest: list[Node], histories: dict[str, list[float]]) -> None:
    """Replace every node's history in one pass, then reattribute."""
    for node in walk_forest(forest):
        values = histories.get(node.id)
        if values is not None:
            node.replace_history(values)
    attribute_sources(forest)


async def backfill(
    forest: list[Node],
    history_source: HistorySource,
    bucket_count: int,
    bucket_duration: float,
    now: float | None = None,
) -> bool:
    """Backfill the forest's history. Returns False when nothing was applied."""
    ids = sensor_ids(forest)
    if not ids:
        logger.info("No sensors in forest, skipping history backfill")
        return False

    now = time.time() if now is None else now
    start = datetime.fromtimestamp(now - bucket_count * bucket_duration, tz=timezone.utc)
    end = datetime.fromtimestamp(now, tz=timezone.utc)

    logger.info("Backfilling %d buckets x %ss for %d sensors", bucket_count, bucket_duration, len(ids))
    try:
        samples = await history_source.fetch_history(ids, start, end)
    except Exception as e:
        logger.error("History backfill failed, keeping live history: %s", e)
        return False

    # No awaits past this point: the tick loop cannot interleave with the swap
    histories = compute_histories(forest, samples, bucket_count, bucket_duration, now)
    apply_histories(forest, histories)
    logger.info("History backfill applied to %d nodes", len(histories))
    return True
