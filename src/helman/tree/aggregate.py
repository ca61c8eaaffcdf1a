"""Virtual node aggregation: value and history as the sum of children."""

from __future__ import annotations

from helman.tree.node import Node


def aggregate_virtual_power(node: Node) -> float:
    """Sum of the measured children's current power."""
    return sum(child.current_power for child in node.measured_children)


def sum_histories(histories: list[list[float]]) -> list[float]:
    """Bucket-wise sum, right-aligned so the newest buckets line up."""
    if not histories:
        return []
    length = max(len(h) for h in histories)
    totals = [0.0] * length
    for history in histories:
        offset = length - len(history)
        for i, value in enumerate(history):
            totals[offset + i] += value
    return totals


def aggregate_virtual_history(node: Node) -> list[float]:
    """Bucket-wise sum of the measured children's current histories."""
    return sum_histories([list(child.power_history) for child in node.measured_children])
