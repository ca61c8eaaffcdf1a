"""Per-bucket attribution of consumed power to energy sources.

For bucket ``i`` every non-source node gets::

    share[src] = node[i] * source[i] / sum(all sources[i])

Unmeasured nodes mirror the residual inference per source instead:
``max(0, parent_share[src] - sum(sibling_share[src]))``, dropping entries
that are not positive. Buckets with no source power or no node power get an
empty breakdown. Source nodes are attribution leaves and carry no breakdown.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Iterator, Sequence, TypeVar

from helman.tree.node import Node, SourceBreakdown, SourceShare, walk_forest

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _aligned(seq: Sequence[T], i: int, length: int) -> T | None:
    """Item of ``seq`` lining up with bucket ``i`` of a ``length``-long history.

    Histories are right-aligned: the newest buckets always correspond.
    """
    j = len(seq) - length + i
    if 0 <= j < len(seq):
        return seq[j]
    return None


def _visit(node: Node, parent: Node | None) -> Iterator[tuple[Node, Node | None]]:
    """Pre-order walk; the unmeasured child comes after its measured siblings."""
    yield node, parent
    for child in sorted(node.children, key=lambda c: c.is_unmeasured):
        yield from _visit(child, node)


def _sources(forest: list[Node]) -> list[Node]:
    return [n for n in walk_forest(forest) if n.is_source]


def _source_total(sources: list[Node], i: int, length: int) -> float:
    return sum(_aligned(s.power_history, i, length) or 0.0 for s in sources)


def _proportional(node: Node, sources: list[Node], i: int) -> SourceBreakdown:
    length = len(node.power_history)
    power = node.power_history[i]
    total = _source_total(sources, i, length)
    if total <= 0 or power <= 0:
        return {}
    breakdown: SourceBreakdown = {}
    for source in sources:
        source_power = _aligned(source.power_history, i, length) or 0.0
        breakdown[source.id] = SourceShare(power=power * source_power / total, color=source.color)
    return breakdown


def _residual(node: Node, parent: Node, i: int) -> SourceBreakdown:
    length = len(node.power_history)
    parent_breakdown = _aligned(parent.source_power_history, i, length) or {}
    siblings = [
        _aligned(s.source_power_history, i, length) or {}
        for s in parent.measured_children
    ]
    breakdown: SourceBreakdown = {}
    for source_id, share in parent_breakdown.items():
        value = share.power - sum(s[source_id].power for s in siblings if source_id in s)
        if value > 0:
            breakdown[source_id] = SourceShare(power=value, color=share.color)
    return breakdown


def _bucket_breakdown(
    node: Node, parent: Node | None, sources: list[Node], i: int,
) -> SourceBreakdown:
    if node.is_unmeasured and parent is not None:
        return _residual(node, parent, i)
    return _proportional(node, sources, i)


def attribute_sources(forest: list[Node]) -> None:
    """Recompute the full ``source_power_history`` of every node."""
    sources = _sources(forest)
    for root in forest:
        for node, parent in _visit(root, None):
            if node.is_source:
                node.source_power_history.clear()
                continue
            node.source_power_history = deque(
                (_bucket_breakdown(node, parent, sources, i) for i in range(len(node.power_history))),
                maxlen=node.history_buckets,
            )
    logger.debug("Attributed %d nodes to %d sources", sum(1 for _ in walk_forest(forest)), len(sources))


def attribute_latest_bucket(forest: list[Node]) -> None:
    """Refresh only the open bucket's breakdown (live path)."""
    sources = _sources(forest)
    for root in forest:
        for node, parent in _visit(root, None):
            length = len(node.power_history)
            if node.is_source or length == 0:
                continue
            breakdown = _bucket_breakdown(node, parent, sources, length - 1)
            history = node.source_power_history
            if len(history) == length:
                history[-1] = breakdown
                continue
            if len(history) > length:
                node.source_power_history = history = deque(
                    list(history)[-length:], maxlen=node.history_buckets,
                )
                history[-1] = breakdown
                continue
            while len(history) < length - 1:
                history.append({})
            history.append(breakdown)
