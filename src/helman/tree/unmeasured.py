"""Unmeasured power inference: the gap between a parent and its known children."""

from __future__ import annotations

import logging

from helman.tree.node import Node, NodeKind

logger = logging.getLogger(__name__)

UNMEASURED_SUFFIX = ":unmeasured"


def add_unmeasured_nodes(forest: list[Node], title: str) -> int:
    """Append one unmeasured child to every node that has children.

    Idempotent: nodes that already own an unmeasured child are skipped, so
    running this twice on the same tree adds nothing. Returns the number of
    nodes added.
    """
    added = 0
    for root in forest:
        added += _augment(root, title)
    if added:
        logger.debug("Added %d unmeasured nodes", added)
    return added


def _augment(node: Node, title: str) -> int:
    added = 0
    if node.children and node.unmeasured_child is None:
        node.children.append(
            Node(
                id=f"{node.id}{UNMEASURED_SUFFIX}",
                name=title,
                kind=NodeKind.UNMEASURED,
                history_buckets=node.history_buckets,
            )
        )
        added += 1
    for child in node.children:
        added += _augment(child, title)
    return added


def residual(parent: float, children: list[float]) -> float:
    """max(0, parent - sum(children)); noise never yields negative power."""
    return max(0.0, parent - sum(children))


def unmeasured_power(node: Node) -> float:
    """Live residual for ``node``'s unmeasured child."""
    return residual(node.current_power, [c.current_power for c in node.measured_children])


def residual_history(parent: list[float], siblings: list[list[float]]) -> list[float]:
    """Bucket-wise residual of ``parent`` over its measured children."""
    aligned = [_right_align(s, len(parent)) for s in siblings]
    return [
        residual(value, [s[i] for s in aligned])
        for i, value in enumerate(parent)
    ]


def unmeasured_history(node: Node) -> list[float]:
    """Bucket-wise residual for ``node``'s unmeasured child."""
    return residual_history(
        list(node.power_history),
        [list(c.power_history) for c in node.measured_children],
    )


def _right_align(values: list[float], length: int) -> list[float]:
    """Pad missing oldest buckets with 0 so the newest buckets line up."""
    values = values[-length:] if length else []
    return [0.0] * (length - len(values)) + values
