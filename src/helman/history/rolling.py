"""Rolling history, live path.

Every period ``tick`` rolls each node's window forward (carrying the last
bucket as the new open bucket) and then folds in the current live values.
Live samples between ticks only update the open bucket's running mean.
"""

from __future__ import annotations

import logging

from helman.errors import MissingSample
from helman.history.attribution import attribute_latest_bucket
from helman.history.resample import parse_power_state
from helman.platform.base import StateMap
from helman.tree.aggregate import aggregate_virtual_power
from helman.tree.node import Node, walk_forest
from helman.tree.unmeasured import unmeasured_power

logger = logging.getLogger(__name__)


def read_power(node: Node, states: StateMap) -> float:
    """Current sensor reading with the node's sign convention; missing -> 0."""
    if not node.power_sensor_id:
        return 0.0
    state = states.get(node.power_sensor_id)
    try:
        raw = parse_power_state(state.state if state is not None else None)
    except MissingSample as e:
        logger.debug("No live power for %s (%s), using 0", node.power_sensor_id, e)
        raw = 0.0
    return node.value_type.apply(raw)


def _update_node(node: Node, states: StateMap) -> None:
    for child in node.measured_children:
        _update_node(child, states)

    if node.is_virtual:
        node.record_live_power(aggregate_virtual_power(node))
    else:
        node.record_live_power(read_power(node, states))

    unmeasured = node.unmeasured_child
    if unmeasured is not None:
        unmeasured.record_live_power(unmeasured_power(node))


def update_live(forest: list[Node], states: StateMap) -> None:
    """Fold one live sample per node into the open bucket, bottom-up.

    Virtual nodes sum their children, unmeasured nodes take the residual,
    and the open bucket's source attribution is refreshed.
    """
    for root in forest:
        _update_node(root, states)
    attribute_latest_bucket(forest)


def advance(forest: list[Node]) -> None:
    """Roll every node's window forward by one bucket."""
    for node in walk_forest(forest):
        node.roll_history()


def tick(forest: list[Node], states: StateMap) -> None:
    """One period: roll the window, then record the current values."""
    advance(forest)
    update_live(forest, states)
