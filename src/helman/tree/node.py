"""Power tree node model."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator


class NodeKind(Enum):
    """Tagged node variant. Each kind only uses the bindings it needs."""

    PHYSICAL = "physical"  # Bound to an external power sensor
    VIRTUAL = "virtual"  # Value and history are the sum of children
    UNMEASURED = "unmeasured"  # Residual between parent and known children
    SOURCE = "source"  # Energy source feeding attribution


class ValueType(str, Enum):
    """Sign convention applied to raw sensor readings."""

    DEFAULT = "default"
    POSITIVE = "positive"  # Negative readings clamp to 0
    NEGATIVE = "negative"  # Magnitude of the negative part only

    def apply(self, raw: float) -> float:
        if self is ValueType.POSITIVE:
            return max(raw, 0.0)
        if self is ValueType.NEGATIVE:
            return abs(min(raw, 0.0))
        return raw


class HistoryState(Enum):
    EMPTY = "empty"
    FILLING = "filling"
    FULL = "full"


@dataclass(frozen=True)
class SourceShare:
    """Power attributed to one source within one bucket."""

    power: float
    color: str


SourceBreakdown = dict[str, SourceShare]


@dataclass(eq=False)
class Node:
    """One element of the power hierarchy.

    ``power_history`` is bounded to ``history_buckets`` entries, oldest first.
    The last entry is the open bucket and holds the running mean of all live
    samples recorded since the last rollover.
    """

    id: str
    name: str
    kind: NodeKind = NodeKind.PHYSICAL
    power_sensor_id: str | None = None
    switch_entity_id: str | None = None
    value_type: ValueType = ValueType.DEFAULT
    history_buckets: int = 60
    color: str = ""
    children: list[Node] = field(default_factory=list)
    custom_label_texts: tuple[str, ...] = ()
    power_value: float | None = None
    power_history: deque[float] = field(init=False, repr=False)
    source_power_history: deque[SourceBreakdown] = field(init=False, repr=False)
    _live_sum: float = field(default=0.0, init=False, repr=False)
    _live_count: int = field(default=0, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.history_buckets < 1:
            raise ValueError(f"history_buckets must be >= 1, got {self.history_buckets}")
        if self.kind in (NodeKind.VIRTUAL, NodeKind.UNMEASURED) and self.power_sensor_id:
            raise ValueError(f"{self.kind.value} node {self.id!r} cannot bind a power sensor")
        if self.kind is NodeKind.UNMEASURED and self.switch_entity_id:
            raise ValueError(f"Unmeasured node {self.id!r} cannot bind a switch")
        if self.kind in (NodeKind.PHYSICAL, NodeKind.SOURCE) and not self.power_sensor_id:
            raise ValueError(f"{self.kind.value} node {self.id!r} needs a power sensor")
        self.power_history = deque(maxlen=self.history_buckets)
        self.source_power_history = deque(maxlen=self.history_buckets)

    @property
    def is_virtual(self) -> bool:
        return self.kind is NodeKind.VIRTUAL

    @property
    def is_unmeasured(self) -> bool:
        return self.kind is NodeKind.UNMEASURED

    @property
    def is_source(self) -> bool:
        return self.kind is NodeKind.SOURCE

    @property
    def unmeasured_child(self) -> Node | None:
        for child in self.children:
            if child.is_unmeasured:
                return child
        return None

    @property
    def measured_children(self) -> list[Node]:
        """Children excluding the synthetic unmeasured one."""
        return [c for c in self.children if not c.is_unmeasured]

    @property
    def history_state(self) -> HistoryState:
        if not self.power_history:
            return HistoryState.EMPTY
        if len(self.power_history) < self.history_buckets:
            return HistoryState.FILLING
        return HistoryState.FULL

    @property
    def current_power(self) -> float:
        return self.power_value or 0.0

    def record_live_power(self, power: float) -> None:
        """Fold one live sample into the open bucket's running mean."""
        self._live_sum += power
        self._live_count += 1
        if not self.power_history:
            self.power_history.append(0.0)
        self.power_history[-1] = self._live_sum / self._live_count if self._live_count > 0 else 0.0
        self.power_value = power

    def roll_history(self) -> None:
        """Open a new bucket carrying the last value forward; reset accumulators."""
        if self.power_history:
            # maxlen drops the oldest bucket once full
            self.power_history.append(self.power_history[-1])
        if self.source_power_history:
            self.source_power_history.append(dict(self.source_power_history[-1]))
        self._live_sum = 0.0
        self._live_count = 0

    def replace_history(
        self,
        values: list[float],
        breakdowns: list[SourceBreakdown] | None = None,
    ) -> None:
        """Swap in a complete history in one pass (backfill path)."""
        self.power_history = deque(values[-self.history_buckets:], maxlen=self.history_buckets)
        self.source_power_history = deque(
            (breakdowns or [])[-self.history_buckets:], maxlen=self.history_buckets,
        )
        self._live_sum = 0.0
        self._live_count = 0

    def walk(self) -> Iterator[Node]:
        """Pre-order traversal of this subtree."""
        yield self
        for child in self.children:
            yield from child.walk()

    def walk_post_order(self) -> Iterator[Node]:
        """Children before parents."""
        for child in self.children:
            yield from child.walk_post_order()
        yield self


def walk_forest(forest: list[Node]) -> Iterator[Node]:
    for root in forest:
        yield from root.walk()


def walk_forest_post_order(forest: list[Node]) -> Iterator[Node]:
    for root in forest:
        yield from root.walk_post_order()
