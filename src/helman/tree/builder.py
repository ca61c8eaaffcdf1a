"""Tree builder: consumption declarations + registries -> power forest.

Resolution order per declaration:
  energy entity -> owning device -> power sensor (label hint, else first)
  -> switch (label hint, else same friendly name as the device)
Declarations without a power sensor are skipped with a warning.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from helman.config.schema import DeviceConfig, HelmanConfig
from helman.errors import ResolutionFailure
from helman.platform.base import (
    ConsumptionDeclaration,
    DeviceRegistryEntry,
    EntityRegistryEntry,
    Registries,
    StateMap,
)
from helman.tree.naming import clean_device_name, resolve_label_texts
from helman.tree.node import Node, NodeKind, ValueType
from helman.tree.unmeasured import add_unmeasured_nodes

logger = logging.getLogger(__name__)

HOUSE_NODE_ID = "house"
POWER_DEVICE_CLASS = "power"
SWITCH_DOMAIN = "switch."


@dataclass
class PowerForest:
    """Sources, the house consumption tree, and the opposite-direction consumers."""

    sources: list[Node] = field(default_factory=list)
    house: list[Node] = field(default_factory=list)
    consumers: list[Node] = field(default_factory=list)

    @property
    def roots(self) -> list[Node]:
        return [*self.sources, *self.house, *self.consumers]


@dataclass
class _Resolved:
    declaration: ConsumptionDeclaration
    node: Node


class _RegistryIndex:
    """Lookup tables over the registries, preserving input order."""

    def __init__(self, registries: Registries) -> None:
        self.entities = {e.entity_id: e for e in registries.entities}
        self.devices = {d.device_id: d for d in registries.devices}
        self.labels = registries.labels
        self.entities_by_device: dict[str, list[EntityRegistryEntry]] = {}
        for entity in registries.entities:
            if entity.device_id:
                self.entities_by_device.setdefault(entity.device_id, []).append(entity)

    def label_id(self, label_name: str | None) -> str | None:
        if not label_name:
            return None
        for label in self.labels:
            if label.name == label_name:
                return label.label_id
        logger.debug("Label %r not found in label registry", label_name)
        return None


def _pick_by_label(
    candidates: list[EntityRegistryEntry], label_id: str | None,
) -> EntityRegistryEntry | None:
    if label_id is None:
        return None
    for entity in candidates:
        if label_id in entity.labels:
            return entity
    return None


def _resolve_power_entity(
    device_entities: list[EntityRegistryEntry],
    states: StateMap,
    preferred_label_id: str | None,
) -> EntityRegistryEntry | None:
    candidates = [
        e for e in device_entities
        if e.entity_id in states and states[e.entity_id].device_class == POWER_DEVICE_CLASS
    ]
    if not candidates:
        return None
    if len(candidates) > 1:
        preferred = _pick_by_label(candidates, preferred_label_id)
        if preferred is not None:
            return preferred
    return candidates[0]


def _resolve_switch_entity(
    device: DeviceRegistryEntry,
    device_entities: list[EntityRegistryEntry],
    states: StateMap,
    preferred_label_id: str | None,
) -> EntityRegistryEntry | None:
    candidates = [e for e in device_entities if e.entity_id.startswith(SWITCH_DOMAIN)]
    if not candidates:
        return None
    preferred = _pick_by_label(candidates, preferred_label_id)
    if preferred is not None:
        return preferred
    for entity in candidates:
        state = states.get(entity.entity_id)
        if state is not None and state.friendly_name == device.name:
            return entity
    return None


def _display_name(entity_id: str, states: StateMap, pattern: str) -> str:
    state = states.get(entity_id)
    name = (state.friendly_name if state else None) or entity_id
    return clean_device_name(name, pattern)


def _resolve_declaration(
    declaration: ConsumptionDeclaration,
    index: _RegistryIndex,
    states: StateMap,
    config: HelmanConfig,
) -> Node:
    """Build the node for one declaration or raise ResolutionFailure."""
    house = config.house
    energy_entity = index.entities.get(declaration.stat_id)
    if energy_entity is None or not energy_entity.device_id:
        raise ResolutionFailure(declaration.stat_id)
    device = index.devices.get(energy_entity.device_id)
    if device is None:
        raise ResolutionFailure(declaration.stat_id)

    device_entities = index.entities_by_device.get(device.device_id, [])
    power_entity = _resolve_power_entity(
        device_entities, states, index.label_id(house.power_sensor_label),
    )
    if power_entity is None:
        raise ResolutionFailure(declaration.stat_id)
    switch_entity = _resolve_switch_entity(
        device, device_entities, states, index.label_id(house.power_switch_label),
    )

    labels = tuple(dict.fromkeys((*energy_entity.labels, *power_entity.labels)))
    return Node(
        id=declaration.stat_id,
        name=_display_name(power_entity.entity_id, states, config.power_sensor_name_cleaner_regex),
        power_sensor_id=power_entity.entity_id,
        switch_entity_id=switch_entity.entity_id if switch_entity else None,
        history_buckets=config.history_buckets,
        custom_label_texts=resolve_label_texts(labels, index.labels, config.device_label_text),
    )


def _creates_cycle(stat_id: str, parent_id: str, parents: dict[str, str | None]) -> bool:
    """True when ``parent_id`` is ``stat_id`` or one of its descendants."""
    seen: set[str] = set()
    current: str | None = parent_id
    while current is not None and current not in seen:
        if current == stat_id:
            return True
        seen.add(current)
        current = parents.get(current)
    return False


def build_tree(registries: Registries, states: StateMap, config: HelmanConfig) -> list[Node]:
    """Build the house consumption forest, with unmeasured nodes added."""
    index = _RegistryIndex(registries)
    resolved: dict[str, _Resolved] = {}

    for declaration in registries.declarations:
        if declaration.stat_id in resolved:
            logger.warning("Duplicate consumption declaration %r ignored", declaration.stat_id)
            continue
        try:
            node = _resolve_declaration(declaration, index, states, config)
        except ResolutionFailure as e:
            logger.warning("%s. This device will be skipped.", e)
            continue
        resolved[declaration.stat_id] = _Resolved(declaration, node)

    parents = {
        stat_id: r.declaration.included_in_stat
        for stat_id, r in resolved.items()
        if r.declaration.included_in_stat in resolved
    }

    forest: list[Node] = []
    for stat_id, r in resolved.items():
        parent_id = parents.get(stat_id)
        if parent_id is not None and _creates_cycle(stat_id, parent_id, parents):
            logger.warning("Declaration %r is part of an inclusion cycle, using it as a root", stat_id)
            parents.pop(stat_id)
            parent_id = None
        if parent_id is None:
            forest.append(r.node)
        else:
            resolved[parent_id].node.children.append(r.node)

    house_cfg = config.house
    if house_cfg.power_entity or config.virtual_house:
        forest = [_house_root(house_cfg, forest, states, config)]

    add_unmeasured_nodes(forest, config.house.unmeasured_power_title)
    logger.info(
        "Built power tree: %d declarations, %d resolved, %d roots",
        len(registries.declarations), len(resolved), len(forest),
    )
    return forest


def _house_root(
    house_cfg: DeviceConfig, children: list[Node], states: StateMap, config: HelmanConfig,
) -> Node:
    sensor = house_cfg.power_entity
    if sensor:
        state = states.get(sensor)
        if state is not None and state.friendly_name:
            name = clean_device_name(state.friendly_name, config.power_sensor_name_cleaner_regex)
        else:
            name = house_cfg.consumption_name or sensor
        return Node(
            id=HOUSE_NODE_ID,
            name=name,
            power_sensor_id=sensor,
            history_buckets=config.history_buckets,
            children=children,
        )
    return Node(
        id=HOUSE_NODE_ID,
        name=house_cfg.consumption_name or "House",
        kind=NodeKind.VIRTUAL,
        history_buckets=config.history_buckets,
        children=children,
    )


# (role, source default name, consumer default name); None = no consumer side
_SOURCE_ROLES: list[tuple[str, str, str | None]] = [
    ("solar", "Solar", None),
    ("battery", "Battery discharge", "Battery charge"),
    ("grid", "Grid import", "Grid export"),
]


def build_source_nodes(config: HelmanConfig, states: StateMap) -> tuple[list[Node], list[Node]]:
    """Source nodes and their opposite-direction consumer nodes.

    Sign convention: positive readings are generation (solar), discharge
    (battery) or import (grid); negative readings are charge or export.
    """
    sources: list[Node] = []
    consumers: list[Node] = []
    for role, source_default, consumer_default in _SOURCE_ROLES:
        device: DeviceConfig | None = getattr(config.power_devices, role)
        if device is None or not device.power_entity:
            continue
        sensor = device.power_entity
        sources.append(
            Node(
                id=f"source:{role}",
                name=device.source_name or source_default,
                kind=NodeKind.SOURCE,
                power_sensor_id=sensor,
                value_type=ValueType.POSITIVE,
                history_buckets=config.history_buckets,
                color=config.source_color(role),
            )
        )
        if consumer_default is not None:
            consumers.append(
                Node(
                    id=f"consumer:{role}",
                    name=device.consumption_name or consumer_default,
                    power_sensor_id=sensor,
                    value_type=ValueType.NEGATIVE,
                    history_buckets=config.history_buckets,
                )
            )
    if not sources:
        logger.warning("No power sources configured, source attribution will be empty")
    return sources, consumers


def build_power_forest(
    registries: Registries, states: StateMap, config: HelmanConfig,
) -> PowerForest:
    """Full forest: sources, house consumption tree, export/charge consumers."""
    sources, consumers = build_source_nodes(config, states)
    return PowerForest(
        sources=sources,
        house=build_tree(registries, states, config),
        consumers=consumers,
    )


def find_node(forest: list[Node], node_id: str) -> Node | None:
    for root in forest:
        for node in root.walk():
            if node.id == node_id:
                return node
    return None

