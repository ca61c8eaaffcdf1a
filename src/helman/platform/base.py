"""Host platform records and the abstract read-only sources the core consumes."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class ConsumptionDeclaration:
    """One energy-dashboard device consumption entry."""

    stat_id: str
    included_in_stat: str | None = None


@dataclass(frozen=True)
class EntityRegistryEntry:
    entity_id: str
    device_id: str | None = None
    labels: tuple[str, ...] = ()  # label ids


@dataclass(frozen=True)
class DeviceRegistryEntry:
    device_id: str
    name: str


@dataclass(frozen=True)
class LabelRegistryEntry:
    label_id: str
    name: str


@dataclass(frozen=True)
class EntityState:
    """Current state of one entity in the live state store."""

    entity_id: str
    state: str
    attributes: dict[str, Any] = field(default_factory=dict)

    @property
    def friendly_name(self) -> str | None:
        return self.attributes.get("friendly_name")

    @property
    def device_class(self) -> str | None:
        return self.attributes.get("device_class")

    @property
    def unit_of_measurement(self) -> str | None:
        return self.attributes.get("unit_of_measurement")

    @property
    def icon(self) -> str | None:
        return self.attributes.get("icon")


@dataclass(frozen=True)
class HistorySample:
    """Minimal historical sample: raw state string and last update (epoch seconds)."""

    state: str
    last_updated: float


@dataclass
class Registries:
    """Everything the tree builder reads from the host registries."""

    declarations: list[ConsumptionDeclaration] = field(default_factory=list)
    entities: list[EntityRegistryEntry] = field(default_factory=list)
    devices: list[DeviceRegistryEntry] = field(default_factory=list)
    labels: list[LabelRegistryEntry] = field(default_factory=list)


StateMap = dict[str, EntityState]


class RegistrySource(ABC):
    """Read-only access to the consumption declarations and registries."""

    @abstractmethod
    async def consumption_declarations(self) -> list[ConsumptionDeclaration]:
        ...

    @abstractmethod
    async def entity_registry(self) -> list[EntityRegistryEntry]:
        ...

    @abstractmethod
    async def device_registry(self) -> list[DeviceRegistryEntry]:
        ...

    @abstractmethod
    async def label_registry(self) -> list[LabelRegistryEntry]:
        ...


class StateSource(ABC):
    """Read-only access to the live state store."""

    @abstractmethod
    async def get_states(self) -> StateMap:
        ...


class HistorySource(ABC):
    """Historical samples query, oldest first per entity."""

    @abstractmethod
    async def fetch_history(
        self,
        entity_ids: list[str],
        start: datetime,
        end: datetime,
    ) -> dict[str, list[HistorySample]]:
        ...


async def load_registries(source: RegistrySource) -> Registries:
    """Fetch all four registry lists from a registry source."""
    declarations, entities, devices, labels = await asyncio.gather(
        source.consumption_declarations(),
        source.entity_registry(),
        source.device_registry(),
        source.label_registry(),
    )
    return Registries(
        declarations=list(declarations),
        entities=list(entities),
        devices=list(devices),
        labels=list(labels),
    )
