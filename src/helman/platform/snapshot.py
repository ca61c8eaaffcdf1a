"""Registry snapshot: registries read from a dumped YAML/JSON document.

The document mirrors the host's websocket payloads:

    energy_prefs:
      device_consumption:
        - stat_consumption: sensor.washer_energy
          included_in_stat: sensor.house_energy
    entity_registry:
      - {entity_id: sensor.washer_power, device_id: abc, labels: [power_main]}
    device_registry:
      - {id: abc, name: Washer}
    label_registry:
      - {label_id: power_main, name: Main power}
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from helman.platform.base import (
    ConsumptionDeclaration,
    DeviceRegistryEntry,
    EntityRegistryEntry,
    LabelRegistryEntry,
    RegistrySource,
)

logger = logging.getLogger(__name__)


class RegistrySnapshot(RegistrySource):
    """In-memory registry source built from one snapshot document."""

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        data = data or {}
        prefs = data.get("energy_prefs") or {}
        self._declarations = self._parse_declarations(prefs.get("device_consumption") or [])
        self._entities = self._parse_entities(data.get("entity_registry") or [])
        self._devices = self._parse_devices(data.get("device_registry") or [])
        self._labels = self._parse_labels(data.get("label_registry") or [])

    @classmethod
    def from_file(cls, path: Path) -> RegistrySnapshot:
        with open(path) as f:
            data = yaml.safe_load(f)
        if not isinstance(data, dict):
            logger.warning("Registry snapshot %s is empty or not a mapping", path)
            data = {}
        return cls(data)

    async def consumption_declarations(self) -> list[ConsumptionDeclaration]:
        return list(self._declarations)

    async def entity_registry(self) -> list[EntityRegistryEntry]:
        return list(self._entities)

    async def device_registry(self) -> list[DeviceRegistryEntry]:
        return list(self._devices)

    async def label_registry(self) -> list[LabelRegistryEntry]:
        return list(self._labels)

    @staticmethod
    def _parse_declarations(raw: list[dict]) -> list[ConsumptionDeclaration]:
        result = []
        for entry in raw:
            stat = entry.get("stat_consumption")
            if not stat:
                logger.warning("Skipping consumption entry without stat_consumption: %r", entry)
                continue
            result.append(ConsumptionDeclaration(stat, entry.get("included_in_stat") or None))
        return result

    @staticmethod
    def _parse_entities(raw: list[dict]) -> list[EntityRegistryEntry]:
        return [
            EntityRegistryEntry(
                entity_id=e["entity_id"],
                device_id=e.get("device_id"),
                labels=tuple(e.get("labels") or ()),
            )
            for e in raw
            if e.get("entity_id")
        ]

    @staticmethod
    def _parse_devices(raw: list[dict]) -> list[DeviceRegistryEntry]:
        # name_by_user wins over the integration-provided name
        return [
            DeviceRegistryEntry(
                device_id=d["id"],
                name=d.get("name_by_user") or d.get("name") or "",
            )
            for d in raw
            if d.get("id")
        ]

    @staticmethod
    def _parse_labels(raw: list[dict]) -> list[LabelRegistryEntry]:
        return [
            LabelRegistryEntry(label_id=lbl["label_id"], name=lbl.get("name", ""))
            for lbl in raw
            if lbl.get("label_id")
        ]
