"""Shared test fixtures for Helman."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pytest

from helman.config.manager import ConfigManager
from helman.config.schema import HelmanConfig
from helman.platform.base import (
    ConsumptionDeclaration,
    DeviceRegistryEntry,
    EntityRegistryEntry,
    EntityState,
    HistorySample,
    HistorySource,
    LabelRegistryEntry,
    Registries,
    RegistrySource,
    StateMap,
    StateSource,
)


def power_state(entity_id: str, value: str | float, name: str | None = None) -> EntityState:
    return EntityState(
        entity_id=entity_id,
        state=str(value),
        attributes={
            "device_class": "power",
            "unit_of_measurement": "W",
            "friendly_name": name or entity_id,
        },
    )


def states_from(**values: float | str) -> StateMap:
    """``sensor_a_power=300`` -> {"sensor.a_power": EntityState(...)}."""
    result: StateMap = {}
    for key, value in values.items():
        entity_id = key.replace("sensor_", "sensor.", 1)
        result[entity_id] = power_state(entity_id, value)
    return result


class FakePlatform(RegistrySource, StateSource, HistorySource):
    """Registry, state and history source backed by plain attributes."""

    def __init__(
        self,
        registries: Registries | None = None,
        states: StateMap | None = None,
        history: dict[str, list[HistorySample]] | None = None,
    ) -> None:
        self.registries = registries or Registries()
        self.states: StateMap = states or {}
        self.history = history or {}
        self.history_error: Exception | None = None
        self.history_calls: list[tuple[list[str], datetime, datetime]] = []

    async def consumption_declarations(self) -> list[ConsumptionDeclaration]:
        return self.registries.declarations

    async def entity_registry(self) -> list[EntityRegistryEntry]:
        return self.registries.entities

    async def device_registry(self) -> list[DeviceRegistryEntry]:
        return self.registries.devices

    async def label_registry(self) -> list[LabelRegistryEntry]:
        return self.registries.labels

    async def get_states(self) -> StateMap:
        return dict(self.states)

    async def fetch_history(
        self, entity_ids: list[str], start: datetime, end: datetime,
    ) -> dict[str, list[HistorySample]]:
        self.history_calls.append((list(entity_ids), start, end))
        if self.history_error is not None:
            raise self.history_error
        return {e: self.history[e] for e in entity_ids if e in self.history}


def abc_registries() -> Registries:
    """Three devices: A at the root, B and C included in A."""
    return Registries(
        declarations=[
            ConsumptionDeclaration("sensor.a_energy"),
            ConsumptionDeclaration("sensor.b_energy", "sensor.a_energy"),
            ConsumptionDeclaration("sensor.c_energy", "sensor.a_energy"),
        ],
        entities=[
            EntityRegistryEntry("sensor.a_energy", "dev_a"),
            EntityRegistryEntry("sensor.a_power", "dev_a"),
            EntityRegistryEntry("sensor.b_energy", "dev_b"),
            EntityRegistryEntry("sensor.b_power", "dev_b"),
            EntityRegistryEntry("sensor.c_energy", "dev_c"),
            EntityRegistryEntry("sensor.c_power", "dev_c"),
        ],
        devices=[
            DeviceRegistryEntry("dev_a", "A"),
            DeviceRegistryEntry("dev_b", "B"),
            DeviceRegistryEntry("dev_c", "C"),
        ],
    )


@pytest.fixture
def config() -> HelmanConfig:
    """Provide a default test configuration (no house wrapper)."""
    return HelmanConfig()


@pytest.fixture
def small_config() -> HelmanConfig:
    """Short window so capacity tests stay readable."""
    return HelmanConfig(history_buckets=3, history_bucket_duration=10)


@pytest.fixture
def abc_states() -> StateMap:
    return states_from(sensor_a_power=300, sensor_b_power=100, sensor_c_power=50)


@pytest.fixture
def platform(abc_states: StateMap) -> FakePlatform:
    return FakePlatform(registries=abc_registries(), states=abc_states)


@pytest.fixture
def config_manager(tmp_path: Path) -> ConfigManager:
    """Provide a config manager with test paths."""
    defaults = tmp_path / "helman.defaults.yaml"
    defaults.write_text("history_buckets: 30\n")
    user = tmp_path / "helman.yaml"
    mgr = ConfigManager(defaults_path=defaults, user_path=user)
    mgr.load()
    return mgr
