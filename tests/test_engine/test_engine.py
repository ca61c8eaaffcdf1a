"""Tests for the power-flow engine lifecycle."""

from __future__ import annotations

import asyncio

import pytest

from conftest import FakePlatform, abc_registries, power_state, states_from
from helman.config.schema import HelmanConfig
from helman.engine import PowerFlowEngine
from helman.errors import FetchFailure
from helman.platform.base import EntityState, HistorySample
from helman.tree.builder import find_node


class _FlakyStates(FakePlatform):
    """Fails every state fetch after the first."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.state_calls = 0

    async def get_states(self):
        self.state_calls += 1
        if self.state_calls > 1:
            raise FetchFailure("connection reset")
        return await super().get_states()


class _HungStates(FakePlatform):
    """State fetches after the first never resolve."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.state_calls = 0

    async def get_states(self):
        self.state_calls += 1
        if self.state_calls > 1:
            await asyncio.Event().wait()
        return await super().get_states()


class _HungHistory(FakePlatform):
    """History request that never resolves."""

    async def fetch_history(self, entity_ids, start, end):
        self.history_calls.append((list(entity_ids), start, end))
        await asyncio.Event().wait()


def _engine(platform: FakePlatform, config: HelmanConfig | None = None) -> PowerFlowEngine:
    return PowerFlowEngine(config or HelmanConfig(), platform, platform, platform)


async def _wait_for_ticks(engine: PowerFlowEngine, count: int) -> None:
    for _ in range(100):
        if engine.state.tick_count >= count:
            return
        await asyncio.sleep(0.01)
    raise AssertionError(f"engine did not reach {count} ticks")


class TestRebuild:
    async def test_builds_forest_from_sources(self, platform: FakePlatform) -> None:
        engine = _engine(platform)
        forest = await engine.rebuild()
        assert [r.id for r in forest.house] == ["sensor.a_energy"]
        assert forest.sources == [] and forest.consumers == []
        assert engine.roots == forest.roots

    async def test_reconfigure_rebuilds_with_new_window(self, platform: FakePlatform) -> None:
        engine = _engine(platform)
        await engine.rebuild()
        await engine.reconfigure(HelmanConfig(history_buckets=5))
        assert engine.config.history_buckets == 5
        assert all(node.history_buckets == 5 for root in engine.roots for node in root.walk())


class TestTick:
    async def test_tick_once_updates_tree(self, platform: FakePlatform) -> None:
        engine = _engine(platform)
        await engine.rebuild()
        await engine.tick_once()
        assert engine.state.tick_count == 1
        assert engine.state.last_tick_at is not None
        assert find_node(engine.roots, "sensor.a_energy:unmeasured").power_value == 150

    async def test_state_fetch_failure_reuses_last_states(self, abc_states) -> None:
        platform = _FlakyStates(registries=abc_registries(), states=abc_states)
        engine = _engine(platform)
        await engine.rebuild()
        await engine.tick_once()
        await engine.tick_once()
        assert platform.state_calls == 3
        a = find_node(engine.roots, "sensor.a_energy")
        assert list(a.power_history) == [300, 300]

    async def test_on_states_averages_open_bucket(self, platform: FakePlatform) -> None:
        engine = _engine(platform)
        await engine.rebuild()
        await engine.tick_once()
        engine.on_states(states_from(sensor_a_power=100, sensor_b_power=100, sensor_c_power=50))
        a = find_node(engine.roots, "sensor.a_energy")
        assert a.power_history[-1] == 200
        assert a.power_value == 100


class TestBackfill:
    async def test_run_backfill_records_outcome(self, abc_states) -> None:
        platform = FakePlatform(
            registries=abc_registries(),
            states=abc_states,
            history={"sensor.a_power": [HistorySample("300", 0.0)]},
        )
        engine = _engine(platform, HelmanConfig(history_buckets=4))
        await engine.rebuild()
        assert await engine.run_backfill() is True
        assert engine.state.backfill_applied is True
        assert engine.state.last_backfill_at is not None
        assert list(find_node(engine.roots, "sensor.a_energy").power_history) == [300.0] * 4

    async def test_failed_backfill_is_not_fatal(self, platform: FakePlatform) -> None:
        platform.history_error = FetchFailure("timeout")
        engine = _engine(platform)
        await engine.rebuild()
        assert await engine.run_backfill() is False
        assert engine.state.backfill_applied is False


class TestLifecycle:
    async def test_start_and_stop_release_tasks(self, platform: FakePlatform) -> None:
        engine = _engine(platform)
        await engine.start()
        assert engine.state.is_running
        await _wait_for_ticks(engine, 1)
        await engine.stop()
        assert not engine.state.is_running
        assert engine._tick_task is None
        assert engine._backfill_task is None

    async def test_hung_backfill_does_not_block_ticks(self, abc_states) -> None:
        platform = _HungHistory(registries=abc_registries(), states=abc_states)
        engine = _engine(platform)
        async with engine:
            await _wait_for_ticks(engine, 1)
            assert len(platform.history_calls) == 1
            assert engine.state.backfill_applied is False
            backfill_task = engine._backfill_task
            assert backfill_task is not None and not backfill_task.done()
        assert backfill_task.cancelled()
        assert engine._tick_task is None

    async def test_stop_releases_tick_stuck_in_state_fetch(self, abc_states) -> None:
        platform = _HungStates(registries=abc_registries(), states=abc_states)
        engine = _engine(platform)
        await engine.start()
        for _ in range(100):
            if platform.state_calls >= 2:
                break
            await asyncio.sleep(0.01)
        assert platform.state_calls >= 2

        await asyncio.wait_for(engine.stop(), timeout=1)

        assert engine._tick_task is None
        assert not engine.state.is_running

    async def test_reconfigure_applies_new_tick_period(self, platform: FakePlatform) -> None:
        engine = _engine(platform, HelmanConfig(history_bucket_duration=1))
        await engine.start()
        await _wait_for_ticks(engine, 1)
        old_task = engine._tick_task
        ticks = engine.state.tick_count

        await engine.reconfigure(HelmanConfig(history_bucket_duration=60))
        await _wait_for_ticks(engine, ticks + 1)
        assert engine._tick_task is not old_task
        assert old_task.done()

        # The old 1 s period would have ticked again by now
        await asyncio.sleep(1.3)
        assert engine.state.tick_count == ticks + 1
        await engine.stop()

    async def test_start_twice_is_noop(self, platform: FakePlatform) -> None:
        engine = _engine(platform)
        await engine.start()
        task = engine._tick_task
        await engine.start()
        assert engine._tick_task is task
        await engine.stop()


class TestEnergyToday:
    @pytest.mark.parametrize(
        ("state", "unit", "expected"),
        [("1500", "Wh", 1.5), ("2.5", "kWh", 2.5), ("unknown", "kWh", None)],
    )
    async def test_converts_to_kwh(self, state, unit, expected) -> None:
        states = {
            "sensor.a_power": power_state("sensor.a_power", 10),
            "sensor.solar_today": EntityState(
                "sensor.solar_today", state, {"unit_of_measurement": unit},
            ),
        }
        config = HelmanConfig(power_devices={"solar": {"entities": {"today_energy": "sensor.solar_today"}}})
        engine = _engine(FakePlatform(registries=abc_registries(), states=states), config)
        await engine.rebuild()
        assert engine.energy_today_kwh("solar") == expected

    async def test_unconfigured_role_gives_none(self, platform: FakePlatform) -> None:
        engine = _engine(platform)
        await engine.rebuild()
        assert engine.energy_today_kwh("grid") is None
