"""Power-flow engine: builds the forest, ticks the rolling history, backfills once.

Lifecycle:
  rebuild (registries + states -> forest) -> start tick task + backfill task
  -> live samples between ticks -> stop (tick task released)

Everything runs on one event loop. Tick and backfill only mutate the forest
in synchronous sections between awaits, so neither sees a half-written node.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from helman.config.schema import HelmanConfig
from helman.errors import FetchFailure, MissingSample
from helman.history import rolling
from helman.history.backfill import backfill
from helman.history.resample import parse_power_state
from helman.logging.context import bind_context, engine_pass
from helman.platform.base import (
    HistorySource,
    RegistrySource,
    StateMap,
    StateSource,
    load_registries,
)
from helman.tree.builder import PowerForest, build_power_forest
from helman.tree.node import Node, walk_forest
from helman.units import convert_to_kwh

logger = logging.getLogger(__name__)


@dataclass
class EngineState:
    """Snapshot of the engine's progress."""

    tick_count: int = 0
    last_tick_at: datetime | None = None
    last_backfill_at: datetime | None = None
    backfill_applied: bool = False
    is_running: bool = False


class PowerFlowEngine:
    """Owns the forest and the two async flows that update it.

    The periodic tick fires every ``history_bucket_duration`` seconds and
    never overlaps itself. The backfill is one-shot per build; when it resolves
    it overwrites whatever the ticks have produced so far.
    """

    def __init__(
        self,
        config: HelmanConfig,
        registry_source: RegistrySource,
        state_source: StateSource,
        history_source: HistorySource,
    ) -> None:
        self._config = config
        self._registry_source = registry_source
        self._state_source = state_source
        self._history_source = history_source
        self._forest = PowerForest()
        self._states: StateMap = {}
        self._state = EngineState()
        self._stop_event = asyncio.Event()
        self._tick_task: asyncio.Task | None = None
        self._backfill_task: asyncio.Task | None = None

    @property
    def config(self) -> HelmanConfig:
        return self._config

    @property
    def forest(self) -> PowerForest:
        return self._forest

    @property
    def roots(self) -> list[Node]:
        return self._forest.roots

    @property
    def state(self) -> EngineState:
        return self._state

    async def rebuild(self) -> PowerForest:
        """Rebuild the forest from scratch; all history is discarded."""
        registries = await load_registries(self._registry_source)
        self._states = await self._state_source.get_states()
        self._forest = build_power_forest(registries, self._states, self._config)
        node_count = sum(1 for _ in walk_forest(self._forest.roots))
        bind_context(forest_nodes=node_count)
        logger.info(
            "Forest rebuilt: %d sources, %d house roots, %d nodes",
            len(self._forest.sources), len(self._forest.house), node_count,
        )
        return self._forest

    async def reconfigure(self, config: HelmanConfig) -> None:
        """Swap the configuration, rebuild, and restart ticking and backfill.

        The tick loop is restarted so the new bucket duration applies from the
        first bucket of the new forest.
        """
        self._config = config
        await self._cancel_backfill()
        await self._cancel_tick()
        await self.rebuild()
        if self._state.is_running:
            self._tick_task = asyncio.create_task(self._run())
            self._backfill_task = asyncio.create_task(self.run_backfill())

    async def tick_once(self) -> None:
        """Execute one period: roll every window, then record current values."""
        self._state.tick_count += 1
        self._state.last_tick_at = datetime.now(timezone.utc)
        with engine_pass("tick", tick=self._state.tick_count):
            try:
                self._states = await self._state_source.get_states()
            except FetchFailure as e:
                logger.warning("Tick %d: state fetch failed, reusing last states: %s",
                               self._state.tick_count, e)
            rolling.tick(self._forest.roots, self._states)

    def on_states(self, states: StateMap) -> None:
        """Fold a live state push into the open bucket (between ticks)."""
        self._states = states
        rolling.update_live(self._forest.roots, states)

    async def run_backfill(self) -> bool:
        with engine_pass("backfill"):
            applied = await backfill(
                self._forest.roots,
                self._history_source,
                self._config.history_buckets,
                self._config.history_bucket_duration,
            )
        self._state.last_backfill_at = datetime.now(timezone.utc)
        self._state.backfill_applied = applied
        return applied

    def energy_today_kwh(self, role: str) -> float | None:
        """Today's energy for a configured device (``today_energy`` entity), in kWh."""
        device = getattr(self._config.power_devices, role, None)
        if device is None or not device.entities.today_energy:
            return None
        state = self._states.get(device.entities.today_energy)
        if state is None:
            return None
        try:
            value = parse_power_state(state.state)
        except MissingSample:
            return None
        return convert_to_kwh(value, state.unit_of_measurement)

    async def start(self) -> None:
        """Build the forest if needed, then start ticking and backfilling."""
        if self._state.is_running:
            return
        if not self._forest.roots:
            await self.rebuild()
        self._stop_event.clear()
        self._state.is_running = True
        self._tick_task = asyncio.create_task(self._run())
        self._backfill_task = asyncio.create_task(self.run_backfill())

    async def stop(self) -> None:
        """Stop ticking and release both tasks, even mid-fetch."""
        self._stop_event.set()
        await self._cancel_backfill()
        await self._cancel_tick()
        self._state.is_running = False

    async def __aenter__(self) -> PowerFlowEngine:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    async def _run(self) -> None:
        logger.info("Tick loop starting (interval: %ds)", self._config.history_bucket_duration)
        try:
            while not self._stop_event.is_set():
                try:
                    await self.tick_once()
                except Exception:
                    logger.exception("Tick %d failed", self._state.tick_count)
                try:
                    # Re-read every period; reconfigure may change the duration
                    await asyncio.wait_for(
                        self._stop_event.wait(), timeout=self._config.history_bucket_duration,
                    )
                    break  # stop_event was set
                except asyncio.TimeoutError:
                    pass  # interval elapsed
        finally:
            logger.info("Tick loop stopped after %d ticks", self._state.tick_count)

    async def _cancel_tick(self) -> None:
        task, self._tick_task = self._tick_task, None
        await _cancel(task)

    async def _cancel_backfill(self) -> None:
        task, self._backfill_task = self._backfill_task, None
        await _cancel(task)


async def _cancel(task: asyncio.Task | None) -> None:
    if task is None or task.done():
        return
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task
