"""Home Assistant REST client for live states and historical samples.

API docs: https://developers.home-assistant.io/docs/api/rest/
Long-lived access token, bearer auth.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import httpx

from helman.config.schema import HomeAssistantConfig
from helman.errors import FetchFailure
from helman.platform.base import (
    EntityState,
    HistorySample,
    HistorySource,
    StateMap,
    StateSource,
)

logger = logging.getLogger(__name__)


class HomeAssistantClient(StateSource, HistorySource):
    """Implements the state and history sources over the REST API."""

    def __init__(
        self,
        config: HomeAssistantConfig,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._client = client or httpx.AsyncClient(
            base_url=config.base_url.rstrip("/"),
            headers={
                "Authorization": f"Bearer {config.token}",
                "Content-Type": "application/json",
            },
            timeout=config.timeout_seconds,
        )

    async def get_states(self) -> StateMap:
        """Fetch the full live state store."""
        try:
            resp = await self._client.get("/api/states")
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise FetchFailure(f"State fetch failed: {e}") from e

        states: StateMap = {}
        for item in _json_list(resp, "State"):
            if not isinstance(item, dict):
                continue
            entity_id = item.get("entity_id")
            if not entity_id:
                continue
            attributes = item.get("attributes")
            states[entity_id] = EntityState(
                entity_id=entity_id,
                state=str(item.get("state", "")),
                attributes=attributes if isinstance(attributes, dict) else {},
            )
        return states

    async def fetch_history(
        self,
        entity_ids: list[str],
        start: datetime,
        end: datetime,
    ) -> dict[str, list[HistorySample]]:
        """Fetch minimal history for the given entities, oldest first."""
        if not entity_ids:
            return {}

        try:
            resp = await self._client.get(
                f"/api/history/period/{start.isoformat()}",
                params={
                    "filter_entity_id": ",".join(entity_ids),
                    "end_time": end.isoformat(),
                    "minimal_response": "",
                    "no_attributes": "",
                },
            )
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise FetchFailure(f"History fetch failed: {e}") from e

        result = self._parse_history(_json_list(resp, "History"))
        logger.info(
            "Fetched history for %d/%d entities (%s to %s)",
            len(result), len(entity_ids), start.isoformat(), end.isoformat(),
        )
        return result

    async def is_healthy(self) -> bool:
        try:
            resp = await self._client.get("/api/")
            return resp.status_code == 200
        except httpx.HTTPError:
            return False

    async def close(self) -> None:
        await self._client.aclose()

    @staticmethod
    def _parse_history(data: list) -> dict[str, list[HistorySample]]:
        """Parse the per-entity history lists.

        With ``minimal_response`` only the first row of each list carries the
        entity id; later rows carry just ``state`` and ``last_changed``.
        """
        result: dict[str, list[HistorySample]] = {}
        for rows in data:
            if not rows or not isinstance(rows, list) or not isinstance(rows[0], dict):
                continue
            entity_id = rows[0].get("entity_id")
            if not entity_id:
                logger.warning("History list without entity_id, skipping")
                continue
            samples = []
            for row in rows:
                if not isinstance(row, dict):
                    continue
                ts = _parse_timestamp(row.get("last_updated") or row.get("last_changed"))
                if ts is None:
                    continue
                samples.append(HistorySample(state=str(row.get("state", "")), last_updated=ts))
            samples.sort(key=lambda s: s.last_updated)
            result[entity_id] = samples
        return result


def _parse_timestamp(value: object) -> float | None:
    if not value or not isinstance(value, str):
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Failed to parse history timestamp %r", value)
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


def _json_list(resp: httpx.Response, what: str) -> list:
    """Decode a JSON array body, raising FetchFailure for anything else."""
    try:
        payload = resp.json()
    except ValueError as e:
        raise FetchFailure(f"{what} response is not valid JSON: {e}") from e
    if not isinstance(payload, list):
        raise FetchFailure(f"{what} response is not a list: {type(payload).__name__}")
    return payload
