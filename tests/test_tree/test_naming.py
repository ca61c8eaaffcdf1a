"""Tests for name cleanup, ordering and label texts."""

from __future__ import annotations

import logging

import pytest

from helman.platform.base import LabelRegistryEntry
from helman.tree.naming import (
    available_label_texts,
    clean_device_name,
    filter_by_label_texts,
    resolve_label_texts,
    sort_by_power_and_name,
)
from helman.tree.node import Node


def _node(node_id: str, power: float | None, labels: tuple[str, ...] = ()) -> Node:
    node = Node(id=node_id, name=node_id, power_sensor_id=f"sensor.{node_id}",
                custom_label_texts=labels)
    if power is not None:
        node.record_live_power(power)
    return node


class TestCleanDeviceName:
    def test_removes_all_matches(self) -> None:
        assert clean_device_name("Plug Kitchen Plug Power", r"Plug|Power") == "Kitchen"

    def test_no_pattern_is_noop(self) -> None:
        assert clean_device_name(" Washer ", "") == " Washer "

    def test_invalid_pattern_warns_and_keeps_name(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING):
            assert clean_device_name("Washer", "(unclosed") == "Washer"
        assert "Invalid name cleaner pattern" in caplog.text


class TestSortByPowerAndName:
    def test_power_descending_then_name(self) -> None:
        nodes = [_node("b", 10), _node("a", 10), _node("c", 50), _node("d", None)]
        assert [n.id for n in sort_by_power_and_name(nodes)] == ["c", "a", "b", "d"]


class TestLabelTexts:
    def test_resolves_configured_texts_only(self) -> None:
        labels = [LabelRegistryEntry("l1", "Kitchen"), LabelRegistryEntry("l2", "Heavy")]
        mapping = {"room": {"Kitchen": "K"}, "load": {"Heavy": "H", "Light": "L"}}
        assert resolve_label_texts(("l1", "l2", "l9"), labels, mapping) == ("K", "H")

    def test_no_mapping_gives_nothing(self) -> None:
        assert resolve_label_texts(("l1",), [LabelRegistryEntry("l1", "Kitchen")], {}) == ()

    def test_available_and_filter(self) -> None:
        nodes = [_node("a", 1, ("K", "H")), _node("b", 1, ("K",)), _node("c", 1)]
        assert available_label_texts(nodes) == ["H", "K"]
        assert [n.id for n in filter_by_label_texts(nodes, ["K"])] == ["a", "b"]
        assert [n.id for n in filter_by_label_texts(nodes, ["K", "H"])] == ["a"]
        assert len(filter_by_label_texts(nodes, [])) == 3
