"""Display-name cleanup, ordering, and label-text helpers."""

from __future__ import annotations

import logging
import re
from functools import lru_cache

from helman.errors import MalformedPattern
from helman.platform.base import LabelRegistryEntry
from helman.tree.node import Node

logger = logging.getLogger(__name__)


@lru_cache(maxsize=32)
def _compile(pattern: str) -> re.Pattern[str]:
    try:
        return re.compile(pattern)
    except re.error as e:
        raise MalformedPattern(f"Invalid name cleaner pattern {pattern!r}: {e}") from e


def clean_device_name(name: str, pattern: str | None) -> str:
    """Remove every match of ``pattern`` from ``name`` and strip whitespace.

    An invalid pattern degrades to returning the name unchanged.
    """
    if not pattern:
        return name
    try:
        regex = _compile(pattern)
    except MalformedPattern as e:
        logger.warning("%s, leaving name unchanged", e)
        return name
    return regex.sub("", name).strip()


def sort_by_power_and_name(nodes: list[Node]) -> list[Node]:
    """Power descending, then name ascending. Returns a new list."""
    return sorted(nodes, key=lambda n: (-n.current_power, n.name.casefold()))


def resolve_label_texts(
    label_ids: tuple[str, ...],
    labels: list[LabelRegistryEntry],
    device_label_text: dict[str, dict[str, str]],
) -> tuple[str, ...]:
    """Map an entity's label ids to the configured display texts.

    ``device_label_text`` is keyed category -> label name -> text. Labels
    without a configured text are ignored.
    """
    if not label_ids or not device_label_text:
        return ()
    names = {lbl.label_id: lbl.name for lbl in labels}
    texts: list[str] = []
    for label_id in label_ids:
        name = names.get(label_id)
        if name is None:
            continue
        for mapping in device_label_text.values():
            text = mapping.get(name)
            if text and text not in texts:
                texts.append(text)
    return tuple(texts)


def available_label_texts(nodes: list[Node]) -> list[str]:
    """Distinct label texts across ``nodes``, sorted."""
    return sorted({text for node in nodes for text in node.custom_label_texts})


def filter_by_label_texts(nodes: list[Node], active: list[str]) -> list[Node]:
    """Nodes carrying every active label text; all nodes when none is active."""
    if not active:
        return list(nodes)
    return [n for n in nodes if set(active).issubset(n.custom_label_texts)]
