"""Log context enrichment for engine passes."""

from __future__ import annotations

import contextlib
from typing import Iterator

import structlog


def bind_context(**kwargs: object) -> None:
    """Bind key-value pairs to the current logging context (task-local)."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


@contextlib.contextmanager
def engine_pass(name: str, **kwargs: object) -> Iterator[None]:
    """Tag every log line emitted inside one tick or backfill pass."""
    with structlog.contextvars.bound_contextvars(engine_pass=name, **kwargs):
        yield
