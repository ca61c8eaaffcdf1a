"""Error taxonomy for the power-flow core.

None of these are fatal: callers log and degrade to a partially populated
tree instead of aborting.
"""

from __future__ import annotations


class HelmanError(Exception):
    """Base class for all power-flow core errors."""


class ResolutionFailure(HelmanError):
    """A consumption declaration has no resolvable power sensor."""

    def __init__(self, stat_id: str) -> None:
        super().__init__(f"Could not find a power sensor for {stat_id!r}")
        self.stat_id = stat_id


class MalformedPattern(HelmanError):
    """The configured name cleanup pattern is not a valid regex."""


class MissingSample(HelmanError):
    """An external state is absent or not numeric."""


class FetchFailure(HelmanError):
    """A historical samples request to the host platform failed."""
