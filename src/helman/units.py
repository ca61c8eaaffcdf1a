"""Energy unit conversion for today/remaining energy sensors."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

# unit (lower-case) -> factor to kWh
_TO_KWH: dict[str, float] = {
    "wh": 0.001,
    "w⋅h": 0.001,
    "kwh": 1.0,
    "kw⋅h": 1.0,
    "mwh": 1000.0,
    "mw⋅h": 1000.0,
    "gwh": 1_000_000.0,
    "gw⋅h": 1_000_000.0,
}


def convert_to_kwh(value: float, unit: str | None) -> float:
    """Convert an energy reading to kWh.

    Missing or unknown units are assumed to be Wh.
    """
    if not unit:
        logger.warning("No unit_of_measurement for energy sensor, assuming Wh")
        return value / 1000
    factor = _TO_KWH.get(unit.lower())
    if factor is None:
        logger.warning("Unknown energy unit %r, assuming Wh", unit)
        return value / 1000
    return value * factor


def display_energy_unit(kwh: float) -> tuple[float, str]:
    """Pick a display unit by magnitude: GWh, MWh, kWh, or Wh below 0.1 kWh."""
    if kwh >= 1_000_000:
        return kwh / 1_000_000, "GWh"
    if kwh >= 1000:
        return kwh / 1000, "MWh"
    if kwh >= 0.1:
        return kwh, "kWh"
    return kwh * 1000, "Wh"
