"""Pydantic configuration models for the power-flow core."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class DeviceEntitiesConfig(_Frozen):
    power: str = ""  # Empty = no power sensor configured
    today_energy: str = ""
    remaining_today_energy_forecast: str = ""
    capacity: str = ""
    min_soc: str = ""
    max_soc: str = ""
    remaining_energy: str = ""


class DeviceConfig(_Frozen):
    """One of the top-level power devices (house, grid, battery, solar)."""

    entities: DeviceEntitiesConfig = DeviceEntitiesConfig()
    source_name: str = ""
    consumption_name: str = ""
    power_sensor_label: str = ""  # Preferred label when a device exposes several power sensors
    power_switch_label: str = ""  # Preferred label when a device exposes several switches
    unmeasured_power_title: str = "Unmeasured power"
    color: str = ""

    @property
    def power_entity(self) -> str | None:
        return self.entities.power or None


class PowerDevicesConfig(_Frozen):
    house: DeviceConfig | None = None
    grid: DeviceConfig | None = None
    battery: DeviceConfig | None = None
    solar: DeviceConfig | None = None


class HomeAssistantConfig(_Frozen):
    base_url: str = "http://homeassistant.local:8123"
    token: str = ""
    timeout_seconds: float = 30.0


class LoggingConfig(_Frozen):
    level: str = "INFO"
    format: str = "json"
    file: str = ""


# Default source colours, used when a device config leaves ``color`` empty
DEFAULT_SOURCE_COLORS: dict[str, str] = {
    "solar": "#ff9800",
    "grid": "#488fc2",
    "battery": "#4db6ac",
}


class HelmanConfig(_Frozen):
    """Root configuration model. Immutable once validated."""

    power_devices: PowerDevicesConfig = PowerDevicesConfig()
    power_sensor_name_cleaner_regex: str = ""
    # Sum the house from its devices when it has no power sensor of its own
    virtual_house: bool = False
    history_buckets: int = Field(60, ge=1)
    history_bucket_duration: int = Field(1, ge=1)  # seconds
    # Category -> (label name -> display text)
    device_label_text: dict[str, dict[str, str]] = Field(default_factory=dict)
    homeassistant: HomeAssistantConfig = HomeAssistantConfig()
    logging: LoggingConfig = LoggingConfig()

    @property
    def house(self) -> DeviceConfig:
        return self.power_devices.house or DeviceConfig()

    def source_color(self, role: str) -> str:
        device: DeviceConfig | None = getattr(self.power_devices, role, None)
        if device is not None and device.color:
            return device.color
        return DEFAULT_SOURCE_COLORS.get(role, "#9e9e9e")
