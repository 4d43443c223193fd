"""Studio configuration snapshot: stations, bike models, pricing and hours."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from studio_booking import time_range


class StationStatus(str, Enum):
    """Operational status of a bike station."""

    AVAILABLE = "available"
    MAINTENANCE = "maintenance"
    DISABLED = "disabled"


class BikeModel(BaseModel):
    """Hardware model a station is equipped with."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: Optional[str] = None


class Station(BaseModel):
    """A physical bookable bike station."""

    model_config = ConfigDict(frozen=True)

    station_id: int
    bike_model_id: str
    status: StationStatus = StationStatus.AVAILABLE
    name: str = ""

    @model_validator(mode="before")
    @classmethod
    def default_name(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("name") and "station_id" in data:
            return {**data, "name": f"{data['station_id']}号骑行台"}
        return data


class BusinessHours(BaseModel):
    """Open/close window for one day, "HH:MM" strings with open < close."""

    model_config = ConfigDict(frozen=True)

    open: str
    close: str

    @field_validator("open", "close")
    @classmethod
    def check_time(cls, value: str) -> str:
        time_range.parse(value)
        return value

    @model_validator(mode="after")
    def check_open_before_close(self) -> "BusinessHours":
        if time_range.parse(self.open) >= time_range.parse(self.close):
            raise ValueError(f"open {self.open} must be earlier than close {self.close}")
        return self


class DayException(BaseModel):
    """Per-date override of the default window, including full closure."""

    model_config = ConfigDict(frozen=True)

    is_open: bool
    open: Optional[str] = None
    close: Optional[str] = None

    @field_validator("open", "close")
    @classmethod
    def check_time(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            time_range.parse(value)
        return value


class BusinessCalendarConfig(BaseModel):
    """Default business hours plus dated exceptions keyed by DateKey."""

    model_config = ConfigDict(frozen=True)

    default: BusinessHours
    exceptions: dict[str, DayException] = Field(default_factory=dict)


class StudioConfig(BaseModel):
    """Immutable snapshot of everything the coach configures.

    Admin updates never mutate a snapshot; they build a new one with
    ``model_copy(update=...)`` and a fresh ``updated_at``.
    """

    model_config = ConfigDict(frozen=True)

    price_per_hour: float = 100.0
    stations: list[Station] = Field(default_factory=list)
    bike_models: list[BikeModel] = Field(default_factory=list)
    business_hours: Optional[BusinessCalendarConfig] = None
    push_key: Optional[str] = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def default_studio_config() -> StudioConfig:
    """Studio snapshot used before the coach has saved any configuration."""
    from studio_booking.config import settings

    models = [
        BikeModel(id="stages-bike", name="Stages bike"),
        BikeModel(id="neo-bike", name="Neo bike"),
    ]
    stations = [
        Station(station_id=1, bike_model_id="stages-bike"),
        Station(station_id=2, bike_model_id="stages-bike"),
        Station(station_id=3, bike_model_id="neo-bike"),
        Station(station_id=4, bike_model_id="neo-bike"),
    ]
    return StudioConfig(
        price_per_hour=settings.studio.price_per_hour,
        stations=stations,
        bike_models=models,
        business_hours=BusinessCalendarConfig(
            default=BusinessHours(
                open=settings.studio.open_time, close=settings.studio.close_time
            ),
        ),
        push_key=settings.notify.send_key or None,
    )
