"""Weather token domain model - pure data structures independent of any oracle."""
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Dict, Optional


UINT24_MAX = 2 ** 24 - 1
UINT16_MAX = 2 ** 16 - 1
UINT8_MAX = 2 ** 8 - 1
UINT64_MAX = 2 ** 64 - 1
INT16_MIN = -(2 ** 15)
INT16_MAX = 2 ** 15 - 1

ENDPOINT_LOCATION_CURRENT_CONDITIONS = "location-current-conditions"
HISTORY_LIMIT = 64  # applied request ids kept per token


class PrecipitationType(IntEnum):
    """Provider precipitation categories, in wire order."""
    NONE = 0
    RAIN = 1
    SNOW = 2
    ICE = 3
    MIXED = 4


class ImageBucket(str, Enum):
    """The four conditional image slots a token is minted with."""
    CLEAR = "clear"
    RAIN = "rain"
    SNOW = "snow"
    WINTRY = "wintry"


# Five precipitation categories collapse onto four images
PRECIPITATION_BUCKETS: Dict[PrecipitationType, ImageBucket] = {
    PrecipitationType.NONE: ImageBucket.CLEAR,
    PrecipitationType.RAIN: ImageBucket.RAIN,
    PrecipitationType.SNOW: ImageBucket.SNOW,
    PrecipitationType.ICE: ImageBucket.WINTRY,
    PrecipitationType.MIXED: ImageBucket.WINTRY,
}

PRECIPITATION_LABELS: Dict[PrecipitationType, str] = {
    PrecipitationType.NONE: "None",
    PrecipitationType.RAIN: "Rain",
    PrecipitationType.SNOW: "Snow",
    PrecipitationType.ICE: "Ice",
    PrecipitationType.MIXED: "Mixed",
}


def check_range(name: str, value: int, low: int, high: int) -> int:
    """Validate that an integer field sits inside its provider-encoded range."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    if value < low or value > high:
        raise ValueError(f"{name}={value} outside [{low}, {high}]")
    return value


@dataclass(frozen=True)
class LocationResult:
    """Location half of an oracle fulfillment."""
    location_key: int
    name: str
    country_code: str  # ISO 3166 alpha-2, e.g. "US"

    def __post_init__(self):
        check_range("location_key", self.location_key, 0, UINT64_MAX)
        if len(self.country_code) != 2 or not self.country_code.isascii():
            raise ValueError(f"country_code must be 2 ASCII characters, got {self.country_code!r}")


@dataclass(frozen=True)
class CurrentConditionsResult:
    """Raw current-conditions record as delivered by the oracle."""
    timestamp: int  # UNIX timestamp (UTC) of the observation
    precipitation_past_12_hours: int
    precipitation_past_24_hours: int
    precipitation_past_hour: int
    pressure: int
    temperature: int  # signed, provider scaled
    wind_direction_degrees: int
    wind_speed: int
    precipitation_type: PrecipitationType
    relative_humidity: int  # percentage
    uv_index: int
    weather_icon: int

    def __post_init__(self):
        check_range("timestamp", self.timestamp, 0, UINT64_MAX)
        check_range("precipitation_past_12_hours", self.precipitation_past_12_hours, 0, UINT24_MAX)
        check_range("precipitation_past_24_hours", self.precipitation_past_24_hours, 0, UINT24_MAX)
        check_range("precipitation_past_hour", self.precipitation_past_hour, 0, UINT24_MAX)
        check_range("pressure", self.pressure, 0, UINT24_MAX)
        check_range("temperature", self.temperature, INT16_MIN, INT16_MAX)
        check_range("wind_direction_degrees", self.wind_direction_degrees, 0, 359)
        check_range("wind_speed", self.wind_speed, 0, UINT16_MAX)
        check_range("relative_humidity", self.relative_humidity, 0, 100)
        check_range("uv_index", self.uv_index, 0, UINT8_MAX)
        check_range("weather_icon", self.weather_icon, 0, UINT8_MAX)
        # Coerces raw ints; raises ValueError for anything outside the five categories
        object.__setattr__(self, "precipitation_type", PrecipitationType(self.precipitation_type))


@dataclass(frozen=True)
class WeatherSnapshot:
    """The displayed state of a token, replaced wholesale on each refresh."""
    location_name: str
    precipitation_type: PrecipitationType
    timestamp: int
    precipitation_past_24_hours: int
    pressure: int
    temperature: int
    wind_direction_degrees: int
    wind_speed: int
    relative_humidity: int
    uv_index: int

    @classmethod
    def blank(cls, location_name: str) -> "WeatherSnapshot":
        """Snapshot for a token that has not been materialized yet."""
        return cls(
            location_name=location_name,
            precipitation_type=PrecipitationType.NONE,
            timestamp=0,
            precipitation_past_24_hours=0,
            pressure=0,
            temperature=0,
            wind_direction_degrees=0,
            wind_speed=0,
            relative_humidity=0,
            uv_index=0,
        )

    @classmethod
    def from_conditions(cls, location_name: str, conditions: CurrentConditionsResult) -> "WeatherSnapshot":
        """Project a raw conditions record onto the fields a token retains."""
        return cls(
            location_name=location_name,
            precipitation_type=PrecipitationType(conditions.precipitation_type),
            timestamp=conditions.timestamp,
            precipitation_past_24_hours=conditions.precipitation_past_24_hours,
            pressure=conditions.pressure,
            temperature=conditions.temperature,
            wind_direction_degrees=conditions.wind_direction_degrees,
            wind_speed=conditions.wind_speed,
            relative_humidity=conditions.relative_humidity,
            uv_index=conditions.uv_index,
        )

    @property
    def is_blank(self) -> bool:
        return self.timestamp == 0

    @property
    def image_bucket(self) -> ImageBucket:
        return PRECIPITATION_BUCKETS[self.precipitation_type]


@dataclass
class RefreshTarget:
    """Per-token maintenance record."""
    location_name: str
    latitude: str
    longitude: str
    images: Dict[ImageBucket, str]
    last_update: float
    active: bool = True

    def is_due(self, now: float, cooldown_seconds: float) -> bool:
        """Check if this token is active and its cooldown has elapsed."""
        return self.active and self.last_update + cooldown_seconds <= now


@dataclass(frozen=True)
class PendingRequest:
    """Parameters of an issued oracle request, keyed by its request id."""
    request_id: str
    location_key: str
    endpoint: str
    latitude: str
    longitude: str
    units: str
    issued_at: float
    budget: int = 0


@dataclass(frozen=True)
class FulfilledObservation:
    """Decoded payloads of a successful fulfillment."""
    request_id: str
    location: LocationResult
    conditions: CurrentConditionsResult
    fulfilled_at: float


@dataclass
class TokenRecord:
    """Everything the engine holds for one token id."""
    token_id: int
    target: RefreshTarget
    snapshot: WeatherSnapshot
    awaiting_request: Optional[str] = None
    history: list = field(default_factory=list)  # request ids applied, oldest first

    def remember(self, request_id: str) -> None:
        """Record an applied request id, keeping only the newest HISTORY_LIMIT."""
        self.history.append(request_id)
        del self.history[:-HISTORY_LIMIT]
