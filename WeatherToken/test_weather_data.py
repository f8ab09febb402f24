"""Tests for weather_data module."""
import pytest
from weather_data import (
    HISTORY_LIMIT,
    CurrentConditionsResult,
    ImageBucket,
    LocationResult,
    PrecipitationType,
    RefreshTarget,
    TokenRecord,
    WeatherSnapshot,
)


def make_conditions(**overrides):
    fields = dict(
        timestamp=1684929490,
        precipitation_past_12_hours=120,
        precipitation_past_24_hours=250,
        precipitation_past_hour=30,
        pressure=10140,
        temperature=-52,
        wind_direction_degrees=93,
        wind_speed=31,
        precipitation_type=PrecipitationType.SNOW,
        relative_humidity=89,
        uv_index=2,
        weather_icon=13,
    )
    fields.update(overrides)
    return CurrentConditionsResult(**fields)


def test_conditions_coerces_precipitation_type():
    """Raw integers become PrecipitationType members."""
    conditions = make_conditions(precipitation_type=3)
    assert conditions.precipitation_type is PrecipitationType.ICE


def test_conditions_rejects_unknown_precipitation_type():
    with pytest.raises(ValueError):
        make_conditions(precipitation_type=5)


@pytest.mark.parametrize("field,value", [
    ("wind_direction_degrees", 360),
    ("relative_humidity", 101),
    ("precipitation_past_24_hours", 2 ** 24),
    ("pressure", -1),
    ("temperature", 2 ** 15),
    ("uv_index", 256),
])
def test_conditions_rejects_out_of_range(field, value):
    """Numeric fields are bounded to the provider ranges."""
    with pytest.raises(ValueError):
        make_conditions(**{field: value})


def test_location_requires_two_letter_country():
    assert LocationResult(location_key=1, name="Austin", country_code="US").country_code == "US"
    with pytest.raises(ValueError):
        LocationResult(location_key=1, name="Austin", country_code="USA")


def test_snapshot_from_conditions_keeps_displayed_fields():
    """The snapshot keeps the 24h window and drops 12h, 1h and the icon."""
    snapshot = WeatherSnapshot.from_conditions("Denver", make_conditions())

    assert snapshot.location_name == "Denver"
    assert snapshot.precipitation_type is PrecipitationType.SNOW
    assert snapshot.timestamp == 1684929490
    assert snapshot.precipitation_past_24_hours == 250
    assert snapshot.pressure == 10140
    assert snapshot.temperature == -52
    assert snapshot.wind_direction_degrees == 93
    assert snapshot.wind_speed == 31
    assert snapshot.relative_humidity == 89
    assert snapshot.uv_index == 2
    assert not hasattr(snapshot, "weather_icon")
    assert not snapshot.is_blank


def test_blank_snapshot():
    snapshot = WeatherSnapshot.blank("Denver")
    assert snapshot.is_blank
    assert snapshot.precipitation_type is PrecipitationType.NONE
    assert snapshot.image_bucket is ImageBucket.CLEAR


@pytest.mark.parametrize("precip,bucket", [
    (PrecipitationType.NONE, ImageBucket.CLEAR),
    (PrecipitationType.RAIN, ImageBucket.RAIN),
    (PrecipitationType.SNOW, ImageBucket.SNOW),
    (PrecipitationType.ICE, ImageBucket.WINTRY),
    (PrecipitationType.MIXED, ImageBucket.WINTRY),
])
def test_image_bucket_collapses_five_categories(precip, bucket):
    snapshot = WeatherSnapshot.from_conditions("Denver", make_conditions(precipitation_type=precip))
    assert snapshot.image_bucket is bucket


def test_refresh_target_is_due():
    """A target is due once the cooldown has fully elapsed, and only while active."""
    target = RefreshTarget(
        location_name="Denver",
        latitude="39.74",
        longitude="-104.99",
        images={b: f"ipfs://{b.value}" for b in ImageBucket},
        last_update=1000,
    )
    assert target.is_due(now=1099, cooldown_seconds=100) is False
    assert target.is_due(now=1100, cooldown_seconds=100) is True

    target.active = False
    assert target.is_due(now=10 ** 9, cooldown_seconds=100) is False


def test_token_history_is_capped():
    record = TokenRecord(
        token_id=0,
        target=RefreshTarget(
            location_name="Denver",
            latitude="39.74",
            longitude="-104.99",
            images={b: f"ipfs://{b.value}" for b in ImageBucket},
            last_update=0,
        ),
        snapshot=WeatherSnapshot.blank("Denver"),
    )
    for n in range(HISTORY_LIMIT + 5):
        record.remember(f"req-{n}")

    assert len(record.history) == HISTORY_LIMIT
    assert record.history[0] == "req-5"
    assert record.history[-1] == f"req-{HISTORY_LIMIT + 4}"
