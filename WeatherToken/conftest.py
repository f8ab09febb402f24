"""Shared fixtures for engine-level tests."""
import itertools

import pytest
from engine_config import EngineConfig
from oracle_provider import QueuedOracleChannel
from payload_codec import encode_conditions, encode_location
from test_weather_data import make_conditions
from token_materializer import MaterializationMode
from weather_data import LocationResult
from weather_token_service import WeatherTokenService

IMAGES = ["ipfs://clear", "ipfs://rain", "ipfs://snow", "ipfs://wintry"]
FEE = 10


class FakeClock:
    """Settable clock standing in for time.time()."""

    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def channel():
    counter = itertools.count(1)
    return QueuedOracleChannel(id_factory=lambda: f"req-{next(counter):04d}")


def build_service(clock, channel, mode):
    service = WeatherTokenService(
        "owner",
        channel,
        config=EngineConfig(cooldown_seconds=86400, oracle_fee=FEE, mode=mode),
        clock=clock,
        funding=1000,
    )
    service.set_scheduler("owner", "keeper")
    service.set_oracle("owner", "oracle")
    service.unpause("owner")
    return service


@pytest.fixture
def service(clock, channel):
    return build_service(clock, channel, MaterializationMode.CORRELATED)


@pytest.fixture
def legacy_service(clock, channel):
    return build_service(clock, channel, MaterializationMode.LEGACY_LOG_TAIL)


@pytest.fixture
def answer():
    """Deliver a found answer for a request, with conditions overrides."""
    def _answer(service, request_id, name="Denver", **overrides):
        location = LocationResult(location_key=347810, name=name, country_code="US")
        return service.on_fulfillment(
            "oracle", request_id, True,
            encode_location(location), encode_conditions(make_conditions(**overrides)),
        )
    return _answer


@pytest.fixture
def mint():
    def _mint(service, location="Denver", lat="39.74", lon="-104.99"):
        return service.mint("owner", "alice", location, lat, lon, IMAGES)
    return _mint
