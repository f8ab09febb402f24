"""
Fixed-width binary encoding for oracle payloads and trigger payloads.

Every payload starts with a one-byte format version. All integers are
big-endian. The uint24 fields of a conditions record travel in 4-byte
slots and are range-checked on both sides of the wire.

    location   >B Q 2s H  + name (UTF-8, name_length bytes)
    conditions >B Q I I I I h H H B B B B  (35 bytes)
    token ids  >B I       + count * >Q
"""
import struct
from typing import Iterable, List

from oracle_provider import PayloadDecodeError, PayloadEncodeError
from weather_data import CurrentConditionsResult, LocationResult

PAYLOAD_VERSION = 1

_LOCATION_HEADER = struct.Struct(">BQ2sH")
_CONDITIONS = struct.Struct(">BQIIIIhHHBBBB")
_ID_LIST_HEADER = struct.Struct(">BI")
_TOKEN_ID = struct.Struct(">Q")

MAX_NAME_BYTES = 255


def encode_location(location: LocationResult) -> bytes:
    """Encode a LocationResult into its versioned binary form."""
    name = location.name.encode("utf-8")
    if len(name) > MAX_NAME_BYTES:
        raise PayloadEncodeError(f"Location name is {len(name)} bytes, limit is {MAX_NAME_BYTES}")
    try:
        header = _LOCATION_HEADER.pack(
            PAYLOAD_VERSION,
            location.location_key,
            location.country_code.encode("ascii"),
            len(name),
        )
    except (struct.error, UnicodeEncodeError) as e:
        raise PayloadEncodeError(f"Cannot encode location: {e}") from e
    return header + name


def decode_location(payload: bytes) -> LocationResult:
    """
    Decode a location payload.

    Raises:
        PayloadDecodeError: On a short or oversized buffer, an unknown
            version, or a field outside its range
    """
    if len(payload) < _LOCATION_HEADER.size:
        raise PayloadDecodeError(f"Location payload too short: {len(payload)} bytes")
    version, key, country, name_length = _LOCATION_HEADER.unpack_from(payload)
    _check_version(version)
    expected = _LOCATION_HEADER.size + name_length
    if len(payload) != expected:
        raise PayloadDecodeError(f"Location payload is {len(payload)} bytes, header says {expected}")
    try:
        name = payload[_LOCATION_HEADER.size:].decode("utf-8")
        return LocationResult(location_key=key, name=name, country_code=country.decode("ascii"))
    except (UnicodeDecodeError, ValueError) as e:
        raise PayloadDecodeError(f"Invalid location payload: {e}") from e


def encode_conditions(conditions: CurrentConditionsResult) -> bytes:
    """Encode a CurrentConditionsResult into its 35-byte binary form."""
    try:
        return _CONDITIONS.pack(
            PAYLOAD_VERSION,
            conditions.timestamp,
            conditions.precipitation_past_12_hours,
            conditions.precipitation_past_24_hours,
            conditions.precipitation_past_hour,
            conditions.pressure,
            conditions.temperature,
            conditions.wind_direction_degrees,
            conditions.wind_speed,
            int(conditions.precipitation_type),
            conditions.relative_humidity,
            conditions.uv_index,
            conditions.weather_icon,
        )
    except struct.error as e:
        raise PayloadEncodeError(f"Cannot encode conditions: {e}") from e


def decode_conditions(payload: bytes) -> CurrentConditionsResult:
    """
    Decode a conditions payload.

    Raises:
        PayloadDecodeError: On a wrong-sized buffer, an unknown version,
            or a field outside its provider range
    """
    if len(payload) != _CONDITIONS.size:
        raise PayloadDecodeError(f"Conditions payload must be {_CONDITIONS.size} bytes, got {len(payload)}")
    fields = _CONDITIONS.unpack(payload)
    _check_version(fields[0])
    try:
        return CurrentConditionsResult(
            timestamp=fields[1],
            precipitation_past_12_hours=fields[2],
            precipitation_past_24_hours=fields[3],
            precipitation_past_hour=fields[4],
            pressure=fields[5],
            temperature=fields[6],
            wind_direction_degrees=fields[7],
            wind_speed=fields[8],
            precipitation_type=fields[9],
            relative_humidity=fields[10],
            uv_index=fields[11],
            weather_icon=fields[12],
        )
    except ValueError as e:
        raise PayloadDecodeError(f"Invalid conditions payload: {e}") from e


def encode_token_ids(token_ids: Iterable[int]) -> bytes:
    """Encode a list of token ids for the upkeep trigger boundary."""
    ids = list(token_ids)
    try:
        return _ID_LIST_HEADER.pack(PAYLOAD_VERSION, len(ids)) + b"".join(_TOKEN_ID.pack(i) for i in ids)
    except struct.error as e:
        raise PayloadEncodeError(f"Cannot encode token ids: {e}") from e


def decode_token_ids(payload: bytes) -> List[int]:
    """Decode a token id list produced by encode_token_ids()."""
    if len(payload) < _ID_LIST_HEADER.size:
        raise PayloadDecodeError(f"Token id payload too short: {len(payload)} bytes")
    version, count = _ID_LIST_HEADER.unpack_from(payload)
    _check_version(version)
    expected = _ID_LIST_HEADER.size + count * _TOKEN_ID.size
    if len(payload) != expected:
        raise PayloadDecodeError(f"Token id payload is {len(payload)} bytes, expected {expected}")
    return [
        _TOKEN_ID.unpack_from(payload, _ID_LIST_HEADER.size + i * _TOKEN_ID.size)[0]
        for i in range(count)
    ]


def _check_version(version: int) -> None:
    if version != PAYLOAD_VERSION:
        raise PayloadDecodeError(f"Unsupported payload version {version}")
