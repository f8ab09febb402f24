"""Attribute document rendering for weather tokens - pure functions for testability."""
import base64
import json
from typing import Any, Dict, List

from weather_data import PRECIPITATION_BUCKETS, PRECIPITATION_LABELS, PrecipitationType, RefreshTarget, WeatherSnapshot

DATA_URI_PREFIX = "data:application/json;base64,"


def image_for(target: RefreshTarget, precipitation_type: PrecipitationType) -> str:
    """
    Pick the conditional image for a precipitation category.

    Ice and mixed precipitation share the wintry image.
    """
    return target.images[PRECIPITATION_BUCKETS[PrecipitationType(precipitation_type)]]


def render_attributes(token_id: int, snapshot: WeatherSnapshot, target: RefreshTarget,
                      collection_name: str = "weatherNFT", symbol: str = "WNFT") -> Dict[str, Any]:
    """
    Build the attribute document for a token.

    Args:
        token_id: Token being rendered
        snapshot: Currently displayed weather
        target: Maintenance record holding location and images
        collection_name: Prefix for the document name
        symbol: Collection ticker symbol

    Returns:
        Dictionary with name, description, image and attributes
    """
    attributes: List[Dict[str, Any]] = [
        {"trait_type": "Location", "value": snapshot.location_name},
        {"trait_type": "Latitude", "value": target.latitude},
        {"trait_type": "Longitude", "value": target.longitude},
        {"trait_type": "Precipitation", "value": PRECIPITATION_LABELS[snapshot.precipitation_type]},
        {"trait_type": "Precipitation Past 24 Hours", "value": snapshot.precipitation_past_24_hours},
        {"trait_type": "Temperature", "value": snapshot.temperature},
        {"trait_type": "Pressure", "value": snapshot.pressure},
        {"trait_type": "Wind Direction", "value": snapshot.wind_direction_degrees},
        {"trait_type": "Wind Speed", "value": snapshot.wind_speed},
        {"trait_type": "Relative Humidity", "value": snapshot.relative_humidity},
        {"trait_type": "UV Index", "value": snapshot.uv_index},
        {"display_type": "date", "trait_type": "Observed", "value": snapshot.timestamp},
    ]
    return {
        "name": f"{collection_name} #{token_id}",
        "symbol": symbol,
        "description": f"Live weather for {snapshot.location_name}",
        "image": image_for(target, snapshot.precipitation_type),
        "attributes": attributes,
    }


def render_document(token_id: int, snapshot: WeatherSnapshot, target: RefreshTarget,
                    collection_name: str = "weatherNFT", symbol: str = "WNFT") -> str:
    """Render the attribute document as a self-contained base64 JSON data URI."""
    document = json.dumps(render_attributes(token_id, snapshot, target, collection_name, symbol), separators=(",", ":"))
    return DATA_URI_PREFIX + base64.b64encode(document.encode("utf-8")).decode("ascii")
