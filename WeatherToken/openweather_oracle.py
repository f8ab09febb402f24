"""OpenWeather-backed oracle node that answers queued weather requests."""
import logging
from typing import Callable, Optional, Tuple

import requests

from oracle_provider import (
    FulfillmentCallback,
    OracleProviderError,
    OracleRequest,
    PayloadEncodeError,
    QueuedOracleChannel,
)
from payload_codec import encode_conditions, encode_location
from weather_data import CurrentConditionsResult, LocationResult, PrecipitationType


def precipitation_type_for(condition_id: int) -> PrecipitationType:
    """
    Map an OpenWeather condition id onto a precipitation category.

    See https://openweathermap.org/weather-conditions
    """
    if condition_id == 511 or 611 <= condition_id <= 613:
        return PrecipitationType.ICE  # freezing rain, sleet
    if condition_id in (615, 616):
        return PrecipitationType.MIXED  # rain and snow
    if 200 <= condition_id < 600:
        return PrecipitationType.RAIN  # thunderstorm, drizzle, rain
    if 600 <= condition_id < 700:
        return PrecipitationType.SNOW
    return PrecipitationType.NONE


class OpenWeatherOracle(QueuedOracleChannel):
    """
    Oracle node using OpenWeather Current Weather API.

    Requests are queued by submit() and answered by service_pending(),
    which fetches each location, encodes the payloads and hands them to
    the fulfillment callback. Provider values are scaled to integers:
    temperature, pressure and wind speed in tenths, precipitation in
    hundredths of a millimetre.
    """

    BASE_URL = "https://api.openweathermap.org/data/2.5/weather"

    def __init__(
        self,
        api_key: str,
        lang: str = "en",
        timeout: int = 10,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        """
        Initialize OpenWeather oracle.

        Args:
            api_key: OpenWeather API key
            lang: Language code for descriptions (e.g., "en", "de")
            timeout: HTTP request timeout in seconds
            id_factory: Request id generator, for tests
        """
        super().__init__(id_factory=id_factory)
        self.api_key = api_key
        self.lang = lang
        self.timeout = timeout

    def service_pending(self, callback: FulfillmentCallback) -> int:
        """
        Answer every queued request.

        A request whose fetch fails stays queued for the next pass with
        the same request id.

        Args:
            callback: Receives (request_id, found, location_payload, conditions_payload)

        Returns:
            int: Number of requests answered
        """
        answered = 0
        for request_id, request in self.pending():
            try:
                found, location_payload, conditions_payload = self.fetch(request)
            except OracleProviderError as e:
                logging.error(f"Oracle fetch failed for {request_id[:12]}, leaving it queued: {e}")
                continue
            self.take(request_id)
            callback(request_id, found, location_payload, conditions_payload)
            answered += 1
        return answered

    def fetch(self, request: OracleRequest) -> Tuple[bool, bytes, bytes]:
        """
        Fetch current weather for one request and encode it.

        Returns:
            Tuple of (found, location_payload, conditions_payload); the
            payloads are empty when found is False

        Raises:
            OracleProviderError: If the API request fails or cannot be parsed
        """
        params = {
            "lat": request.latitude,
            "lon": request.longitude,
            "appid": self.api_key,
            "units": request.units,
            "lang": self.lang,
        }

        try:
            logging.info(f"Making OpenWeather API request: {self.BASE_URL}")
            logging.debug(f"Request parameters: lat={request.latitude}, lon={request.longitude}, units={request.units}")

            response = requests.get(self.BASE_URL, params=params, timeout=self.timeout)
            logging.info(f"API response status: {response.status_code}")

            if response.status_code == 404:
                logging.warning(f"OpenWeather has no data for lat={request.latitude} lon={request.longitude}")
                return False, b"", b""
            if not response.ok:
                logging.error(f"API request failed with status {response.status_code}")
                self._handle_error_response(response)

            data = response.json()
            logging.debug(f"API response (truncated): {str(data)[:500]}...")
            location, conditions = self.parse(data)
            return True, encode_location(location), encode_conditions(conditions)

        except requests.exceptions.RequestException as e:
            logging.error(f"Network error during API request: {e}")
            raise OracleProviderError(f"Network error: {str(e)}")
        except (KeyError, ValueError, TypeError) as e:
            logging.error(f"Failed to parse API response: {e}", exc_info=True)
            raise OracleProviderError(f"Failed to parse response: {str(e)}")
        except PayloadEncodeError as e:
            logging.error(f"Observation does not fit the wire format: {e}")
            raise OracleProviderError(f"Failed to encode response: {str(e)}")

    @staticmethod
    def parse(data: dict) -> Tuple[LocationResult, CurrentConditionsResult]:
        """Map an OpenWeather response body onto the oracle result records."""
        weather_array = data.get("weather", [])
        if not weather_array:
            raise OracleProviderError("Response missing 'weather' array")
        weather = weather_array[0]

        main_data = data.get("main", {})
        if not main_data:
            raise OracleProviderError("Response missing 'main' block")

        # Only the 1h and 3h windows exist; the longer windows get the 3h total
        precip = data.get("rain") or data.get("snow") or {}
        precip_1h = _hundredths(precip.get("1h", 0.0))
        precip_window = max(precip_1h, _hundredths(precip.get("3h", 0.0)))

        wind_data = data.get("wind", {}) or {}
        icon = weather.get("icon", "")

        location = LocationResult(
            location_key=int(data.get("id", 0)),
            name=data.get("name") or "Unknown",
            country_code=(data.get("sys", {}) or {}).get("country") or "ZZ",
        )
        conditions = CurrentConditionsResult(
            timestamp=int(data.get("dt", 0)),
            precipitation_past_12_hours=precip_window,
            precipitation_past_24_hours=precip_window,
            precipitation_past_hour=precip_1h,
            pressure=round(main_data.get("pressure", 0) * 10),
            temperature=round(main_data.get("temp", 0.0) * 10),
            wind_direction_degrees=int(wind_data.get("deg", 0)) % 360,
            wind_speed=round(wind_data.get("speed", 0.0) * 10),
            precipitation_type=precipitation_type_for(int(weather.get("id", 800))),
            relative_humidity=int(main_data.get("humidity", 0)),
            uv_index=0,  # not reported by the Current Weather API
            weather_icon=int(icon[:2]) if icon[:2].isdigit() else 0,
        )
        return location, conditions

    def _handle_error_response(self, response: requests.Response) -> None:
        """Parse and raise error from OpenWeather error response."""
        try:
            error_data = response.json()
        except ValueError:
            logging.error(f"Non-JSON error response: HTTP {response.status_code}, body: {response.text[:500]}")
            raise OracleProviderError(f"HTTP {response.status_code}: {response.text[:200]}")

        cod = error_data.get("cod", response.status_code)
        message = error_data.get("message", "Unknown error")
        logging.error(f"OpenWeather API error response: {error_data}")
        raise OracleProviderError(f"OpenWeather API error {cod}: {message}")


def _hundredths(value: float) -> int:
    return round(float(value) * 100)
