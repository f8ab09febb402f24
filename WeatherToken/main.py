"""Weather token upkeep daemon: mints a token for the configured location and keeps it fresh."""
import argparse
import logging
import os
import signal
import sys
import time
from typing import List, Tuple

from dotenv import load_dotenv

from engine_config import DEFAULT_COOLDOWN_SECONDS, EngineConfig
from engine_diagnostics import create_liveness_report, log_liveness
from oracle_provider import OracleEngineError, SystemPaused
from openweather_oracle import OpenWeatherOracle
from token_materializer import MaterializationMode
from weather_token_service import WeatherTokenService

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
DEFAULT_LOG_FILE = os.path.join(BASE_DIR, "weather-token.log")

OWNER = "owner"
SCHEDULER = "upkeep-keeper"
ORACLE_NODE = "openweather-node"


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser("Weather token upkeep daemon")
    parser.add_argument("--log-file", default=DEFAULT_LOG_FILE)
    parser.add_argument("--units", choices=["metric", "imperial"], default="metric")
    parser.add_argument("--cooldown", type=int, default=DEFAULT_COOLDOWN_SECONDS, help="Seconds between refreshes of one token")
    parser.add_argument("--poll", type=float, default=60.0, help="Seconds between upkeep checks")
    parser.add_argument("--oracle-fee", type=int, default=0)
    parser.add_argument("--funding", type=int, default=0, help="Opening balance for oracle fees")
    parser.add_argument("--mode", choices=[m.value for m in MaterializationMode], default=MaterializationMode.CORRELATED.value)
    parser.add_argument("--retention", type=float, default=None, help="Seconds to keep answered requests")
    parser.add_argument("--stall-age", type=float, default=3600.0, help="Seconds before an unanswered request is reported")
    parser.add_argument("--timeout", type=int, default=10, help="HTTP timeout in seconds")
    parser.add_argument("--once", action="store_true", help="Run a single upkeep pass and exit")
    parser.add_argument("--verbose", action="store_true")
    return parser.parse_args(argv)


def setup_logging(log_file: str, verbose: bool) -> None:
    log_level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_file)
        ]
    )


def load_config() -> Tuple[str, str, str, str, List[str]]:
    load_dotenv()
    api_key = os.getenv("OPENWEATHER_API_KEY")
    location = os.getenv("WEATHER_LOCATION")
    lat = os.getenv("WEATHER_LAT")
    lon = os.getenv("WEATHER_LON")
    images = [i.strip() for i in os.getenv("WEATHER_IMAGES", "").split(",") if i.strip()]

    if not api_key:
        raise SystemExit("Missing OPENWEATHER_API_KEY in environment")
    if not location:
        raise SystemExit("Missing WEATHER_LOCATION in environment")
    if not lat or not lon:
        raise SystemExit("Missing WEATHER_LAT/WEATHER_LON in environment")
    if len(images) != 4:
        raise SystemExit("WEATHER_IMAGES must list 4 images: clear,rain,snow,wintry")

    try:
        float(lat)
        float(lon)
    except ValueError as exc:
        raise SystemExit(f"Invalid coordinates: {exc}") from exc

    logging.info("Configuration loaded: location=%s lat=%s lon=%s", location, lat, lon)
    return api_key, location, lat, lon, images


def build_service(api_key: str, args: argparse.Namespace) -> Tuple[WeatherTokenService, OpenWeatherOracle]:
    oracle = OpenWeatherOracle(api_key=api_key, lang=os.getenv("WEATHER_LANG", "en"), timeout=args.timeout)
    config = EngineConfig(
        cooldown_seconds=args.cooldown,
        oracle_fee=args.oracle_fee,
        units=args.units,
        mode=MaterializationMode(args.mode),
        retention_seconds=args.retention,
    )
    service = WeatherTokenService(OWNER, oracle, config=config, funding=args.funding)
    service.set_scheduler(OWNER, SCHEDULER)
    service.set_oracle(OWNER, ORACLE_NODE)
    service.unpause(OWNER)
    logging.info("Weather token service ready (cooldown=%ss, mode=%s)", args.cooldown, args.mode)
    return service, oracle


def deliver(service: WeatherTokenService, oracle: OpenWeatherOracle) -> int:
    """Let the oracle node answer everything it has queued."""
    def callback(request_id, found, location_payload, conditions_payload):
        service.on_fulfillment(ORACLE_NODE, request_id, found, location_payload, conditions_payload)

    return oracle.service_pending(callback)


def upkeep_pass(service: WeatherTokenService, oracle: OpenWeatherOracle, args: argparse.Namespace) -> None:
    answered = deliver(service, oracle)
    if answered:
        logging.info("Delivered %s oracle answer(s)", answered)

    needed, payload = service.check_upkeep()
    if needed:
        result = service.perform_upkeep(SCHEDULER, payload)
        for token_id, error in result.failed.items():
            logging.error("Token %s not refreshed: %s", token_id, error)
        # Answers for the requests just issued
        deliver(service, oracle)

    log_liveness(service, args.stall_age)
    service.sweep()


def upkeep_loop(service: WeatherTokenService, oracle: OpenWeatherOracle, args: argparse.Namespace) -> None:
    frame = 0
    while True:
        frame += 1
        logging.info("Pass %s: checking upkeep", frame)
        try:
            upkeep_pass(service, oracle, args)
        except SystemPaused as err:
            logging.info("Upkeep skipped: %s", err)
        except OracleEngineError as err:
            logging.error("Upkeep pass failed: %s", err)
        except Exception as exc:
            logging.exception("Unexpected error: %s", exc)

        if args.once:
            return
        time.sleep(max(args.poll, 1.0))


def signal_handler(signum, frame):
    logging.info("Received signal %s, shutting down", signum)
    raise KeyboardInterrupt()


def main() -> None:
    args = parse_args()
    setup_logging(args.log_file, args.verbose)
    api_key, location, lat, lon, images = load_config()

    service, oracle = build_service(api_key, args)
    token_id = service.mint(OWNER, OWNER, location, lat, lon, images)
    deliver(service, oracle)
    logging.info("Token %s minted for %s", token_id, location)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        upkeep_loop(service, oracle, args)
    except KeyboardInterrupt:
        logging.info("Stopping upkeep")
    finally:
        logging.info("\n%s", create_liveness_report(service, args.stall_age))


if __name__ == "__main__":
    main()
