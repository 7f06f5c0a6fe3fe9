import argparse
import signal
import sys
from types import FrameType
from typing import Any

from pydantic import ValidationError

from envoy_influx.config_loader import EnvoyInfluxConfig
from envoy_influx.envoy_client import EnvoyClient
from envoy_influx.errors import EnvoyInfluxError
from envoy_influx.influx_writer import InfluxWriter
from envoy_influx.logging import get_logger
from envoy_influx.scheduler import Scheduler

log = get_logger(__name__)

# (flag, config section, config key, help)
_FLAGS = (
    ("-e", "envoy", "host", "IP or hostname of Envoy"),
    ("-dba", "influxdb", "url", "InfluxDB connection address"),
    ("-dbo", "influxdb", "org", "InfluxDB org to put readings in"),
    ("-dbn", "influxdb", "bucket", "InfluxDB bucket (or 1.8 database name) to put readings in"),
    ("-dbu", "influxdb", "username", "InfluxDB username"),
    ("-dbp", "influxdb", "password", "InfluxDB password"),
    ("-m", "influxdb", "measurement", "InfluxDB measurement name (table name equivalent)"),
    ("-loop", "intervals", "loop", "Loop interval, e.g. 30s or 5m (0 means poll once and exit)"),
)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Get Enphase Envoy solar production and consumption data into InfluxDB."
    )
    parser.add_argument(
        "--config", default="config.toml", help="Path to TOML config file (default: %(default)s)"
    )
    for flag, section, key, help_text in _FLAGS:
        parser.add_argument(flag, dest=f"{section}__{key}", metavar=key.upper(), help=help_text)
    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    return _build_parser().parse_args(argv)


def overrides_from_args(args: argparse.Namespace) -> dict[str, dict[str, Any]]:
    """Only flags given on the command line override the config file."""
    overrides: dict[str, dict[str, Any]] = {}
    for _, section, key, _ in _FLAGS:
        value = getattr(args, f"{section}__{key}")
        if value is not None:
            overrides.setdefault(section, {})[key] = value
    return overrides


def _exit_on_sigterm(signum: int, _frame: FrameType | None) -> None:
    # Raise SystemExit so that `with` blocks unwind and the InfluxDB client is closed.
    log.info("Received signal %d. Shutting down.", signum)
    sys.exit(0)


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    try:
        config = EnvoyInfluxConfig.load(args.config, overrides=overrides_from_args(args))
    except ValidationError as e:
        # Exits with status 2, like any other bad flag.
        parser.error(f"invalid configuration: {e}")
    signal.signal(signal.SIGTERM, _exit_on_sigterm)

    client = EnvoyClient(config.envoy.host, timeout=config.envoy.timeout_seconds)
    with InfluxWriter(config.influxdb) as writer:
        scheduler = Scheduler(client, writer, interval=config.intervals.loop)
        try:
            scheduler.run()
        except EnvoyInfluxError:
            log.exception("Failed to get data from the Envoy into InfluxDB!")
            return 1
        except KeyboardInterrupt:
            log.info("Interrupted. Shutting down.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
