from collections.abc import Callable, Iterable
from types import TracebackType

import urllib3
from influxdb_client import InfluxDBClient, Point, WritePrecision
from influxdb_client.client.write_api import SYNCHRONOUS, WriteApi
from influxdb_client.rest import ApiException

from envoy_influx.config_loader import InfluxDBConfig
from envoy_influx.errors import WriteError
from envoy_influx.logging import get_logger
from envoy_influx.schemas import Reading

log = get_logger(__name__)


def to_point(reading: Reading, measurement: str) -> Point:
    return (
        Point(measurement)
        .tag("type", reading.kind)
        .field("watts", float(reading.instantaneous_power))
        .time(reading.timestamp, WritePrecision.S)
    )


class InfluxWriter:
    """Writes `Reading`s to InfluxDB, one point per reading.

    The `InfluxDBClient` is created on the first call to `write` and then reused for the lifetime
    of this object. Use as a context manager (or call `close`) to release it.
    """

    def __init__(
        self,
        config: InfluxDBConfig,
        client_factory: Callable[..., InfluxDBClient] | None = None,
    ) -> None:
        self._config = config
        self._client_factory = client_factory or InfluxDBClient
        self._client: InfluxDBClient | None = None
        self._write_api: WriteApi | None = None

    def __enter__(self) -> "InfluxWriter":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def write(self, production: Reading, consumption: Iterable[Reading]) -> None:
        """Write the consumption readings (in order) followed by the production reading.

        Stops at the first point that fails, raising WriteError. Points that were already
        written are left in place: re-writing them later is harmless because InfluxDB
        de-duplicates on (measurement, tags, timestamp).
        """
        write_api = self._get_write_api()
        readings = [*consumption, production]
        for reading in readings:
            point = to_point(reading, self._config.measurement)
            try:
                write_api.write(bucket=self._config.bucket, org=self._config.org, record=point)
            except (ApiException, urllib3.exceptions.HTTPError, OSError) as e:
                raise WriteError(
                    f"Failed to write {point.to_line_protocol()!r} to {self._config.url}: {e}"
                ) from e
        log.debug("Wrote %d points to InfluxDB.", len(readings))

    def close(self) -> None:
        if self._client is not None:
            log.info("Closing connection to InfluxDB at %s.", self._config.url)
            self._client.close()
            self._client = None
            self._write_api = None

    def _get_write_api(self) -> WriteApi:
        if self._write_api is None:
            log.info("Connecting to InfluxDB at %s...", self._config.url)
            self._client = self._client_factory(
                url=self._config.url,
                token=self._config.auth_token,
                org=self._config.org,
                timeout=self._config.timeout_ms,
            )
            self._write_api = self._client.write_api(write_options=SYNCHRONOUS)
        return self._write_api
