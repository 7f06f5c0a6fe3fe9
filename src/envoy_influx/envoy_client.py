from typing import Any

import requests
from pydantic import TypeAdapter, ValidationError
from requests import Response

from envoy_influx.errors import DecodeError, NetworkError
from envoy_influx.logging import get_logger
from envoy_influx.schemas import EnvoyDocument, InverterSummary, Reading

log = get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 2.0

_READINGS_ADAPTER = TypeAdapter(list[Reading])


class EnvoyClient:
    """Fetch `production.json` from an Envoy on the local network and decode it into `Reading`s."""

    def __init__(self, host: str, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        self.host = host
        self.timeout = timeout

    @property
    def url(self) -> str:
        # `host` is used verbatim. If it already contains a scheme then the URL is malformed,
        # and `requests` will raise, which we report as a NetworkError.
        return f"http://{self.host}/production.json?details=1"

    def poll(self) -> tuple[Reading, list[Reading]]:
        """Returns the production reading and the consumption readings (in the Envoy's order).

        Raises:
            NetworkError: If the Envoy can't be reached, times out, or returns an HTTP error.
            DecodeError: If the response isn't JSON of the expected shape.
        """
        envoy_json = self._fetch()
        production, consumption = decode_production_json(envoy_json)
        print(f"{production.timestamp} production: {production.instantaneous_power:.3f}")
        for reading in consumption:
            print(f"{reading.timestamp} {reading.kind}: {reading.instantaneous_power:.3f}")
        return production, consumption

    def _fetch(self) -> str:
        url = self.url
        log.debug("Fetching data from %s...", url)
        try:
            response: Response = requests.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise NetworkError(f"Failed to fetch {url}: {e}") from e
        envoy_json: str = response.text
        log.debug("Successfully retrieved %d characters from %s.", len(envoy_json), url)
        return envoy_json


def poll_envoy(
    host: str, timeout: float = DEFAULT_TIMEOUT_SECONDS
) -> tuple[Reading, list[Reading]]:
    return EnvoyClient(host, timeout=timeout).poll()


def decode_production_json(envoy_json: str) -> tuple[Reading, list[Reading]]:
    """Decode the raw text of `production.json`. Raises DecodeError."""
    try:
        document = EnvoyDocument.model_validate_json(envoy_json)
    except ValidationError as e:
        N_CHARS = 100
        log.error(
            "Failed to decode JSON from Envoy. First %d characters of the response: '%s'",
            N_CHARS,
            envoy_json[:N_CHARS],
        )
        raise DecodeError(f"Envoy response is not a valid production document: {e}") from e

    production = decode_production(document.production)
    consumption = decode_consumption(document.consumption)
    return production, consumption


def decode_production(production: Any) -> Reading:
    """Decode the `production` array.

    The Envoy sends a heterogeneous array: `[inverter_summary, eim_reading, ...]`. We decode the
    two elements we need one at a time. Any further elements are ignored.
    """
    if not isinstance(production, list) or len(production) < 2:
        raise DecodeError(
            f"Expected `production` to be an array of at least 2 elements, got: {production!r:.200}"
        )
    try:
        inverters = InverterSummary.model_validate(production[0])
        reading = Reading.model_validate(production[1])
    except ValidationError as e:
        raise DecodeError(f"Failed to decode `production`: {e}") from e
    log.debug("Envoy reports %d active inverters.", inverters.active_count)
    return reading


def decode_consumption(consumption: Any) -> list[Reading]:
    # JSON `null` is treated like an empty list (e.g. Envoys without consumption CTs).
    if consumption is None:
        return []
    try:
        return _READINGS_ADAPTER.validate_python(consumption)
    except ValidationError as e:
        raise DecodeError(f"Failed to decode `consumption`: {e}") from e
