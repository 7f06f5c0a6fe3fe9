class EnvoyInfluxError(Exception):
    """Base class for errors raised by one poll-write cycle."""


class NetworkError(EnvoyInfluxError):
    """The Envoy could not be reached, timed out, or returned an HTTP error."""


class DecodeError(EnvoyInfluxError):
    """The Envoy's JSON does not have the shape we expect."""


class WriteError(EnvoyInfluxError):
    """InfluxDB rejected a point, or could not be reached."""
