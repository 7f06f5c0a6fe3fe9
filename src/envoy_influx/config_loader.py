import re
import tomllib
from datetime import timedelta
from pathlib import Path
from typing import Any, Literal, Self

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from envoy_influx.logging import configure_logging

# Go-style durations, as accepted by the `-loop` flag: "30s", "1m30s", "1.5h", "500ms".
# Unit => seconds.
_DURATION_UNITS = {
    "h": 3600.0,
    "m": 60.0,
    "s": 1.0,
    "ms": 1e-3,
    "us": 1e-6,
    "µs": 1e-6,
    "ns": 1e-9,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ms|us|µs|ns|h|m|s)")


def parse_duration(text: str) -> timedelta:
    """Parse a Go-style duration string, e.g. "1m30s". "0" is allowed without a unit."""
    text = text.strip()
    if text == "0":
        return timedelta(0)
    sign = 1
    if text and text[0] in "+-":
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    if not text:
        raise ValueError("empty duration")

    seconds = 0.0
    position = 0
    while position < len(text):
        match = _DURATION_PART.match(text, position)
        if match is None:
            raise ValueError(f"invalid duration: {text!r}")
        number, unit = match.groups()
        seconds += float(number) * _DURATION_UNITS[unit]
        position = match.end()
    return timedelta(seconds=sign * seconds)


class EnvoyConfig(BaseModel):
    # Any hostname or IP address. Deliberately not validated.
    host: str = "envoy"
    timeout_seconds: float = Field(2.0, gt=0)


class InfluxDBConfig(BaseModel):
    url: str = "http://localhost:8086"
    org: str = "solar"
    # For InfluxDB 1.8 this is the database name (optionally "database/retention_policy").
    bucket: str = "solar"
    username: str = "user"
    password: str = "pw"
    # If unset, authenticate with "username:password" (the InfluxDB 1.8 compatibility API).
    token: str | None = None
    measurement: str = "readings"
    timeout_ms: int = Field(10_000, gt=0)

    @property
    def auth_token(self) -> str:
        if self.token:
            return self.token
        return f"{self.username}:{self.password}"


class IntervalsConfig(BaseModel):
    # 0 means poll once and exit.
    loop: timedelta = timedelta(0)

    @field_validator("loop", mode="before")
    @classmethod
    def _parse_go_duration(cls, value: Any) -> Any:
        if isinstance(value, str):
            text = value.strip()
            if re.fullmatch(r"[+-]?\d+(\.\d*)?", text):  # Plain number of seconds.
                return float(text)
            if re.search(r"[a-zµ]$", text):
                return parse_duration(text)
        return value

    @field_validator("loop")
    @classmethod
    def _non_negative(cls, value: timedelta) -> timedelta:
        if value < timedelta(0):
            raise ValueError("loop interval must not be negative")
        return value


class LoggingConfig(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_file: Path | None = None


class EnvoyInfluxConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_nested_delimiter="__", env_prefix="ENVOY_INFLUX_", env_file=".env", extra="ignore"
    )

    envoy: EnvoyConfig = Field(default_factory=EnvoyConfig)
    influxdb: InfluxDBConfig = Field(default_factory=InfluxDBConfig)
    intervals: IntervalsConfig = Field(default_factory=IntervalsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, path: str = "config.toml", overrides: dict[str, Any] | None = None) -> Self:
        """Load config from (in decreasing priority) `overrides`, the TOML file at `path` (if it
        exists), environment variables (and `.env`), and the defaults."""
        user_data: dict[str, Any] = {}
        if Path(path).exists():
            with open(path, "rb") as f:
                user_data = tomllib.load(f)
        if overrides:
            user_data = _deep_merge(user_data, overrides)
        c = cls(**user_data)
        c._configure_logger()
        return c

    def _configure_logger(self) -> None:
        configure_logging(self.logging.level, self.logging.log_file)


def _deep_merge(base: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged
