from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


class _EnvoyObject(BaseModel):
    """Decodes one JSON object from the Envoy.

    Keys are matched by their exact JSON name (the alias), never by the Python field name.
    Types are strict: "250.5", true, and 1.0 (for an int) are all rejected. JSON ints are
    accepted for float fields. A JSON `null` leaves the field at its default, as does a missing key.
    """

    model_config = ConfigDict(frozen=True, strict=True)

    @field_validator("*", mode="before")
    @classmethod
    def _null_is_default(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None and info.field_name is not None:
            return cls.model_fields[info.field_name].default
        return value


class Reading(_EnvoyObject):
    """One meter reading from the Envoy's `production.json`.

    Unknown keys are ignored and missing keys default to zero (or "" for `kind`). Only `kind`,
    `timestamp` and `instantaneous_power` are written to InfluxDB.
    """

    # e.g. "production", "total-consumption", "net-consumption"
    kind: str = Field("", alias="measurementType")
    timestamp: int = Field(0, alias="readingTime")  # Unix timestamp in seconds (Envoy's clock)
    # Signed: some firmwares report negative consumption.
    instantaneous_power: float = Field(0.0, alias="wNow")

    wh_lifetime: float = Field(0.0, alias="whLifetime")
    varh_lead_lifetime: float = Field(0.0, alias="varhLeadLifetime")
    varh_lag_lifetime: float = Field(0.0, alias="varhLagLifetime")
    vah_lifetime: float = Field(0.0, alias="vahLifetime")
    rms_current: float = Field(0.0, alias="rmsCurrent")
    rms_voltage: float = Field(0.0, alias="rmsVoltage")
    reactive_power: float = Field(0.0, alias="reactPwr")
    apparent_power: float = Field(0.0, alias="apprntPwr")
    power_factor: float = Field(0.0, alias="pwrFactor")
    wh_today: float = Field(0.0, alias="whToday")
    wh_last_seven_days: float = Field(0.0, alias="whLastSevenDays")
    vah_today: float = Field(0.0, alias="vahToday")
    varh_lead_today: float = Field(0.0, alias="varhLeadToday")
    varh_lag_today: float = Field(0.0, alias="varhLagToday")


class InverterSummary(_EnvoyObject):
    """The first element of the `production` array: {"type": "inverters", "activeCount": 29, ...}"""

    active_count: int = Field(0, alias="activeCount")


class EnvoyDocument(BaseModel):
    """The top level of `production.json`. Sub-documents are decoded later, one at a time."""

    production: Any
    consumption: Any
    storage: Any = None  # Never decoded.
