"""
Pydantic models for vendor wire data and platform payloads.

Two families of models live here:

- **Vendor models** mirror the vendor open API JSON (snake_case keys):
  running data, high-frequency power data, system list entries, and the
  dispatch request body.
- **Platform models** mirror the VPP platform's event payloads (camelCase
  keys on the wire): onboarding/offboarding outcomes, site static data,
  and per-device telemetry.

Platform models accept either the Python field name or the camelCase alias
on input and are serialized with ``model_dump(by_alias=True)``.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator
from pydantic.alias_generators import to_camel

T = TypeVar("T")

SUCCESS_CODE = 200
"""Vendor result code for a successful call."""

TRANSPORT_ERROR = -1
"""Synthetic result code for network, timeout, HTTP-status or decode failures."""

_VENDOR_DATETIME_FORMATS = ("%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M:%S", "%Y/%m/%d %H:%M:%S")


def _parse_vendor_datetime(value: Any) -> Any:
    """Parse vendor local timestamps (no offset) into naive datetimes."""
    if not isinstance(value, str):
        return value
    text = value.strip()
    if not text:
        return None
    for fmt in _VENDOR_DATETIME_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    # Let pydantic try (and report) anything else.
    return text


def format_utc(ts: datetime) -> str:
    """Format a UTC datetime as ``YYYY-MM-DDTHH:MM:SSZ`` (second precision)."""
    return ts.strftime("%Y-%m-%dT%H:%M:%SZ")


# ---------------------------------------------------------------------------
# Vendor call result
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class VendorResult(Generic[T]):
    """Outcome of one vendor API call.

    Attributes:
        code: Vendor result code; 200 on success, :data:`TRANSPORT_ERROR`
            when the call never produced a vendor response.
        message: Vendor ``info`` text or the transport error description.
        payload: Decoded ``data`` member, when the call returns one.
    """

    code: int
    message: str = ""
    payload: T | None = None

    @property
    def ok(self) -> bool:
        return self.code == SUCCESS_CODE


# ---------------------------------------------------------------------------
# Vendor wire models
# ---------------------------------------------------------------------------


class RunningSnapshot(BaseModel):
    """Last running data of one system (report-interval resolution).

    Powers are in watts, energy counters in kWh, SOC in percent.
    ``upload_datetime`` is the device's local time; ``timezone`` is the
    device's declared UTC offset (``+10:00``) when the vendor supplies it.
    """

    sys_sn: str
    upload_datetime: datetime | None = None
    timezone: str | None = None

    p_pv1: float | None = None
    p_pv2: float | None = None
    p_pv3: float | None = None
    p_pv4: float | None = None

    u_a: float | None = None
    u_b: float | None = None
    u_c: float | None = None
    fac: float | None = None

    soc: float | None = None
    bat_v: float | None = None
    bat_c: float | None = None
    p_bat: float | None = None
    inv_work_mode: int | None = None

    epv_total: float | None = None
    e_input: float | None = None
    e_output: float | None = None
    e_charge: float | None = None
    e_discharge: float | None = None

    p_meter_l1: float | None = None
    p_meter_l2: float | None = None
    p_meter_l3: float | None = None
    p_meter_dc: float | None = None

    @field_validator("upload_datetime", mode="before")
    @classmethod
    def _parse_upload(cls, v: Any) -> Any:
        return _parse_vendor_datetime(v)


class FastSnapshot(BaseModel):
    """Last high-frequency power data of one system.

    Carries only fast-sampled fields; never any cumulative energy counter.
    """

    sys_sn: str
    uploadtime: datetime | None = None

    ppv1: float | None = None
    ppv2: float | None = None
    ppv3: float | None = None
    ppv4: float | None = None

    preal_l1: float | None = None
    preal_l2: float | None = None
    preal_l3: float | None = None

    pmeter_l1: float | None = None
    pmeter_l2: float | None = None
    pmeter_l3: float | None = None
    pmeter_dc: float | None = None

    pbat: float | None = None
    sva: float | None = None
    varac: float | None = None
    vardc: float | None = None
    soc: float | None = None

    @field_validator("uploadtime", mode="before")
    @classmethod
    def _parse_upload(cls, v: Any) -> Any:
        return _parse_vendor_datetime(v)


class MergedReading(RunningSnapshot):
    """A running snapshot overlaid with the matching fast snapshot.

    Adds the reactive and apparent power fields that only the fast data
    source reports.
    """

    sva: float | None = None
    varac: float | None = None
    vardc: float | None = None


class SystemInfo(BaseModel):
    """One entry of the vendor system list.

    Ratings (``poinv``, ``popv``) are in kW; ``cobat`` and
    ``usable_capacity`` in kWh.
    """

    sys_sn: str
    system_model: str | None = None
    cobat: float | None = None
    usable_capacity: float | None = None
    mbat: str | None = None
    poinv: float | None = None
    popv: float | None = None
    solution: str | None = None
    ems_version: str | None = None
    bms_version: str | None = None
    inv_version: str | None = None
    inv_model: str | None = None
    meter_model: str | None = None
    meter_phase: int | None = None
    set_feed: int | None = None
    net_work_status: int | None = None
    state: str | None = None
    trans_frequency: int | None = None
    latitude: str | None = None
    longitude: str | None = None
    timezone: str | None = None
    safe: int | None = None
    remark: str | None = None


class SystemListPage(BaseModel):
    """One page of the vendor system list."""

    total_count: int = 0
    total_page_count: int = 0
    page_index: int = 1
    page_size: int = 0
    systems: list[SystemInfo] = Field(default_factory=list)


class DispatchRequest(BaseModel):
    """Vendor wire encoding of one control command.

    Attributes:
        sys_sn: Target system serial number.
        control_mode: Vendor control mode (1-7).
        expire_time: Seconds until the vendor reverts the command.
        parameter: Pipe-delimited parameter string for ``control_mode``.
        status: 1 to start the command, 0 to stop it.
    """

    model_config = ConfigDict(frozen=True)

    sys_sn: str
    control_mode: int = Field(ge=1, le=7)
    expire_time: int = Field(ge=0)
    parameter: str
    status: int = Field(default=1, ge=0, le=1)


# ---------------------------------------------------------------------------
# Platform models (camelCase on the wire)
# ---------------------------------------------------------------------------

_PLATFORM_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ConnectionStatus(StrEnum):
    CONNECTED = "connected"
    NOT_CONNECTED = "not-connected"


class ErrorReason(StrEnum):
    WRONG_SERIAL = "wrong-serial"
    REGISTRATION_INCOMPLETE = "registration-incomplete"
    IN_OTHER_VPP = "in-other-vpp"
    DEVICE_OFFLINE = "device-offline"
    INCOMPATIBLE_HARDWARE = "incompatible-hardware"
    INCOMPATIBLE_FIRMWARE = "incompatible-firmware"


OFFBOARDING_ERROR_REASONS = frozenset({ErrorReason.WRONG_SERIAL, ErrorReason.DEVICE_OFFLINE})


class BatteryStaticData(BaseModel):
    model_config = _PLATFORM_CONFIG

    device_id: str
    serial_number: str
    manufacturer: str | None = None
    model: str | None = None
    firmware: str | None = None
    nameplate_energy_capacity_wh: int | None = None
    max_charge_power_w: int | None = None
    max_discharge_power_w: int | None = None


class HybridInverterStaticData(BaseModel):
    model_config = _PLATFORM_CONFIG

    device_id: str
    serial_number: str
    manufacturer: str | None = None
    model: str | None = None
    firmware: str | None = None
    hybrid_inverter_ac_capacity_w: int | None = None
    solar_array_rated_dc_output_w: int | None = None
    connected_battery_ids: list[str] = Field(default_factory=list)


class MeterStaticData(BaseModel):
    model_config = _PLATFORM_CONFIG

    device_id: str
    serial_number: str
    manufacturer: str | None = None
    model: str | None = None
    has_controllable_load: bool = False
    phase: int | None = None


class SiteStaticData(BaseModel):
    """Static description of a site, sent with a successful onboarding."""

    model_config = _PLATFORM_CONFIG

    site_id: str
    unique_meter_identifier: str | None = None
    country: str | None = None
    state: str | None = None
    postcode: str | None = None
    address: str | None = None
    export_limit_w: int | None = None
    batteries_static_data: list[BatteryStaticData] = Field(default_factory=list)
    battery_inverters_static_data: list[dict[str, Any]] = Field(default_factory=list)
    hybrid_inverters_static_data: list[HybridInverterStaticData] = Field(default_factory=list)
    solar_inverters_static_data: list[dict[str, Any]] = Field(default_factory=list)
    meters_static_data: list[MeterStaticData] = Field(default_factory=list)


class OnboardingOutcome(BaseModel):
    """Result of one onboarding request; immutable once built."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    serial_number: str
    device_id: str
    connection_status: ConnectionStatus
    error_reason: ErrorReason | None = None
    site_static_data: SiteStaticData | None = None

    @model_validator(mode="after")
    def _one_status_one_reason(self) -> OnboardingOutcome:
        """Not-connected outcomes carry exactly one reason; connected ones none."""
        if self.connection_status is ConnectionStatus.NOT_CONNECTED and self.error_reason is None:
            raise ValueError("not-connected onboarding outcome requires an error reason")
        if self.connection_status is ConnectionStatus.CONNECTED and self.error_reason is not None:
            raise ValueError("connected onboarding outcome cannot carry an error reason")
        return self


class OffboardingOutcome(BaseModel):
    """Result of one offboarding request; immutable once built."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    serial_number: str
    device_id: str
    connection_status: ConnectionStatus
    error_reason: ErrorReason | None = None

    @model_validator(mode="after")
    def _reason_in_domain(self) -> OffboardingOutcome:
        """Offboarding only reports wrong-serial or device-offline."""
        if self.error_reason is not None and self.error_reason not in OFFBOARDING_ERROR_REASONS:
            raise ValueError(f"invalid offboarding error reason: {self.error_reason}")
        if self.connection_status is ConnectionStatus.CONNECTED and self.error_reason is None:
            raise ValueError("offboarding outcome left connected requires an error reason")
        return self


class HybridInverterTelemetry(BaseModel):
    """Normalized hybrid inverter reading (watts, watt-hours, SOC fraction)."""

    model_config = _PLATFORM_CONFIG

    device_id: str
    device_time: datetime
    battery_power_w: int
    meter_power_w: int
    solar_power_w: int
    battery_reactive_power_var: int | None = None
    meter_reactive_power_var: int | None = None
    grid_voltage1_v: float | None = None
    grid_voltage2_v: float | None = None
    grid_voltage3_v: float | None = None
    grid_frequency_hz: float | None = None
    cumulative_battery_charge_energy_wh: float | None = None
    cumulative_battery_discharge_energy_wh: float | None = None
    cumulative_pv_generation_wh: float | None = None
    cumulative_grid_import_wh: float | None = None
    cumulative_grid_export_wh: float | None = None
    state_of_charge: float = Field(ge=0.0, le=1.0)
    state_of_health: float = 1.0
    max_charge_power_w: int | None = None
    max_discharge_power_w: int | None = None

    @field_serializer("device_time")
    def _serialize_device_time(self, value: datetime) -> str:
        return format_utc(value)


class MeterTelemetry(BaseModel):
    """Normalized site meter reading."""

    model_config = _PLATFORM_CONFIG

    device_id: str
    device_time: datetime
    power_w: int
    reactive_power_var: int | None = None
    grid_voltage1_v: float | None = None
    grid_voltage2_v: float | None = None
    grid_voltage3_v: float | None = None
    grid_frequency_hz: float | None = None
    cumulative_grid_import_wh: float | None = None
    cumulative_grid_export_wh: float | None = None

    @field_serializer("device_time")
    def _serialize_device_time(self, value: datetime) -> str:
        return format_utc(value)


class TelemetryData(BaseModel):
    """Per-site telemetry payload of a ``telemetry.v1`` event."""

    model_config = _PLATFORM_CONFIG

    site_id: str
    battery_inverters: list[dict[str, Any]] = Field(default_factory=list)
    hybrid_inverters: list[HybridInverterTelemetry] = Field(default_factory=list)
    solar_inverters: list[dict[str, Any]] = Field(default_factory=list)
    meters: list[MeterTelemetry] = Field(default_factory=list)
