"""
Pure normalizer that turns vendor snapshots into platform telemetry.

The vendor exposes two views of the same systems:

- **Running data** (report-interval resolution): every field including
  cumulative energy counters, local upload time and timezone.
- **Fast data** (~10 s resolution): only powers and SOC.

For each system, the running snapshot is overlaid with the matching fast
snapshot (:func:`merge_snapshots`) and the merged reading is converted to
one hybrid inverter record and one meter record (:func:`normalize`):

- meter power = L1 + L2 + L3 (missing phase counts as 0)
- solar power = PV1..PV4 (+ DC-side meter power when enabled)
- energy counters kWh -> Wh
- SOC percent -> fraction (missing -> 0.0), SOH fixed at 1.0
- device time local -> UTC using the declared ``+HH:MM`` offset

This module performs no I/O and does not read the clock.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from datetime import datetime, timedelta

from bridge.src.models import (
    FastSnapshot,
    HybridInverterTelemetry,
    MergedReading,
    MeterTelemetry,
    RunningSnapshot,
    SystemInfo,
    TelemetryData,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Mapping from fast snapshot fields to merged reading fields.
# ---------------------------------------------------------------------------

_FAST_TO_MERGED: dict[str, str] = {
    "uploadtime": "upload_datetime",
    "ppv1": "p_pv1",
    "ppv2": "p_pv2",
    "ppv3": "p_pv3",
    "ppv4": "p_pv4",
    "pmeter_l1": "p_meter_l1",
    "pmeter_l2": "p_meter_l2",
    "pmeter_l3": "p_meter_l3",
    "pmeter_dc": "p_meter_dc",
    "pbat": "p_bat",
    "soc": "soc",
    "sva": "sva",
    "varac": "varac",
    "vardc": "vardc",
}
"""Maps FastSnapshot field name -> MergedReading field name."""

_TIMEZONE_RE = re.compile(r"^([+-])?(\d{1,2}):(\d{2})$")

_DEVICE_ID_DISALLOWED_RE = re.compile(r"[^A-Za-z0-9.\-]")

_KILO = 1000.0


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def merge_snapshots(running: RunningSnapshot, fast: FastSnapshot | None) -> MergedReading:
    """Overlay a running snapshot with the fields present in a fast snapshot.

    A field is present when its value is not ``None``. Cumulative energy
    counters only exist in the running snapshot and are always kept.

    Raises:
        ValueError: If the two snapshots belong to different systems.
    """
    fields = running.model_dump()
    if fast is not None:
        if fast.sys_sn != running.sys_sn:
            raise ValueError(f"Cannot merge fast data of {fast.sys_sn} into {running.sys_sn}")
        for fast_name, merged_name in _FAST_TO_MERGED.items():
            value = getattr(fast, fast_name)
            if value is not None:
                fields[merged_name] = value
    return MergedReading(**fields)


def join_snapshots(
    running: Iterable[RunningSnapshot],
    fast: Iterable[FastSnapshot],
) -> list[MergedReading]:
    """Pair every running snapshot with its fast snapshot and merge.

    The first fast snapshot per serial wins; fast snapshots without a
    running counterpart are ignored.
    """
    fast_by_serial: dict[str, FastSnapshot] = {}
    for snapshot in fast:
        fast_by_serial.setdefault(snapshot.sys_sn, snapshot)

    merged: list[MergedReading] = []
    seen: set[str] = set()
    for snapshot in running:
        if snapshot.sys_sn in seen:
            logger.warning("Duplicate running data for %s ignored", snapshot.sys_sn)
            continue
        seen.add(snapshot.sys_sn)
        merged.append(merge_snapshots(snapshot, fast_by_serial.get(snapshot.sys_sn)))

    unmatched = set(fast_by_serial) - seen
    if unmatched:
        logger.debug("Fast data without running data ignored: %s", sorted(unmatched))
    return merged


# ---------------------------------------------------------------------------
# Unit and identifier helpers
# ---------------------------------------------------------------------------


def to_utc(local: datetime, timezone: str | None) -> datetime:
    """Convert a device-local timestamp to UTC.

    Args:
        local: Naive device-local timestamp.
        timezone: Device UTC offset as ``+HH:MM``/``-HH:MM``; a bare
            ``HH:MM`` is treated as positive.

    Returns:
        The naive UTC timestamp, or *local* unchanged when the offset is
        missing or malformed.
    """
    if not timezone:
        return local
    match = _TIMEZONE_RE.match(timezone.strip())
    if match is None:
        logger.warning("Malformed timezone '%s', keeping local device time", timezone)
        return local

    sign, hours, minutes = match.groups()
    hours_i, minutes_i = int(hours), int(minutes)
    if hours_i > 14 or minutes_i > 59:
        logger.warning("Out-of-range timezone '%s', keeping local device time", timezone)
        return local

    offset = timedelta(hours=hours_i, minutes=minutes_i)
    if sign == "-":
        offset = -offset
    return local - offset


def sanitize_device_id(serial: str) -> str:
    """Strip characters outside ``[A-Za-z0-9.-]`` from a serial."""
    return _DEVICE_ID_DISALLOWED_RE.sub("", serial)


def _sum(*values: float | None) -> float:
    return sum(v for v in values if v is not None)


def _to_wh(kwh: float | None) -> float | None:
    return None if kwh is None else kwh * _KILO


def _round(value: float | None) -> int | None:
    return None if value is None else round(value)


def solar_power(reading: MergedReading, *, include_dc_meter: bool) -> float:
    """Sum the PV strings, plus the DC-side meter when enabled."""
    total = _sum(reading.p_pv1, reading.p_pv2, reading.p_pv3, reading.p_pv4)
    if include_dc_meter:
        total += _sum(reading.p_meter_dc)
    return total


def meter_power(reading: MergedReading) -> float:
    """Sum the three meter phases; a missing phase counts as zero."""
    return _sum(reading.p_meter_l1, reading.p_meter_l2, reading.p_meter_l3)


def state_of_charge(soc_percent: float | None) -> float:
    """Convert SOC percent to a fraction clamped to [0, 1]; missing -> 0.0."""
    if soc_percent is None:
        return 0.0
    return min(max(soc_percent / 100.0, 0.0), 1.0)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def normalize(
    reading: MergedReading,
    *,
    device_time: datetime,
    system: SystemInfo | None = None,
    include_dc_meter: bool = True,
) -> tuple[HybridInverterTelemetry, MeterTelemetry]:
    """Convert one merged reading into hybrid inverter and meter telemetry.

    Args:
        reading: Merged running/fast reading of one system.
        device_time: Fallback timestamp when the reading has no upload time
            (injected so this stays clock-free).
        system: Matching system list entry; supplies the nameplate rating
            and the timezone when the reading carries none.
        include_dc_meter: Add ``p_meter_dc`` to solar power.

    Returns:
        ``(hybrid_inverter, meter)`` telemetry records.
    """
    timezone = reading.timezone or (system.timezone if system is not None else None)
    if reading.upload_datetime is not None:
        ts = to_utc(reading.upload_datetime, timezone)
    else:
        logger.warning("No upload time for %s, using collection time", reading.sys_sn)
        ts = device_time

    rated_w = None
    if system is not None and system.poinv is not None:
        rated_w = round(system.poinv * _KILO)

    grid_import_wh = _to_wh(reading.e_input)
    grid_export_wh = _to_wh(reading.e_output)
    meter_w = round(meter_power(reading))
    meter_var = _round(reading.varac)

    inverter = HybridInverterTelemetry(
        device_id=reading.sys_sn,
        device_time=ts,
        battery_power_w=round(_sum(reading.p_bat)),
        meter_power_w=meter_w,
        solar_power_w=round(solar_power(reading, include_dc_meter=include_dc_meter)),
        battery_reactive_power_var=_round(reading.vardc),
        meter_reactive_power_var=meter_var,
        grid_voltage1_v=reading.u_a,
        grid_voltage2_v=reading.u_b,
        grid_voltage3_v=reading.u_c,
        grid_frequency_hz=reading.fac,
        cumulative_battery_charge_energy_wh=_to_wh(reading.e_charge),
        cumulative_battery_discharge_energy_wh=_to_wh(reading.e_discharge),
        cumulative_pv_generation_wh=_to_wh(reading.epv_total),
        cumulative_grid_import_wh=grid_import_wh,
        cumulative_grid_export_wh=grid_export_wh,
        state_of_charge=state_of_charge(reading.soc),
        state_of_health=1.0,
        max_charge_power_w=rated_w,
        max_discharge_power_w=rated_w,
    )
    meter = MeterTelemetry(
        device_id=sanitize_device_id(reading.sys_sn),
        device_time=ts,
        power_w=meter_w,
        reactive_power_var=meter_var,
        grid_voltage1_v=reading.u_a,
        grid_voltage2_v=reading.u_b,
        grid_voltage3_v=reading.u_c,
        grid_frequency_hz=reading.fac,
        cumulative_grid_import_wh=grid_import_wh,
        cumulative_grid_export_wh=grid_export_wh,
    )
    return inverter, meter


def build_telemetry(
    running: Iterable[RunningSnapshot],
    fast: Iterable[FastSnapshot],
    systems: Iterable[SystemInfo] = (),
    *,
    collected_at: datetime,
    include_dc_meter: bool = True,
) -> list[TelemetryData]:
    """Build one telemetry payload per site from both vendor data sources.

    Each system is its own site (site id = serial) with one hybrid
    inverter and one meter. A reading that fails to normalize is logged
    and skipped; the other sites are still returned.
    """
    systems_by_serial = {s.sys_sn: s for s in systems}
    payloads: list[TelemetryData] = []

    for reading in join_snapshots(running, fast):
        try:
            inverter, meter = normalize(
                reading,
                device_time=collected_at,
                system=systems_by_serial.get(reading.sys_sn),
                include_dc_meter=include_dc_meter,
            )
        except ValueError:
            logger.warning("Skipping telemetry for %s", reading.sys_sn, exc_info=True)
            continue
        payloads.append(
            TelemetryData(
                site_id=reading.sys_sn,
                hybrid_inverters=[inverter],
                meters=[meter],
            )
        )
    return payloads
