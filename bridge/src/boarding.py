"""
Onboarding and offboarding sagas against the vendor API.

Onboarding runs three ordered steps, each of which may end the saga early:

1. **Bind** the serial to the API account (needs a check code).
2. **Add** the serial to the managed control group.
3. **Resolve** site static data from the vendor system list (degrades to a
   minimal record keyed by serial when the system is not listed).

Offboarding runs two ordered steps, both required: remove the serial from
the control group, then unbind it.

Vendor result codes are interpreted through per-operation decision tables
(:data:`BIND_DECISIONS` etc.) that map a code to either *continue* or a
terminal :class:`~bridge.src.models.ErrorReason`. Codes that mean "already
in the desired state" continue, so replays of the same request are safe.

Neither saga raises: every path ends in an outcome. State lives only in
local variables of one invocation.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING

from bridge.src.checksum import generate_check_code
from bridge.src.models import (
    SUCCESS_CODE,
    BatteryStaticData,
    ConnectionStatus,
    ErrorReason,
    HybridInverterStaticData,
    MeterStaticData,
    OffboardingOutcome,
    OnboardingOutcome,
    SiteStaticData,
    SystemInfo,
)
from bridge.src.normalizer import sanitize_device_id

if TYPE_CHECKING:
    from bridge.src.vendor_client import VendorClient

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Vendor result codes
# ---------------------------------------------------------------------------

SERIAL_NOT_FOUND = 6015
ALREADY_BOUND = 6024
ALREADY_IN_GROUP = 6025
IN_OTHER_VPP = 6026

MANUFACTURER = "Neovolt"


# ---------------------------------------------------------------------------
# Decision tables
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Decision:
    """How a saga step proceeds after a vendor result.

    Attributes:
        proceed: ``True`` to continue with the next step.
        error_reason: Terminal reason when ``proceed`` is ``False``.
    """

    proceed: bool
    error_reason: ErrorReason | None = None


CONTINUE = Decision(proceed=True)


def _fail(reason: ErrorReason) -> Decision:
    return Decision(proceed=False, error_reason=reason)


@dataclass(frozen=True, slots=True)
class DecisionTable:
    """Vendor code -> decision mapping for one saga operation."""

    operation: str
    decisions: Mapping[int, Decision]
    default: Decision

    def decide(self, code: int) -> Decision:
        return self.decisions.get(code, self.default)


BIND_DECISIONS = DecisionTable(
    operation="bind",
    decisions={
        SUCCESS_CODE: CONTINUE,
        ALREADY_BOUND: CONTINUE,
        SERIAL_NOT_FOUND: _fail(ErrorReason.WRONG_SERIAL),
        IN_OTHER_VPP: _fail(ErrorReason.IN_OTHER_VPP),
    },
    default=_fail(ErrorReason.REGISTRATION_INCOMPLETE),
)

ADD_TO_GROUP_DECISIONS = DecisionTable(
    operation="add-to-group",
    decisions={
        SUCCESS_CODE: CONTINUE,
        ALREADY_IN_GROUP: CONTINUE,
        IN_OTHER_VPP: _fail(ErrorReason.IN_OTHER_VPP),
    },
    default=_fail(ErrorReason.REGISTRATION_INCOMPLETE),
)

REMOVE_FROM_GROUP_DECISIONS = DecisionTable(
    operation="remove-from-group",
    decisions={SUCCESS_CODE: CONTINUE},
    default=_fail(ErrorReason.DEVICE_OFFLINE),
)

UNBIND_DECISIONS = DecisionTable(
    operation="unbind",
    decisions={SUCCESS_CODE: CONTINUE},
    default=_fail(ErrorReason.DEVICE_OFFLINE),
)


# ---------------------------------------------------------------------------
# Site static data
# ---------------------------------------------------------------------------


def _kilo_to_unit(value: float | None) -> int | None:
    """Scale a kW/kWh vendor rating to W/Wh."""
    if value is None:
        return None
    return round(value * 1000)


def build_site_static_data(system: SystemInfo) -> SiteStaticData:
    """Derive the platform's site description from a vendor system entry."""
    serial = system.sys_sn
    battery_id = f"{serial}-battery"
    inverter_capacity_w = _kilo_to_unit(system.poinv)

    battery = BatteryStaticData(
        device_id=battery_id,
        serial_number=serial,
        manufacturer=MANUFACTURER,
        model=system.mbat,
        firmware=system.bms_version,
        nameplate_energy_capacity_wh=_kilo_to_unit(system.usable_capacity or system.cobat),
        max_charge_power_w=inverter_capacity_w,
        max_discharge_power_w=inverter_capacity_w,
    )
    inverter = HybridInverterStaticData(
        device_id=serial,
        serial_number=serial,
        manufacturer=MANUFACTURER,
        model=system.inv_model or system.system_model,
        firmware=system.inv_version,
        hybrid_inverter_ac_capacity_w=inverter_capacity_w,
        solar_array_rated_dc_output_w=_kilo_to_unit(system.popv),
        connected_battery_ids=[battery_id],
    )
    meter = MeterStaticData(
        device_id=sanitize_device_id(serial),
        serial_number=serial,
        manufacturer=MANUFACTURER,
        model=system.meter_model,
        phase=system.meter_phase,
    )
    return SiteStaticData(
        site_id=serial,
        batteries_static_data=[battery],
        hybrid_inverters_static_data=[inverter],
        meters_static_data=[meter],
    )


async def _resolve_site_static_data(client: VendorClient, serial: str) -> SiteStaticData:
    """Look the serial up in the system list; fall back to a minimal record."""
    result = await client.list_systems()
    if not result.ok:
        logger.warning(
            "System list unavailable for %s (code=%d), using minimal site data",
            serial,
            result.code,
        )
        return SiteStaticData(site_id=serial)

    for system in result.payload or []:
        if system.sys_sn == serial:
            return build_site_static_data(system)

    logger.warning("Serial %s not in system list, using minimal site data", serial)
    return SiteStaticData(site_id=serial)


# ---------------------------------------------------------------------------
# Sagas
# ---------------------------------------------------------------------------


def _onboarding_failure(serial: str, reason: ErrorReason) -> OnboardingOutcome:
    return OnboardingOutcome(
        serial_number=serial,
        device_id=serial,
        connection_status=ConnectionStatus.NOT_CONNECTED,
        error_reason=reason,
    )


async def onboard(client: VendorClient, serial: str) -> OnboardingOutcome:
    """Connect a device: bind, add to group, resolve site data.

    Args:
        client: Vendor API client.
        serial: Vendor system serial number from the request.

    Returns:
        The onboarding outcome. Never raises.
    """
    logger.info("Onboarding serial %s", serial)
    try:
        check_code = generate_check_code(serial)
        if not check_code:
            # Malformed serial: wrong-serial without a bind call (see DESIGN.md,
            # "Empty check code").
            logger.warning("Onboarding %s: no check code for serial, bind impossible", serial)
            return _onboarding_failure(serial, ErrorReason.WRONG_SERIAL)

        steps = (
            (BIND_DECISIONS, lambda: client.bind_sn(serial, check_code)),
            (ADD_TO_GROUP_DECISIONS, lambda: client.add_to_group(serial)),
        )
        for table, call in steps:
            result = await call()
            decision = table.decide(result.code)
            if not decision.proceed:
                logger.warning(
                    "Onboarding %s failed at %s: code=%d info=%s reason=%s",
                    serial,
                    table.operation,
                    result.code,
                    result.message,
                    decision.error_reason,
                )
                return _onboarding_failure(serial, decision.error_reason)
            if not result.ok:
                logger.info(
                    "Onboarding %s: %s returned code=%d, already done, continuing",
                    serial,
                    table.operation,
                    result.code,
                )

        site_static_data = await _resolve_site_static_data(client, serial)
    except Exception:
        logger.error("Onboarding %s raised, reporting registration incomplete", serial, exc_info=True)
        return _onboarding_failure(serial, ErrorReason.REGISTRATION_INCOMPLETE)

    logger.info("Onboarding %s succeeded", serial)
    return OnboardingOutcome(
        serial_number=serial,
        device_id=serial,
        connection_status=ConnectionStatus.CONNECTED,
        site_static_data=site_static_data,
    )


async def offboard(client: VendorClient, serial: str) -> OffboardingOutcome:
    """Disconnect a device: remove from group, then unbind.

    A failure at either step leaves the device reported as ``connected``
    with ``device-offline``, because its removal could not be confirmed.

    Args:
        client: Vendor API client.
        serial: Vendor system serial number from the request.

    Returns:
        The offboarding outcome. Never raises.
    """
    logger.info("Offboarding serial %s", serial)
    try:
        steps = (
            (REMOVE_FROM_GROUP_DECISIONS, lambda: client.remove_from_group(serial)),
            (UNBIND_DECISIONS, lambda: client.unbind_sn(serial)),
        )
        for table, call in steps:
            result = await call()
            decision = table.decide(result.code)
            if not decision.proceed:
                logger.warning(
                    "Offboarding %s failed at %s: code=%d info=%s",
                    serial,
                    table.operation,
                    result.code,
                    result.message,
                )
                return OffboardingOutcome(
                    serial_number=serial,
                    device_id=serial,
                    connection_status=ConnectionStatus.CONNECTED,
                    error_reason=decision.error_reason,
                )
    except Exception:
        logger.error("Offboarding %s raised, reporting device offline", serial, exc_info=True)
        return OffboardingOutcome(
            serial_number=serial,
            device_id=serial,
            connection_status=ConnectionStatus.CONNECTED,
            error_reason=ErrorReason.DEVICE_OFFLINE,
        )

    logger.info("Offboarding %s succeeded", serial)
    return OffboardingOutcome(
        serial_number=serial,
        device_id=serial,
        connection_status=ConnectionStatus.NOT_CONNECTED,
    )
