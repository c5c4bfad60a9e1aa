"""
Translate platform control commands into vendor dispatch requests.

A platform ``battery-inverter.command.v1`` payload names at most one real
power mode and at most one reactive power mode. Each mode becomes one
:class:`ControlCommand` variant, and each variant maps to exactly one vendor
control mode with a fixed pipe-delimited parameter layout:

=============================  ====  =====================================
Variant                        Mode  Parameter
=============================  ====  =====================================
SelfConsumption                3     ``{MAX_POWER}|0|0|0|0|0|1``
ChargeOnlySelfConsumption      1     ``{MAX_POWER}|0|0|0|0|0|1``
Charge(P)                      2     ``{BASE - P}|0|250|0|0|0|1``
Discharge(P)                   2     ``{BASE + P}|0|25|0|0|0|1``
PowerFactorCorrection(target)  5     ``{target}``
ReactiveInject(var)            6     ``{var}``
ReactiveAbsorb(var)            7     ``{var}``
=============================  ====  =====================================

The vendor encodes battery power as an offset from ``BASE`` (32000):
values below it charge, values above it discharge. The SOC target field
uses 0.4 % per unit, so 250 means 100 % and 25 means 10 %.

Dispatch is fire-and-forget: failures are logged, never retried, and no
response event is emitted.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from bridge.src.models import DispatchRequest

if TYPE_CHECKING:
    from bridge.src.vendor_client import VendorClient

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Vendor constants
# ---------------------------------------------------------------------------

POWER_BASE_W = 32000
"""Vendor reference point for charge/discharge power encoding."""

MAX_POWER_W = 37000
"""Power ceiling sent with the self-consumption modes."""

SOC_FULL = 250
"""SOC target of 100 % (0.4 % per unit)."""

SOC_RESERVE = 25
"""SOC target of 10 % (0.4 % per unit)."""

MODE_CHARGE_ONLY_SELF_CONSUMPTION = 1
MODE_CHARGE_DISCHARGE = 2
MODE_SELF_CONSUMPTION = 3
MODE_POWER_FACTOR = 5
MODE_REACTIVE_INJECT = 6
MODE_REACTIVE_ABSORB = 7

STATUS_STOP = 0
STATUS_START = 1


# ---------------------------------------------------------------------------
# Platform command payload
# ---------------------------------------------------------------------------

_CAMEL = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _Empty(BaseModel):
    model_config = _CAMEL


class _PowerCommand(BaseModel):
    model_config = _CAMEL

    power_w: int = Field(ge=0)


class _PowerFactorCommand(BaseModel):
    model_config = _CAMEL

    target_power_factor: float


class _ReactiveCommand(BaseModel):
    model_config = _CAMEL

    reactive_power_var: int = Field(ge=0)


class RealMode(BaseModel):
    model_config = _CAMEL

    self_consumption_command: _Empty | None = None
    charge_only_self_consumption_command: _Empty | None = None
    charge_command: _PowerCommand | None = None
    discharge_command: _PowerCommand | None = None


class ReactiveMode(BaseModel):
    model_config = _CAMEL

    power_factor_correction: _PowerFactorCommand | None = None
    inject: _ReactiveCommand | None = None
    absorb: _ReactiveCommand | None = None


class CommandData(BaseModel):
    """Data of a ``battery-inverter.command.v1`` event."""

    model_config = _CAMEL

    device_id: str
    real_mode: RealMode | None = None
    reactive_mode: ReactiveMode | None = None
    start_time: datetime | None = None
    duration_seconds: int = Field(ge=0)


# ---------------------------------------------------------------------------
# Control command variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SelfConsumption:
    duration_s: int
    start_time: datetime | None = None


@dataclass(frozen=True, slots=True)
class ChargeOnlySelfConsumption:
    duration_s: int
    start_time: datetime | None = None


@dataclass(frozen=True, slots=True)
class Charge:
    power_w: int
    duration_s: int
    start_time: datetime | None = None


@dataclass(frozen=True, slots=True)
class Discharge:
    power_w: int
    duration_s: int
    start_time: datetime | None = None


@dataclass(frozen=True, slots=True)
class PowerFactorCorrection:
    target: float
    duration_s: int
    start_time: datetime | None = None


@dataclass(frozen=True, slots=True)
class ReactiveInject:
    reactive_power_var: int
    duration_s: int
    start_time: datetime | None = None


@dataclass(frozen=True, slots=True)
class ReactiveAbsorb:
    reactive_power_var: int
    duration_s: int
    start_time: datetime | None = None


ControlCommand = (
    SelfConsumption
    | ChargeOnlySelfConsumption
    | Charge
    | Discharge
    | PowerFactorCorrection
    | ReactiveInject
    | ReactiveAbsorb
)


def control_commands(data: CommandData) -> list[ControlCommand]:
    """Split a platform command payload into control command variants.

    The real power mode (if any) comes first, then the reactive mode.
    Within a mode the first populated option wins.
    """
    duration = data.duration_seconds
    start = data.start_time
    commands: list[ControlCommand] = []

    real = data.real_mode
    if real is not None:
        if real.self_consumption_command is not None:
            commands.append(SelfConsumption(duration, start))
        elif real.charge_only_self_consumption_command is not None:
            commands.append(ChargeOnlySelfConsumption(duration, start))
        elif real.charge_command is not None:
            commands.append(Charge(real.charge_command.power_w, duration, start))
        elif real.discharge_command is not None:
            commands.append(Discharge(real.discharge_command.power_w, duration, start))

    reactive = data.reactive_mode
    if reactive is not None:
        if reactive.power_factor_correction is not None:
            target = reactive.power_factor_correction.target_power_factor
            commands.append(PowerFactorCorrection(target, duration, start))
        elif reactive.inject is not None:
            commands.append(ReactiveInject(reactive.inject.reactive_power_var, duration, start))
        elif reactive.absorb is not None:
            commands.append(ReactiveAbsorb(reactive.absorb.reactive_power_var, duration, start))

    return commands


# ---------------------------------------------------------------------------
# Translation
# ---------------------------------------------------------------------------


def _battery_parameter(power_field: int, soc_target: int) -> str:
    return f"{power_field}|0|{soc_target}|0|0|0|1"


def translate(command: ControlCommand, serial: str) -> DispatchRequest:
    """Encode one control command as a vendor dispatch request.

    Args:
        command: The control command variant.
        serial: Target system serial number.

    Returns:
        The dispatch request with ``status`` set to start.

    Raises:
        TypeError: If *command* is not a known variant.
    """
    match command:
        case SelfConsumption():
            mode, parameter = MODE_SELF_CONSUMPTION, _battery_parameter(MAX_POWER_W, 0)
        case ChargeOnlySelfConsumption():
            mode, parameter = MODE_CHARGE_ONLY_SELF_CONSUMPTION, _battery_parameter(MAX_POWER_W, 0)
        case Charge(power_w=power_w):
            mode, parameter = MODE_CHARGE_DISCHARGE, _battery_parameter(POWER_BASE_W - power_w, SOC_FULL)
        case Discharge(power_w=power_w):
            mode, parameter = MODE_CHARGE_DISCHARGE, _battery_parameter(POWER_BASE_W + power_w, SOC_RESERVE)
        case PowerFactorCorrection(target=target):
            mode, parameter = MODE_POWER_FACTOR, str(target)
        case ReactiveInject(reactive_power_var=var):
            mode, parameter = MODE_REACTIVE_INJECT, str(var)
        case ReactiveAbsorb(reactive_power_var=var):
            mode, parameter = MODE_REACTIVE_ABSORB, str(var)
        case _:
            raise TypeError(f"Unsupported control command: {command!r}")

    return DispatchRequest(
        sys_sn=serial,
        control_mode=mode,
        expire_time=command.duration_s,
        parameter=parameter,
        status=STATUS_START,
    )


async def execute_command(client: VendorClient, data: CommandData) -> int:
    """Translate and send every control command in a platform payload.

    Failures are logged and never retried or raised.

    Args:
        client: Vendor API client.
        data: Decoded command payload; ``device_id`` is the vendor serial.

    Returns:
        Number of dispatch requests the vendor accepted.
    """
    commands = control_commands(data)
    if not commands:
        logger.warning("Command for device %s carries no known mode, nothing sent", data.device_id)
        return 0

    accepted = 0
    for command in commands:
        try:
            request = translate(command, data.device_id)
            result = await client.send_dispatch(request)
        except Exception:
            logger.error(
                "Dispatch of %s to device %s raised", type(command).__name__, data.device_id, exc_info=True
            )
            continue

        if result.ok:
            accepted += 1
            logger.info(
                "Dispatched %s to device %s: mode=%d parameter=%s expire=%ds",
                type(command).__name__,
                data.device_id,
                request.control_mode,
                request.parameter,
                request.expire_time,
            )
        else:
            logger.error(
                "Dispatch of %s to device %s failed: code=%d info=%s",
                type(command).__name__,
                data.device_id,
                result.code,
                result.message,
            )
    return accepted
