"""
Unit tests for the command translator.

Tests verify:
- Every control command variant maps to its vendor control mode and parameter.
- Charge and discharge power are encoded symmetrically around 32000.
- expire_time carries the command duration; status is always start.
- Platform payloads split into at most one real and one reactive command.
- execute_command sends one dispatch per command and never raises.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from bridge.src.commands import (
    POWER_BASE_W,
    Charge,
    ChargeOnlySelfConsumption,
    CommandData,
    Discharge,
    PowerFactorCorrection,
    ReactiveAbsorb,
    ReactiveInject,
    SelfConsumption,
    control_commands,
    execute_command,
    translate,
)
from bridge.src.models import TRANSPORT_ERROR, VendorResult

_SERIAL = "AL3001220512345"

# ---------------------------------------------------------------------------
# translate
# ---------------------------------------------------------------------------


class TestTranslate:
    """Each variant maps to exactly one vendor mode and parameter layout."""

    @pytest.mark.parametrize(
        ("command", "mode", "parameter"),
        [
            (SelfConsumption(1800), 3, "37000|0|0|0|0|0|1"),
            (ChargeOnlySelfConsumption(1800), 1, "37000|0|0|0|0|0|1"),
            (Charge(3000, 1800), 2, "29000|0|250|0|0|0|1"),
            (Discharge(3000, 1800), 2, "35000|0|25|0|0|0|1"),
            (PowerFactorCorrection(0.95, 1800), 5, "0.95"),
            (ReactiveInject(500, 1800), 6, "500"),
            (ReactiveAbsorb(750, 1800), 7, "750"),
        ],
    )
    def test_modes_and_parameters(self, command: object, mode: int, parameter: str) -> None:
        request = translate(command, _SERIAL)

        assert request.sys_sn == _SERIAL
        assert request.control_mode == mode
        assert request.parameter == parameter
        assert request.expire_time == 1800
        assert request.status == 1

    @pytest.mark.parametrize("power_w", [0, 1, 2500, 5000])
    def test_charge_discharge_symmetry(self, power_w: int) -> None:
        """Charge and discharge at the same power mirror around the base."""
        charge = translate(Charge(power_w, 60), _SERIAL)
        discharge = translate(Discharge(power_w, 60), _SERIAL)

        charge_field = int(charge.parameter.split("|")[0])
        discharge_field = int(discharge.parameter.split("|")[0])
        assert POWER_BASE_W - charge_field == discharge_field - POWER_BASE_W == power_w

    def test_unknown_variant_raises(self) -> None:
        with pytest.raises(TypeError):
            translate("not-a-command", _SERIAL)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# control_commands
# ---------------------------------------------------------------------------


def _payload(**data: object) -> CommandData:
    body: dict[str, object] = {"deviceId": _SERIAL, "durationSeconds": 900}
    body.update(data)
    return CommandData.model_validate(body)


class TestControlCommands:
    """Platform payloads split into command variants."""

    def test_charge_command(self) -> None:
        commands = control_commands(_payload(realMode={"chargeCommand": {"powerW": 4000}}))

        assert commands == [Charge(4000, 900)]

    def test_real_then_reactive(self) -> None:
        data = _payload(
            realMode={"selfConsumptionCommand": {}},
            reactiveMode={"inject": {"reactivePowerVar": 300}},
        )

        commands = control_commands(data)

        assert commands == [SelfConsumption(900), ReactiveInject(300, 900)]

    def test_power_factor_only(self) -> None:
        data = _payload(reactiveMode={"powerFactorCorrection": {"targetPowerFactor": 0.9}})

        assert control_commands(data) == [PowerFactorCorrection(0.9, 900)]

    def test_empty_modes_give_no_commands(self) -> None:
        assert control_commands(_payload(realMode={})) == []

    def test_snake_case_accepted(self) -> None:
        data = CommandData(
            device_id=_SERIAL,
            duration_seconds=60,
            real_mode={"discharge_command": {"power_w": 1000}},
        )

        assert control_commands(data) == [Discharge(1000, 60)]


# ---------------------------------------------------------------------------
# execute_command
# ---------------------------------------------------------------------------


class TestExecuteCommand:
    """Dispatch is fire-and-forget."""

    @pytest.mark.asyncio
    async def test_sends_one_dispatch_per_command(self) -> None:
        client = AsyncMock()
        client.send_dispatch = AsyncMock(return_value=VendorResult(code=200))
        data = _payload(
            realMode={"chargeCommand": {"powerW": 2000}},
            reactiveMode={"absorb": {"reactivePowerVar": 100}},
        )

        accepted = await execute_command(client, data)

        assert accepted == 2
        requests = [c.args[0] for c in client.send_dispatch.call_args_list]
        assert [r.control_mode for r in requests] == [2, 7]
        assert requests[0].parameter == "30000|0|250|0|0|0|1"
        assert requests[0].expire_time == 900

    @pytest.mark.asyncio
    async def test_vendor_failure_is_not_raised(self) -> None:
        client = AsyncMock()
        client.send_dispatch = AsyncMock(
            return_value=VendorResult(code=TRANSPORT_ERROR, message="timeout")
        )

        accepted = await execute_command(client, _payload(realMode={"selfConsumptionCommand": {}}))

        assert accepted == 0
        client.send_dispatch.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_exception_is_not_raised(self) -> None:
        client = AsyncMock()
        client.send_dispatch = AsyncMock(side_effect=RuntimeError("boom"))

        accepted = await execute_command(client, _payload(realMode={"selfConsumptionCommand": {}}))

        assert accepted == 0

    @pytest.mark.asyncio
    async def test_no_modes_sends_nothing(self) -> None:
        client = AsyncMock()

        accepted = await execute_command(client, _payload())

        assert accepted == 0
        client.send_dispatch.assert_not_awaited()
