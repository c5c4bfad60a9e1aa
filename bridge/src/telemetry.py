"""
Telemetry collection from the vendor API.

Fetches the group's running data, fast power data and system list, then
hands them to the pure normalizer. Only the running data is mandatory:
without fast data the running values are used as-is, and without the system
list the nameplate ratings and fallback timezones are left out.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from bridge.src.normalizer import build_telemetry

if TYPE_CHECKING:
    from bridge.src.models import TelemetryData
    from bridge.src.vendor_client import VendorClient

logger = logging.getLogger(__name__)


async def collect_telemetry(
    client: VendorClient,
    *,
    include_dc_meter: bool = True,
    collected_at: datetime | None = None,
) -> list[TelemetryData]:
    """Collect and normalize telemetry for every system in the group.

    Args:
        client: Vendor API client.
        include_dc_meter: Add the DC-side meter to solar power.
        collected_at: Naive UTC fallback device time; defaults to now.

    Returns:
        One payload per site; empty when running data is unavailable.
    """
    if collected_at is None:
        collected_at = datetime.now(tz=UTC).replace(tzinfo=None, microsecond=0)

    running = await client.get_running_data()
    if not running.ok:
        logger.warning(
            "Running data unavailable (code=%d info=%s), skipping telemetry",
            running.code,
            running.message,
        )
        return []

    fast = await client.get_fast_data()
    if not fast.ok:
        logger.warning("Fast data unavailable (code=%d), using running data only", fast.code)

    systems = await client.list_systems()
    if not systems.ok:
        logger.warning("System list unavailable (code=%d), omitting nameplate data", systems.code)

    payloads = build_telemetry(
        running.payload or [],
        fast.payload or [],
        systems.payload or [],
        collected_at=collected_at,
        include_dc_meter=include_dc_meter,
    )
    logger.info("Collected telemetry for %d site(s)", len(payloads))
    return payloads
