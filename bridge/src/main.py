"""
Bridge daemon main loop for the vendor-to-VPP integration.

Runs two independent asyncio loops:
1. **Dispatch loop**: every tick, pulls one bounded batch from each inbound
   queue (commands, onboarding, offboarding) and processes it sequentially
   through the Dispatcher.
2. **Telemetry loop**: on each wall-clock telemetry boundary, collects
   running and fast data from the vendor, normalizes it, and publishes one
   telemetry event per site.

Both loops are resilient: an exception in one iteration is logged and does
not crash the loop or affect the other loop. Graceful shutdown on
SIGTERM/SIGINT sets a shared asyncio.Event; each loop finishes its current
iteration and exits. A vendor call or saga in flight always runs to
completion or timeout.

Structured JSON logging is used for all events. A HealthWriter instance
tracks the last dispatch tick, last telemetry publication and processed
message count.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import hashlib
import json
import logging
import signal
import sys
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from bridge.src.health import HealthWriter
from bridge.src.telemetry import collect_telemetry

if TYPE_CHECKING:
    from bridge.src.dispatcher import Dispatcher
    from bridge.src.sqs_queue import SqsQueue
    from bridge.src.vendor_client import VendorClient

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Structured JSON logging setup
# ---------------------------------------------------------------------------


def configure_logging(level: int = logging.INFO) -> None:
    """Configure structured JSON logging for the bridge daemon.

    Sets up the root logger with a JSON-formatted handler writing to stderr.
    """

    class _JsonFormatter(logging.Formatter):
        """Minimal JSON log formatter."""

        def format(self, record: logging.LogRecord) -> str:
            log_entry = {
                "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
            }
            if record.exc_info and record.exc_info[1] is not None:
                log_entry["exception"] = self.formatException(record.exc_info)
            return json.dumps(log_entry)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
    # boto and httpx log every request at INFO/DEBUG.
    for noisy in ("botocore", "boto3", "urllib3", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _masked_secret(value: str | None) -> str:
    """Return a short non-reversible fingerprint for diagnostics."""
    if not value:
        return "empty"
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()[:10]
    return f"len={len(value)} sha256={digest}"


def log_config_summary(settings: object) -> None:
    """Log a config summary at startup, excluding secrets.

    The vendor API secret is only logged as a masked fingerprint.

    Args:
        settings: A BridgeSettings instance (or any object with the same attrs).
    """
    logger.info(
        "Bridge daemon starting with config: "
        "vendor_base_url=%s, vendor_group_key=%s, vendor_timeout_s=%s, "
        "command_queue_url=%s, onboarding_queue_url=%s, "
        "offboarding_queue_url=%s, telemetry_queue_url=%s, aws_region=%s, "
        "dispatch_interval_s=%s, telemetry_interval_s=%s, "
        "receive_batch_size=%s, receive_wait_s=%s, "
        "solar_includes_dc_meter=%s, source_id=%s, vendor_secret_masked=%s",
        settings.vendor_base_url,  # type: ignore[attr-defined]
        settings.vendor_group_key,  # type: ignore[attr-defined]
        settings.vendor_timeout_s,  # type: ignore[attr-defined]
        settings.command_queue_url,  # type: ignore[attr-defined]
        settings.onboarding_queue_url,  # type: ignore[attr-defined]
        settings.offboarding_queue_url,  # type: ignore[attr-defined]
        settings.telemetry_queue_url,  # type: ignore[attr-defined]
        settings.aws_region,  # type: ignore[attr-defined]
        settings.dispatch_interval_s,  # type: ignore[attr-defined]
        settings.telemetry_interval_s,  # type: ignore[attr-defined]
        settings.receive_batch_size,  # type: ignore[attr-defined]
        settings.receive_wait_s,  # type: ignore[attr-defined]
        settings.solar_includes_dc_meter,  # type: ignore[attr-defined]
        settings.source_id,  # type: ignore[attr-defined]
        _masked_secret(settings.vendor_api_secret),  # type: ignore[attr-defined]
    )


# ---------------------------------------------------------------------------
# Single-iteration functions (easily testable)
# ---------------------------------------------------------------------------


async def _dispatch_once(
    *,
    dispatcher: Dispatcher,
    inbound: Sequence[SqsQueue],
    health: HealthWriter | None,
) -> int:
    """Process one batch from every inbound queue.

    A failure on one queue (e.g. receive error) is logged and the remaining
    queues are still polled.

    Returns:
        Number of messages deleted across all queues.
    """
    processed = 0
    for queue in inbound:
        try:
            processed += await dispatcher.process_queue(queue)
        except Exception:
            logger.error("Dispatch cycle error on queue %s", queue.name, exc_info=True)

    if health is not None:
        try:
            health.record_dispatch(processed)
        except Exception:
            logger.warning("Failed to write health file", exc_info=True)
    return processed


async def _telemetry_once(
    *,
    client: VendorClient,
    dispatcher: Dispatcher,
    include_dc_meter: bool,
    health: HealthWriter | None,
) -> int:
    """Collect, normalize and publish telemetry once.

    Catches all exceptions so that the caller's loop is never broken.

    Returns:
        Number of telemetry events published.
    """
    try:
        payloads = await collect_telemetry(client, include_dc_meter=include_dc_meter)
        if not payloads:
            logger.info("No telemetry to publish")
            return 0
        sent = await dispatcher.publish_telemetry(payloads)
        logger.info("Published telemetry for %d/%d site(s)", sent, len(payloads))
    except Exception:
        logger.error("Telemetry cycle error", exc_info=True)
        return 0

    if health is not None and sent:
        try:
            health.record_telemetry()
        except Exception:
            logger.warning("Failed to write health file", exc_info=True)
    return sent


# ---------------------------------------------------------------------------
# Loop runners
# ---------------------------------------------------------------------------


def _seconds_until_next_tick(interval_s: float, now: datetime | None = None) -> float:
    """Seconds from *now* to the next multiple of *interval_s* since the epoch."""
    if now is None:
        now = datetime.now(tz=UTC)
    return interval_s - (now.timestamp() % interval_s)


async def _dispatch_loop(
    *,
    dispatcher: Dispatcher,
    inbound: Sequence[SqsQueue],
    dispatch_interval_s: float,
    shutdown_event: asyncio.Event,
    health: HealthWriter | None,
) -> None:
    """Run the dispatch loop until shutdown_event is set."""
    logger.info("Dispatch loop started (interval=%ss)", dispatch_interval_s)
    while not shutdown_event.is_set():
        await _dispatch_once(dispatcher=dispatcher, inbound=inbound, health=health)
        # Use wait with timeout so we can check shutdown between sleeps
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(shutdown_event.wait(), timeout=dispatch_interval_s)
    logger.info("Dispatch loop stopped")


async def _telemetry_loop(
    *,
    client: VendorClient,
    dispatcher: Dispatcher,
    telemetry_interval_s: float,
    include_dc_meter: bool,
    shutdown_event: asyncio.Event,
    health: HealthWriter | None,
) -> None:
    """Run the telemetry loop until shutdown_event is set.

    Publishes on wall-clock boundaries (multiples of the interval in UTC
    epoch time), so a 300 s interval sends at :00, :05, :10 and so on.
    """
    logger.info("Telemetry loop started (interval=%ss)", telemetry_interval_s)
    while not shutdown_event.is_set():
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(
                shutdown_event.wait(), timeout=_seconds_until_next_tick(telemetry_interval_s)
            )
        if shutdown_event.is_set():
            break
        await _telemetry_once(
            client=client,
            dispatcher=dispatcher,
            include_dc_meter=include_dc_meter,
            health=health,
        )
    logger.info("Telemetry loop stopped")


async def run_loops(
    *,
    client: VendorClient,
    dispatcher: Dispatcher,
    inbound: Sequence[SqsQueue],
    dispatch_interval_s: float,
    telemetry_interval_s: float,
    include_dc_meter: bool,
    shutdown_event: asyncio.Event,
    health: HealthWriter | None = None,
) -> None:
    """Run dispatch and telemetry loops concurrently until shutdown."""
    logger.info("Starting concurrent dispatch and telemetry loops")

    await asyncio.gather(
        _dispatch_loop(
            dispatcher=dispatcher,
            inbound=inbound,
            dispatch_interval_s=dispatch_interval_s,
            shutdown_event=shutdown_event,
            health=health,
        ),
        _telemetry_loop(
            client=client,
            dispatcher=dispatcher,
            telemetry_interval_s=telemetry_interval_s,
            include_dc_meter=include_dc_meter,
            shutdown_event=shutdown_event,
            health=health,
        ),
    )
    logger.info("Shutdown complete")


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


async def async_main() -> None:
    """Async entrypoint: load config, build components, run loops.

    Sets up SIGTERM/SIGINT handlers to trigger graceful shutdown.
    """
    configure_logging()

    from bridge.src.config import BridgeSettings
    from bridge.src.dispatcher import Dispatcher
    from bridge.src.sqs_queue import SqsQueue, make_sqs_client
    from bridge.src.vendor_client import VendorClient

    settings = BridgeSettings()
    log_config_summary(settings)

    shutdown_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda: _handle_signal(shutdown_event))

    client = VendorClient(
        base_url=settings.vendor_base_url,
        api_key=settings.vendor_api_key,
        api_secret=settings.vendor_api_secret,
        group_key=settings.vendor_group_key,
        timeout_s=settings.vendor_timeout_s,
        page_size=settings.system_list_page_size,
    )

    sqs = make_sqs_client(settings.aws_region, settings.sqs_endpoint_url)
    inbound = [
        SqsQueue(sqs, settings.command_queue_url, name="command"),
        SqsQueue(sqs, settings.onboarding_queue_url, name="onboarding"),
        SqsQueue(sqs, settings.offboarding_queue_url, name="offboarding"),
    ]
    outbound = SqsQueue(sqs, settings.telemetry_queue_url, name="telemetry")

    dispatcher = Dispatcher(
        client=client,
        outbound=outbound,
        source_id=settings.source_id,
        type_prefix=settings.event_type_prefix,
        batch_size=settings.receive_batch_size,
        wait_s=settings.receive_wait_s,
    )

    await run_loops(
        client=client,
        dispatcher=dispatcher,
        inbound=inbound,
        dispatch_interval_s=settings.dispatch_interval_s,
        telemetry_interval_s=settings.telemetry_interval_s,
        include_dc_meter=settings.solar_includes_dc_meter,
        shutdown_event=shutdown_event,
        health=HealthWriter(settings.health_path),
    )


def _handle_signal(shutdown_event: asyncio.Event) -> None:
    """Handle SIGTERM/SIGINT by setting the shutdown event."""
    logger.info("Received shutdown signal, initiating graceful shutdown")
    shutdown_event.set()


def main() -> None:
    """Synchronous entrypoint for the bridge daemon."""
    asyncio.run(async_main())


if __name__ == "__main__":
    main()
