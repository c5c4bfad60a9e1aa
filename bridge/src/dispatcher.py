"""
Inbound message dispatcher.

Pulls one bounded batch from an inbound queue, decodes each envelope and
routes it by event type:

- ``*.battery-inverter.command.v1`` -> command translator (no response)
- ``*.onboarding-request.v1``       -> onboarding saga -> ``onboarding-response.v1``
- ``*.offboarding-request.v1``      -> offboarding saga -> ``offboarding-response.v1``

Responses and telemetry go to the outbound (telemetry) queue.

Delivery is at-least-once: a message is deleted only after it has been
handled. Messages that can never succeed (undecodable envelope, unknown
type, invalid payload) are logged and deleted. Any other failure, such as
the outbound send, leaves the message on the queue for redelivery; the
sagas tolerate replays.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from bridge.src.boarding import offboard, onboard
from bridge.src.commands import CommandData, execute_command
from bridge.src.envelope import (
    COMMAND_SUFFIX,
    OFFBOARDING_REQUEST_SUFFIX,
    OFFBOARDING_RESPONSE_SUFFIX,
    ONBOARDING_REQUEST_SUFFIX,
    ONBOARDING_RESPONSE_SUFFIX,
    TELEMETRY_SUFFIX,
    Envelope,
    EnvelopeError,
    create_envelope,
    decode_envelope,
    encode_envelope,
)

if TYPE_CHECKING:
    from bridge.src.models import TelemetryData
    from bridge.src.sqs_queue import SqsQueue
    from bridge.src.vendor_client import VendorClient

logger = logging.getLogger(__name__)


class BoardingRequestData(BaseModel):
    """Data of an onboarding or offboarding request event."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    serial_number: str


class Dispatcher:
    """Routes inbound envelopes and publishes outbound ones.

    Args:
        client: Vendor API client used by the sagas and translator.
        outbound: Queue receiving responses and telemetry.
        source_id: Envelope ``source`` of emitted events.
        type_prefix: Prefix of emitted event types.
        batch_size: Max messages pulled per queue per tick.
        wait_s: Long-poll wait per receive.
    """

    def __init__(
        self,
        *,
        client: VendorClient,
        outbound: SqsQueue,
        source_id: str,
        type_prefix: str,
        batch_size: int = 10,
        wait_s: int = 5,
    ) -> None:
        self._client = client
        self._outbound = outbound
        self._source_id = source_id
        self._type_prefix = type_prefix.rstrip(".")
        self._batch_size = batch_size
        self._wait_s = wait_s

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def process_queue(self, queue: SqsQueue) -> int:
        """Receive and process one batch from *queue*, in arrival order.

        Returns:
            Number of messages deleted from the queue.
        """
        messages = await queue.receive(self._batch_size, self._wait_s)
        deleted = 0

        for message in messages:
            try:
                envelope = decode_envelope(message.body)
            except EnvelopeError:
                logger.error(
                    "Discarding undecodable message %s from %s",
                    message.message_id,
                    queue.name,
                    exc_info=True,
                )
            else:
                try:
                    await self.route(envelope)
                except Exception:
                    logger.error(
                        "Failed to process message %s (type=%s), leaving it for redelivery",
                        message.message_id,
                        envelope.type,
                        exc_info=True,
                    )
                    continue

            try:
                await queue.delete(message.receipt_handle)
                deleted += 1
            except Exception:
                logger.error(
                    "Failed to delete message %s from %s", message.message_id, queue.name, exc_info=True
                )

        return deleted

    async def route(self, envelope: Envelope) -> None:
        """Handle one decoded envelope.

        Raises:
            Exception: Whatever publishing a response raises; the caller
                keeps the message for redelivery.
        """
        event_type = envelope.type
        if event_type.endswith(COMMAND_SUFFIX):
            model: type[BaseModel] = CommandData
        elif event_type.endswith((ONBOARDING_REQUEST_SUFFIX, OFFBOARDING_REQUEST_SUFFIX)):
            model = BoardingRequestData
        else:
            logger.warning("Unknown message type %s (id=%s), dropping", event_type, envelope.id)
            return

        try:
            data = model.model_validate(envelope.data)
        except ValidationError:
            logger.error(
                "Invalid %s payload (id=%s), dropping", event_type, envelope.id, exc_info=True
            )
            return

        if isinstance(data, CommandData):
            await execute_command(self._client, data)
        elif event_type.endswith(ONBOARDING_REQUEST_SUFFIX):
            outcome = await onboard(self._client, data.serial_number)
            await self.publish(ONBOARDING_RESPONSE_SUFFIX, outcome)
        else:
            outcome = await offboard(self._client, data.serial_number)
            await self.publish(OFFBOARDING_RESPONSE_SUFFIX, outcome)

    async def publish(self, suffix: str, payload: BaseModel) -> None:
        """Wrap *payload* in an envelope and send it to the outbound queue."""
        envelope = create_envelope(f"{self._type_prefix}{suffix}", self._source_id, payload)
        await self._outbound.send(encode_envelope(envelope))
        logger.info("Published %s (id=%s)", envelope.type, envelope.id)

    async def publish_telemetry(self, payloads: Iterable[TelemetryData]) -> int:
        """Publish one telemetry event per site; a failed send skips that site.

        Returns:
            Number of telemetry events sent.
        """
        sent = 0
        for payload in payloads:
            try:
                await self.publish(TELEMETRY_SUFFIX, payload)
                sent += 1
            except Exception:
                logger.error("Failed to publish telemetry for site %s", payload.site_id, exc_info=True)
        return sent
