"""
Event envelope codec for messages on the platform queues.

Every queue message body is a JSON envelope::

    {
      "specversion": "1.0",
      "id": "<uuid>",
      "type": "com.evergen.energy.telemetry.v1",
      "source": "urn:...",
      "time": "2026-10-19T08:00:00Z",
      "datacontenttype": "application/json",
      "data": {...}
    }

``time`` is UTC with second precision and a literal trailing ``Z``.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_serializer, field_validator

from bridge.src.models import format_utc

COMMAND_SUFFIX = ".battery-inverter.command.v1"
ONBOARDING_REQUEST_SUFFIX = ".onboarding-request.v1"
OFFBOARDING_REQUEST_SUFFIX = ".offboarding-request.v1"
ONBOARDING_RESPONSE_SUFFIX = ".onboarding-response.v1"
OFFBOARDING_RESPONSE_SUFFIX = ".offboarding-response.v1"
TELEMETRY_SUFFIX = ".telemetry.v1"


class EnvelopeError(ValueError):
    """Raised when a message body is not a valid event envelope."""


class Envelope(BaseModel):
    """One event on a platform queue."""

    specversion: str = "1.0"
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: str
    source: str
    time: datetime
    datacontenttype: str = "application/json"
    data: Any = None

    @field_validator("time")
    @classmethod
    def _as_naive_utc(cls, v: datetime) -> datetime:
        """Store time as naive UTC truncated to whole seconds."""
        if v.tzinfo is not None:
            v = v.astimezone(UTC).replace(tzinfo=None)
        return v.replace(microsecond=0)

    @field_serializer("time")
    def _serialize_time(self, value: datetime) -> str:
        return format_utc(value)


def create_envelope(
    event_type: str,
    source: str,
    data: BaseModel | dict[str, Any],
    *,
    now: datetime | None = None,
) -> Envelope:
    """Wrap a payload in a new envelope with a fresh id.

    Platform models are dumped with their camelCase aliases.
    """
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json", by_alias=True)
    return Envelope(
        type=event_type,
        source=source,
        time=now if now is not None else datetime.now(tz=UTC),
        data=data,
    )


def encode_envelope(envelope: Envelope) -> str:
    """Serialize an envelope to a queue message body."""
    return envelope.model_dump_json()


def decode_envelope(body: str) -> Envelope:
    """Parse a queue message body.

    Raises:
        EnvelopeError: If the body is not JSON or lacks required members.
    """
    try:
        return Envelope.model_validate_json(body)
    except ValidationError as exc:
        raise EnvelopeError(f"Invalid event envelope: {exc.error_count()} error(s)") from exc
