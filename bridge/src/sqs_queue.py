"""
Message queue transport backed by AWS SQS.

Thin async wrapper around a boto3 SQS client bound to one queue URL. boto3
is blocking, so each call runs in a worker thread via
:func:`asyncio.to_thread` and never stalls the event loop.

Operations:
- receive(max_messages, wait_s): long-poll one batch of messages.
- delete(receipt_handle): remove a processed message.
- send(body): enqueue one message body.

Transport errors (``botocore.exceptions.BotoCoreError`` /
``ClientError``) propagate to the caller; the dispatcher decides whether a
message stays on the queue.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import boto3

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class QueueMessage:
    """One received message.

    Attributes:
        message_id: Queue-assigned message id.
        receipt_handle: Handle required to delete this delivery.
        body: Raw message body.
    """

    message_id: str
    receipt_handle: str
    body: str


def make_sqs_client(region: str, endpoint_url: str | None = None) -> Any:
    """Create a boto3 SQS client; credentials come from the default chain."""
    return boto3.client("sqs", region_name=region, endpoint_url=endpoint_url)


class SqsQueue:
    """One SQS queue.

    Args:
        client: A boto3 SQS client (shared between queues).
        queue_url: URL of the queue.
        name: Short name used in log lines.
    """

    def __init__(self, client: Any, queue_url: str, name: str = "") -> None:
        self._client = client
        self.queue_url = queue_url
        self.name = name or queue_url.rsplit("/", 1)[-1]

    async def receive(self, max_messages: int = 10, wait_s: int = 5) -> list[QueueMessage]:
        """Long-poll up to *max_messages* messages."""
        response = await asyncio.to_thread(
            self._client.receive_message,
            QueueUrl=self.queue_url,
            MaxNumberOfMessages=max_messages,
            WaitTimeSeconds=wait_s,
        )
        messages = [
            QueueMessage(
                message_id=m["MessageId"],
                receipt_handle=m["ReceiptHandle"],
                body=m.get("Body", ""),
            )
            for m in response.get("Messages", [])
        ]
        if messages:
            logger.info("Received %d message(s) from %s", len(messages), self.name)
        return messages

    async def delete(self, receipt_handle: str) -> None:
        """Delete one delivered message."""
        await asyncio.to_thread(
            self._client.delete_message,
            QueueUrl=self.queue_url,
            ReceiptHandle=receipt_handle,
        )
        logger.debug("Deleted message from %s", self.name)

    async def send(self, body: str) -> str:
        """Send one message body; returns the new message id."""
        response = await asyncio.to_thread(
            self._client.send_message,
            QueueUrl=self.queue_url,
            MessageBody=body,
        )
        logger.debug("Sent message to %s", self.name)
        return response.get("MessageId", "")
