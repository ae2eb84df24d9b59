"""Outbox item handler that publishes items to an SQS queue."""

import base64
import dataclasses
import json
from collections.abc import Callable
from typing import Any

import aioboto3
from botocore.config import Config

from outbox_relay.handlers.base import ItemT, OutboxItemHandler
from outbox_relay.logging_config import get_logger
from outbox_relay.models import OutboxItemHandleResult
from outbox_relay.options import OutboxOptions

logger = get_logger(__name__)


def _json_default(value: Any) -> Any:
    if isinstance(value, bytes):
        # Binary payloads are base64 encoded for SQS
        return base64.b64encode(value).decode("ascii")
    return str(value)


def default_message_body(item: Any) -> str:
    """Serialize an outbox item dataclass to a JSON message body."""
    return json.dumps(dataclasses.asdict(item), default=_json_default)


def create_sqs_client(
    aws_region: str = "us-east-1",
    aws_endpoint_url: str | None = None,
) -> Any:
    """Create an aioboto3 SQS client context manager.

    Usage:
        async with create_sqs_client(endpoint_url=...) as client:
            handler = SqsOutboxItemHandler(queue_url, client)
    """
    session = aioboto3.Session()
    return session.client(
        "sqs",
        region_name=aws_region,
        endpoint_url=aws_endpoint_url,
        config=Config(retries={"max_attempts": 3, "mode": "adaptive"}),
    )


class SqsOutboxItemHandler(OutboxItemHandler[ItemT]):
    """
    Publishes each outbox item as one SQS message.

    For FIFO queues the item id is the deduplication id, so a redelivered item
    (at-least-once) is dropped by SQS within the deduplication window.
    """

    def __init__(
        self,
        queue_url: str,
        sqs_client: Any,
        message_body: Callable[[ItemT], str] = default_message_body,
        message_group_id: Callable[[ItemT], str] | None = None,
    ) -> None:
        """
        Args:
            queue_url: SQS queue URL
            sqs_client: Open aioboto3 SQS client
            message_body: Serializer of an item to the message body
            message_group_id: Group id selector, required for FIFO queues
        """
        self.queue_url = queue_url
        self.sqs_client = sqs_client
        self.message_body = message_body
        self.message_group_id = message_group_id

    @property
    def is_fifo(self) -> bool:
        return self.queue_url.endswith(".fifo")

    async def handle(self, item: ItemT, options: OutboxOptions) -> OutboxItemHandleResult:
        kwargs: dict[str, Any] = {
            "QueueUrl": self.queue_url,
            "MessageBody": self.message_body(item),
        }

        if self.is_fifo:
            kwargs["MessageDeduplicationId"] = str(item.id)
            kwargs["MessageGroupId"] = (
                self.message_group_id(item) if self.message_group_id else options.name
            )

        try:
            response = await self.sqs_client.send_message(**kwargs)
        except Exception as e:
            logger.error(
                "failed_to_send_outbox_item",
                outbox=options.name,
                item_id=str(item.id),
                queue_url=self.queue_url,
                error=str(e),
            )
            raise

        logger.debug(
            "outbox_item_sent",
            outbox=options.name,
            item_id=str(item.id),
            message_id=response.get("MessageId"),
        )
        return OutboxItemHandleResult.OK
