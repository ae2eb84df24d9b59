"""
Outbox item handlers.

- base.OutboxItemHandler: processes one item at a time
- base.OutboxItemBatchHandler: processes all fetched items at once
- sqs.SqsOutboxItemHandler: publishes items to an SQS queue
"""

from outbox_relay.handlers.base import (
    BatchHandlerFactory,
    HandlerFactory,
    OutboxItemBatchHandler,
    OutboxItemHandler,
)
from outbox_relay.handlers.sqs import SqsOutboxItemHandler, create_sqs_client

__all__ = [
    "BatchHandlerFactory",
    "HandlerFactory",
    "OutboxItemBatchHandler",
    "OutboxItemHandler",
    "SqsOutboxItemHandler",
    "create_sqs_client",
]
