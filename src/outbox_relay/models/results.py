"""Results returned by outbox item handlers and workers."""

import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import IntEnum


class OutboxItemHandleResult(IntEnum):
    """Result of outbox item processing."""

    UNDEFINED = 0
    OK = 1
    SKIP = 2
    RETRY = 3

    def is_success(self) -> bool:
        """Skipped items are removed from the outbox just like processed ones."""
        return self in (OutboxItemHandleResult.OK, OutboxItemHandleResult.SKIP)


@dataclass(frozen=True)
class OutboxBatchResult:
    """
    Result of processing a batch of outbox items.

    Either the whole batch was processed, or ``processed_info`` maps item ids
    to the result of each item. Items missing from the map were not handled.
    """

    all_processed: bool
    processed_info: Mapping[uuid.UUID, OutboxItemHandleResult] = field(default_factory=dict)

    @classmethod
    def fully_processed(cls) -> "OutboxBatchResult":
        return cls(all_processed=True)

    @classmethod
    def processed_partially(
        cls, processed_info: Mapping[uuid.UUID, OutboxItemHandleResult]
    ) -> "OutboxBatchResult":
        return cls(all_processed=False, processed_info=dict(processed_info))

    def result_for(self, item_id: uuid.UUID) -> OutboxItemHandleResult | None:
        """Result for one item, ``None`` when the handler did not report it."""
        if self.all_processed:
            return OutboxItemHandleResult.OK
        return self.processed_info.get(item_id)


@dataclass
class ProcessResult:
    """Outcome of a single worker tick."""

    fetched: int = 0
    processed: int = 0
    retried: int = 0
    failed: bool = False
