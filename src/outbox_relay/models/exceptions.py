"""Custom exceptions for outbox processing."""


class OutboxError(Exception):
    """Base exception for outbox errors."""

    pass


class OutboxConfigurationError(OutboxError):
    """
    Raised when an outbox is registered with an invalid configuration.

    Examples:
    - Competing worker for an item type without the status capability
    - Partitioning enabled for an item type without the status capability
    - Batch worker type without a batch handler
    """

    pass


class RetryNotSupportedError(OutboxError):
    """Raised when retried items are saved through a strict ordering repository."""

    pass


class TransactionNotStartedError(OutboxError):
    """Raised when results are saved before items were locked and fetched."""

    pass


class PartitioningNotConfiguredError(OutboxError):
    """
    Raised when partitioning is enabled but the outbox table is not partitioned.

    This is a setup error, not a race between partitioners.
    """

    pass
