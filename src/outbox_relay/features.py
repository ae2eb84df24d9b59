"""Detection of optional outbox item capabilities.

Capabilities are resolved once, when an outbox is registered, and then
threaded through workers and repositories. Query shapes and worker behaviour
branch on these flags instead of testing item types at runtime.
"""

from dataclasses import dataclass

from outbox_relay.config import OutboxSettings
from outbox_relay.models import HasPriority, HasStatus, OutboxConfigurationError, OutboxItem


@dataclass(frozen=True)
class OutboxFeatures:
    """Optional capabilities of an outbox item type."""

    status: bool = False
    priority: bool = False


def resolve_features(item_type: type[OutboxItem]) -> OutboxFeatures:
    """Resolve the capabilities of ``item_type``.

    Raises:
        TypeError: If ``item_type`` is not an :class:`OutboxItem` subclass
    """
    if not isinstance(item_type, type) or not issubclass(item_type, OutboxItem):
        raise TypeError(f"{item_type!r} must inherit from OutboxItem")

    return OutboxFeatures(
        status=issubclass(item_type, HasStatus),
        priority=issubclass(item_type, HasPriority),
    )


def validate_settings(
    item_type: type[OutboxItem],
    features: OutboxFeatures,
    outbox_settings: OutboxSettings,
) -> None:
    """Check that ``outbox_settings`` can work with the item capabilities.

    Raises:
        OutboxConfigurationError: If the combination is not supported
    """
    if outbox_settings.worker_type.is_competing and not features.status:
        raise OutboxConfigurationError(
            f"You should inherit {HasStatus.__name__} in your {item_type.__name__} "
            f"when worker type is {outbox_settings.worker_type.value}"
        )

    if outbox_settings.partition.enabled and not features.status:
        raise OutboxConfigurationError(
            f"You should inherit {HasStatus.__name__} in your {item_type.__name__} "
            "when partitions are enabled"
        )
