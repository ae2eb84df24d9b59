"""Resolved per-outbox options and their live-reloadable settings."""

import dataclasses
from dataclasses import dataclass

import structlog

from outbox_relay.config import OutboxSettings, Settings
from outbox_relay.features import OutboxFeatures, validate_settings
from outbox_relay.infrastructure.mapping import DbMapping
from outbox_relay.models import OutboxConfigurationError, OutboxItem

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class OutboxOptions:
    """
    Everything a worker or repository needs to know about one outbox.

    Built once at registration time. Settings may be swapped later through
    :class:`OutboxOptionsMonitor`, which hands out a new instance.
    """

    name: str
    item_type: type[OutboxItem]
    features: OutboxFeatures
    mapping: DbMapping
    settings: OutboxSettings

    @property
    def partitioned(self) -> bool:
        return self.settings.partition.enabled

    def with_settings(self, outbox_settings: OutboxSettings) -> "OutboxOptions":
        return dataclasses.replace(self, settings=outbox_settings)


class OutboxOptionsMonitor:
    """Holds the current options of every registered outbox."""

    def __init__(self) -> None:
        self._options: dict[str, OutboxOptions] = {}

    def add(self, options: OutboxOptions) -> None:
        self._options[options.name] = options

    def get(self, name: str) -> OutboxOptions:
        """Return the current options of outbox ``name``.

        Raises:
            KeyError: If no outbox with this name was added
        """
        return self._options[name]

    def names(self) -> list[str]:
        return list(self._options)

    def update(self, name: str, outbox_settings: OutboxSettings) -> OutboxOptions:
        """Swap the settings of outbox ``name``.

        ``worker_type`` and ``partition.enabled`` are fixed once the outbox is
        registered; the running worker, repository and partition scheduler
        were built from them. Rejected settings leave the current ones in
        place.

        Raises:
            OutboxConfigurationError: If a fixed setting changes or the new
                settings are not supported by the item type
        """
        updated = self._with_settings(name, outbox_settings)
        self._store(updated)
        return updated

    def reload(self, app_settings: Settings) -> None:
        """Re-read the settings of every outbox from ``app_settings``.

        Either every outbox gets its new settings or none does.
        """
        updated = [
            self._with_settings(name, app_settings.for_outbox(name)) for name in self.names()
        ]
        for options in updated:
            self._store(options)

    def _with_settings(self, name: str, outbox_settings: OutboxSettings) -> OutboxOptions:
        current = self._options[name]
        fixed = (
            ("worker_type", current.settings.worker_type, outbox_settings.worker_type),
            (
                "partition.enabled",
                current.settings.partition.enabled,
                outbox_settings.partition.enabled,
            ),
        )
        for field, before, after in fixed:
            if before != after:
                raise OutboxConfigurationError(
                    f"Outbox '{name}': {field} cannot change at runtime "
                    f"(current: {before}, requested: {after})"
                )
        validate_settings(current.item_type, current.features, outbox_settings)
        return current.with_settings(outbox_settings)

    def _store(self, options: OutboxOptions) -> None:
        self._options[options.name] = options
        logger.info(
            "outbox_settings_updated",
            outbox=options.name,
            worker_delay=options.settings.worker_delay.total_seconds(),
            is_worker_enabled=options.settings.is_worker_enabled,
        )
