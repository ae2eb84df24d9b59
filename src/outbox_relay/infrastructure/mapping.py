"""Mapping of outbox item fields to database names."""

import re
from dataclasses import dataclass, field

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def to_snake_case(name: str) -> str:
    """Convert ``MyOutboxItem`` to ``my_outbox_item``."""
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def pluralize(word: str) -> str:
    """Naive English plural, good enough for table names."""
    if word.endswith("y") and word[-2:-1] not in ("a", "e", "i", "o", "u"):
        return word[:-1] + "ies"
    if word.endswith(("s", "x", "z", "ch", "sh")):
        return word + "es"
    return word + "s"


def quote_identifier(name: str) -> str:
    """Quote a PostgreSQL identifier."""
    return '"' + name.replace('"', '""') + '"'


@dataclass(frozen=True)
class DbMapping:
    """Schema, table and column names of an outbox table."""

    schema_name: str
    table_name: str
    column_names: dict[str, str] = field(default_factory=dict)

    @classmethod
    def default(cls, schema_name: str, table_name: str) -> "DbMapping":
        """Default mapping: the given table, columns named after item fields.

        Args:
            schema_name: Database schema where the outbox table is located
            table_name: Table name, used as given

        Raises:
            ValueError: If schema or table name is blank
        """
        if not schema_name or not schema_name.strip():
            raise ValueError("schema_name must not be blank")
        if not table_name or not table_name.strip():
            raise ValueError("table_name must not be blank")

        return cls(
            schema_name=schema_name,
            table_name=table_name,
            column_names={
                "id": "id",
                "status": "status",
                "retry_count": "retry_count",
                "retry_after": "retry_after",
                "priority": "priority",
            },
        )

    def column(self, field_name: str) -> str:
        return self.column_names.get(field_name, field_name)

    @property
    def id(self) -> str:
        return quote_identifier(self.column("id"))

    @property
    def status(self) -> str:
        return quote_identifier(self.column("status"))

    @property
    def retry_count(self) -> str:
        return quote_identifier(self.column("retry_count"))

    @property
    def retry_after(self) -> str:
        return quote_identifier(self.column("retry_after"))

    @property
    def priority(self) -> str:
        return quote_identifier(self.column("priority"))

    @property
    def qualified_table_name(self) -> str:
        return f"{quote_identifier(self.schema_name)}.{quote_identifier(self.table_name)}"

    def qualified_name(self, table_name: str) -> str:
        """Qualify another table (e.g. a partition) in the same schema."""
        return f"{quote_identifier(self.schema_name)}.{quote_identifier(table_name)}"
