"""Custom database column types for cross-database compatibility."""
from __future__ import annotations

import json
from typing import Any

from sqlalchemy.dialects.postgresql import ARRAY as PG_ARRAY
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import JSON, Text, TypeDecorator


class StringList(TypeDecorator):
    """Persist an ordered list of strings (push tokens, delivery channels).

    Native ``TEXT[]`` on PostgreSQL, a JSON-encoded string elsewhere.
    """

    impl = Text
    cache_ok = True

    def load_dialect_impl(self, dialect):  # type: ignore[override]
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PG_ARRAY(Text))
        return dialect.type_descriptor(Text())

    def process_bind_param(self, value: Any, dialect):  # type: ignore[override]
        if value is None:
            return None
        items = [str(item) for item in value]
        if dialect.name == "postgresql":
            return items
        return json.dumps(items)

    def process_result_value(self, value: Any, dialect):  # type: ignore[override]
        if value is None:
            return []
        if dialect.name == "postgresql":
            return value
        return json.loads(value)


class JSONDocument(TypeDecorator):
    """Persist a JSON document as JSONB on PostgreSQL and JSON elsewhere."""

    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):  # type: ignore[override]
        if dialect.name == "postgresql":
            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(JSON())
