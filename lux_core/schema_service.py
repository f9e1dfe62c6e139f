# lux_core/schema_service.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

from lux_core.driver import Driver
from lux_core.errors import SchemaNotLoaded
from lux_core.schema_loader import load_schema, Schema

@dataclass
class SchemaService:
    driver: Driver
    _schema: Optional[Schema] = None

    def refresh(self) -> Schema:
        self._schema = load_schema(self.driver)
        return self._schema

    def cached(self) -> Schema:
        """The last loaded snapshot, without touching the database."""
        if self._schema is None:
            raise SchemaNotLoaded("Schema has not been loaded yet")
        return self._schema

    def has_drifted(self) -> bool:
        """True when the live database no longer matches the cached snapshot."""
        if self._schema is None:
            return False
        return load_schema(self.driver).schema_version != self._schema.schema_version
