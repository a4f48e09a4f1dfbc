"""Measurement model and its InfluxDB line protocol representation."""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from typing import Dict

from models.errors import (
    InvalidDatabaseName,
    InvalidFieldName,
    InvalidMeasurementName,
    InvalidTagName,
    InvalidTagValue,
    MissingValue,
)

_NAME_PATTERN = re.compile(r"[a-zA-Z0-9\-_.]+")
_TAG_VALUE_PATTERN = re.compile(r"[a-zA-Z0-9:;\-_.]+")

VALUE_FIELD = "value"


@dataclass(slots=True)
class Measurement:
    """A single data point to be written to InfluxDB.

    Field values are kept pre-formatted for the line protocol (``1.5``,
    ``3i``, ``true``, ``"text"``).
    """

    database: str
    name: str
    timestamp: int = field(default_factory=time.time_ns)
    values: Dict[str, str] = field(default_factory=dict)
    tags: Dict[str, str] = field(default_factory=dict)

    def tag(self, name: str, value: str) -> None:
        self.tags[name] = value

    def set_value(self, value: str) -> None:
        self.values[VALUE_FIELD] = value

    def validate(self) -> None:
        """Raise a ``ValidationError`` subclass if the point cannot be written."""
        if self.database and not _NAME_PATTERN.fullmatch(self.database):
            raise InvalidDatabaseName(f"Invalid database name {self.database!r}")

        if not _NAME_PATTERN.fullmatch(self.name):
            raise InvalidMeasurementName(f"Invalid measurement name {self.name!r}")

        if not self.values:
            raise MissingValue("At least one value is required")

        for field_name in self.values:
            if not _NAME_PATTERN.fullmatch(field_name):
                raise InvalidFieldName(f"Invalid field name {field_name!r}")

        for tag_name, tag_value in self.tags.items():
            if not _NAME_PATTERN.fullmatch(tag_name):
                raise InvalidTagName(f"Invalid tag name {tag_name!r}")
            if not _TAG_VALUE_PATTERN.fullmatch(tag_value):
                raise InvalidTagValue(f"Invalid value {tag_value!r} for tag {tag_name!r}")

    def format(self) -> str:
        """Return the line protocol text for this measurement.

        ``<measurement>[,<tag>=<value>...] <field>=<value>[,<field>=<value>...] <timestamp>``

        Tags are sorted by name, which is what InfluxDB prefers on ingest.
        """
        head = self.name
        for tag_name in sorted(self.tags):
            head += f",{tag_name}={self.tags[tag_name]}"
        fields = ",".join(f"{name}={value}" for name, value in self.values.items())
        return f"{head} {fields} {self.timestamp}"
