"""Per-message data exposed to subscription templates."""

from __future__ import annotations

import csv
import io
import json
from typing import TYPE_CHECKING, Any, List, Optional

from models.errors import IndexOutOfRange, KeyNotFound, ParseError, ValidationError

if TYPE_CHECKING:
    from services.subscription import Subscription

DEFAULT_CSV_SEPARATOR = ","


class TemplateContext:
    """Accessors for one MQTT message, used by ``Template.execute``."""

    def __init__(
        self,
        topic: str,
        payload: str,
        subscription: Optional[Subscription] = None,
    ) -> None:
        self.full_topic = topic
        self.payload = payload
        self.parts: List[str] = topic.split("/")
        self._subscription = subscription

    def topic(self, index: int) -> str:
        """Return the ``index``-th ``/``-separated segment of the topic."""
        if index < 0 or index >= len(self.parts):
            raise IndexOutOfRange(
                f"topic index {index} out of range for {self.full_topic!r}"
            )
        return self.parts[index]

    def json(self, path: str) -> str:
        """Parse the payload as JSON and return the scalar at a dotted ``path``.

        ``foo.bar.1`` returns ``data["foo"]["bar"][1]``.
        """
        try:
            data = json.loads(self.payload)
        except json.JSONDecodeError as exc:
            raise ParseError(f"payload is not valid JSON: {exc}") from exc
        except RecursionError as exc:
            raise ParseError("payload JSON is nested too deeply") from exc
        return format_json_scalar(walk_json(data, path))

    def csv(self, index: int) -> str:
        """Parse the payload as a single CSV record and return column ``index``."""
        separator = self.csv_separator
        if len(separator) != 1:
            raise ValidationError(f"Invalid CSV separator {separator!r}")

        reader = csv.reader(io.StringIO(self.payload, newline=""), delimiter=separator, strict=True)
        try:
            record = next((row for row in reader if row), None)
        except csv.Error as exc:
            raise ParseError(f"payload is not valid CSV: {exc}") from exc
        if record is None:
            raise ParseError("payload contains no CSV record")

        max_index = len(record) - 1
        if index < 0 or index > max_index:
            raise IndexOutOfRange(
                f"column index {index} is out of range (max: {max_index})"
            )
        return record[index]

    @property
    def csv_separator(self) -> str:
        if self._subscription is None or not self._subscription.csv_separator:
            return DEFAULT_CSV_SEPARATOR
        return self._subscription.csv_separator


def walk_json(data: Any, path: str) -> Any:
    """Follow ``path`` through nested objects and arrays.

    Every segment but the last must land on a container and the last one on
    a scalar; anything else raises ``KeyNotFound``.
    """
    segments = path.split(".")
    current = data
    for segment in segments:
        if isinstance(current, dict):
            current = current.get(segment)
        elif isinstance(current, list):
            current = _array_item(current, segment)
        else:
            raise KeyNotFound(f"could not find {path!r} in JSON")

        if current is None:
            raise KeyNotFound(f"could not find key {segment!r}")

    if isinstance(current, (dict, list)):
        raise KeyNotFound(f"{path!r} does not point to a value")
    return current


def _array_item(items: list, segment: str) -> Any:
    if not (segment.isascii() and segment.isdigit()):
        return None
    index = int(segment)
    if index >= len(items):
        return None
    return items[index]


def format_json_scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    return str(value)
