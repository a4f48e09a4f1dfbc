"""Subscriptions: turn an MQTT message into a ``Measurement``."""

from __future__ import annotations

from threading import Lock
from typing import Dict, Mapping, Optional

from paho.mqtt.client import topic_matches_sub

from app.schemas import ConversionSpec, SubscriptionSpec
from models.measurement import Measurement
from services.context import TemplateContext
from services.converter import convert
from services.templates import Template, compile_template

_MEASUREMENT = "measurement"
_VALUE = "value"
_TAG_PREFIX = "tag."


class Subscription:
    """A topic pattern plus the rules to build a measurement from its messages.

    Templates are compiled on first use and cached for the lifetime of the
    instance.
    """

    def __init__(
        self,
        topic: str = "",
        measurement: str = "",
        database: str = "",
        tags: Optional[Mapping[str, str]] = None,
        value: str = "",
        csv_separator: str = "",
        conversion: Optional[ConversionSpec] = None,
    ) -> None:
        self.topic = topic
        self.measurement = measurement
        self.database = database
        self.tags: Dict[str, str] = dict(tags or {})
        self.value = value
        self.csv_separator = csv_separator
        self.conversion = conversion or ConversionSpec()
        self._templates: Optional[Dict[str, Template]] = None
        self._compile_lock = Lock()

    @classmethod
    def from_spec(cls, spec: SubscriptionSpec) -> Subscription:
        return cls(
            topic=spec.topic,
            measurement=spec.measurement,
            database=spec.database,
            tags=spec.tags,
            value=spec.value,
            csv_separator=spec.csv_separator,
            conversion=spec.conversion.model_copy(deep=True),
        )

    def to_spec(self) -> SubscriptionSpec:
        return SubscriptionSpec(
            topic=self.topic,
            measurement=self.measurement,
            database=self.database,
            tags=dict(self.tags),
            value=self.value,
            csv_separator=self.csv_separator,
            conversion=self.conversion.model_copy(deep=True),
        )

    def __repr__(self) -> str:
        return f"Subscription(topic={self.topic!r}, measurement={self.measurement!r})"

    def compile(self) -> Dict[str, Template]:
        """Compile all templates once; later calls return the cached set."""
        templates = self._templates
        if templates is not None:
            return templates

        with self._compile_lock:
            if self._templates is None:
                raw = {_MEASUREMENT: self.measurement}
                if self.value:
                    raw[_VALUE] = "{{." + self.value + "}}"
                for tag_name, text in self.tags.items():
                    raw[_TAG_PREFIX + tag_name] = text
                self._templates = {
                    name: compile_template(name, text) for name, text in raw.items()
                }
            return self._templates

    def matches(self, topic: str) -> bool:
        return topic_matches_sub(self.topic, topic)

    def read(self, topic: str, payload: str) -> Measurement:
        """Build a measurement from one message.

        Raises the first ``PipelineError`` met on the way; no partial
        measurement is returned.
        """
        templates = self.compile()
        context = TemplateContext(topic, payload, subscription=self)

        name = templates[_MEASUREMENT].execute(context)
        measurement = Measurement(database=self.database, name=name)

        if self.value:
            raw_value = templates[_VALUE].execute(context)
        else:
            raw_value = payload
        measurement.set_value(convert(self.conversion, raw_value))

        for tag_name in self.tags:
            measurement.tag(tag_name, templates[_TAG_PREFIX + tag_name].execute(context))

        return measurement
