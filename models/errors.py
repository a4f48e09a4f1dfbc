"""Error taxonomy for the message-to-measurement pipeline."""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for failures while turning a message into a measurement."""


class ParseError(PipelineError, ValueError):
    """A value, JSON document, CSV record or template could not be parsed."""


class TemplateSyntaxError(ParseError):
    """A subscription template is malformed."""


class ValidationError(PipelineError, ValueError):
    """A value or name does not satisfy the line protocol constraints."""


class InvalidDatabaseName(ValidationError):
    pass


class InvalidMeasurementName(ValidationError):
    pass


class MissingValue(ValidationError):
    pass


class InvalidFieldName(ValidationError):
    pass


class InvalidTagName(ValidationError):
    pass


class InvalidTagValue(ValidationError):
    pass


class MissingLookupKey(PipelineError, LookupError):
    """The raw value has no entry in the conversion lookup table."""


class IndexOutOfRange(PipelineError, IndexError):
    """A topic segment or CSV column index does not exist."""


class KeyNotFound(PipelineError, LookupError):
    """A JSON path does not resolve to a scalar value."""


class UnsupportedConversionError(PipelineError, ValueError):
    """The conversion kind is unknown."""


class DeliveryError(PipelineError):
    """InfluxDB rejected a write request."""
