from __future__ import annotations


class ConversionError(Exception):
    """Base class for every failure raised by the conversion pipeline."""


class InvalidJsonError(ConversionError, ValueError):
    """Input text is not parseable JSON."""


class EmptyInputError(ConversionError, ValueError):
    """Input parsed fine but there is nothing to put in a CSV."""


class EncodingError(ConversionError):
    """Unexpected failure while serializing rows to CSV."""
