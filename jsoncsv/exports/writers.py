from __future__ import annotations
from typing import List, Dict, Any, Iterable, Sequence
from decimal import Decimal
import csv
import io
import logging
import math

from jsoncsv.errors import EmptyInputError, EncodingError

# Spreadsheet tools sniff this to pick UTF-8
BOM = "\ufeff"
LINE_TERMINATOR = "\r\n"

# Floats in this magnitude range are written without an exponent
PLAIN_FLOAT_MIN = 1e-6
PLAIN_FLOAT_MAX = 1e21

logger = logging.getLogger(__name__)


def derive_header(rows: Iterable[Dict[str, Any]]) -> List[str]:
    """Union of row keys in first-seen order."""
    columns: List[str] = []
    seen = set()
    for r in rows:
        for k in r:
            if k not in seen:
                seen.add(k)
                columns.append(k)
    return columns


def format_float(value: float) -> str:
    """Shortest round-trip digits, as plain decimals between 1e-6 and 1e21.

    Integral floats keep a trailing ``.0`` so they stay distinct from ints.
    """
    text = repr(value)
    if "e" not in text or not math.isfinite(value):
        return text
    if not PLAIN_FLOAT_MIN <= abs(value) < PLAIN_FLOAT_MAX:
        return text
    text = format(Decimal(text), "f")
    return text if "." in text else text + ".0"


def format_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return format_float(value)
    return str(value)


def write_csv(rows: Iterable[Dict[str, Any]], columns: List[str]) -> str:
    buf = io.StringIO()
    w = csv.DictWriter(buf, fieldnames=columns, lineterminator=LINE_TERMINATOR)
    w.writeheader()
    for r in rows:
        w.writerow({k: format_value(r.get(k)) for k in columns})
    return buf.getvalue()


def encode(rows: Sequence[Dict[str, Any]]) -> str:
    """Render rows as CSV text starting with a byte-order mark.

    Raises EmptyInputError when there are no rows, or no columns at all.
    """
    if not rows:
        raise EmptyInputError("No data to convert")
    columns = derive_header(rows)
    if not columns:
        raise EmptyInputError("No fields to convert")
    try:
        text = write_csv(rows, columns)
    except Exception as e:
        raise EncodingError(f"Error encoding CSV: {e}") from e
    logger.debug("encoded %d rows x %d columns", len(rows), len(columns))
    return BOM + text


def utf8_bytes(text: str) -> bytes:
    try:
        return text.encode("utf-8")
    except UnicodeEncodeError as e:
        raise EncodingError(f"Error encoding CSV: {e}") from e


def encode_bytes(rows: Sequence[Dict[str, Any]]) -> bytes:
    return utf8_bytes(encode(rows))
