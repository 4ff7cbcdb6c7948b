from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import PurePosixPath, PureWindowsPath
from typing import Any, Callable, List, Optional
import json
import logging
import math

from jsoncsv.errors import InvalidJsonError
from jsoncsv.flattener.engine import expand
from jsoncsv.exports.writers import derive_header, encode, utf8_bytes, BOM

ProgressFn = Callable[[str, float], None]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Conversion:
    body: bytes
    row_count: int
    columns: List[str] = field(default_factory=list)


def _reject_constant(name: str) -> Any:
    raise InvalidJsonError(f"Invalid JSON: {name} is not allowed")


def _parse_float(text: str) -> float:
    value = float(text)
    if math.isinf(value):
        raise InvalidJsonError(f"Invalid JSON: number {text} is out of range")
    return value


def parse_json(text: str | bytes) -> Any:
    """Parse a JSON document; raises InvalidJsonError on anything unparseable."""
    if isinstance(text, (bytes, bytearray)):
        try:
            text = bytes(text).decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidJsonError(f"Invalid JSON: not UTF-8 text ({e})") from e
    if text.startswith(BOM):
        text = text[len(BOM):]
    if not text.strip():
        raise InvalidJsonError("Invalid JSON: document is empty")
    try:
        return json.loads(text, parse_constant=_reject_constant, parse_float=_parse_float)
    except InvalidJsonError:
        raise
    except ValueError as e:  # JSONDecodeError, or an integer literal past the digit limit
        raise InvalidJsonError(f"Invalid JSON: {e}") from e
    except RecursionError as e:
        raise InvalidJsonError("Invalid JSON: nesting too deep") from e


def wrap_rows(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def convert(value: Any, on_progress: Optional[ProgressFn] = None) -> Conversion:
    """Expand a parsed JSON value and encode it as BOM-prefixed UTF-8 CSV.

    Progress goes to ``on_progress(stage, percent)``: stage ``processing``
    while rows are expanded, then ``creating`` at 0, 50 and 100 while the
    file is built.
    """
    def report(stage: str, pct: float) -> None:
        if on_progress is not None:
            on_progress(stage, pct)

    reached = 0.0

    def processing(pct: float) -> None:
        nonlocal reached
        reached = pct
        report("processing", pct)

    try:
        rows = expand(wrap_rows(value), on_progress=processing)
    except RecursionError as e:
        raise InvalidJsonError("Invalid JSON: nesting too deep") from e
    # Empty input never reaches 100 inside expand
    if reached < 100.0:
        report("processing", 100.0)
    report("creating", 0.0)
    text = encode(rows)
    report("creating", 50.0)
    body = utf8_bytes(text)
    report("creating", 100.0)
    columns = derive_header(rows)
    logger.debug("converted %d rows, %d columns, %d bytes", len(rows), len(columns), len(body))
    return Conversion(body=body, row_count=len(rows), columns=columns)


def convert_text(text: str | bytes, on_progress: Optional[ProgressFn] = None) -> Conversion:
    return convert(parse_json(text), on_progress=on_progress)


def csv_filename(name: Optional[str]) -> str:
    """``data/orders.json`` -> ``orders.csv``; falls back to ``data.csv``."""
    base = PureWindowsPath(PurePosixPath(name or "").name).name
    stem = base.rsplit(".", 1)[0] if "." in base else base
    return f"{stem or 'data'}.csv"
