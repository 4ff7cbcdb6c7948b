from __future__ import annotations
from typing import Any, Callable, Dict, List, Optional, Sequence
import json
import logging
import re

SEPARATOR = "__"

# Shortest key prefix followed by an index segment: "items__0__id" -> "items"
_ARRAY_KEY_RE = re.compile(r"^(.*?)__\d+__", re.DOTALL)

FlatRow = Dict[str, Any]

logger = logging.getLogger(__name__)


def _array_text(values: List[Any]) -> str:
    # Same text JSON.stringify gives: compact, non-ASCII left alone
    return json.dumps(values, separators=(",", ":"), ensure_ascii=False)


def flatten(value: Any, prefix: str = "") -> FlatRow:
    """Collapse one JSON object into a single-level row.

    - Nested objects become ``parent__child`` keys.
    - Arrays whose first element is an object are unrolled as
      ``key__<index>__field``; later non-object elements add nothing.
    - Any other array (including ``[]``) is kept as its JSON text.
    - ``None`` or a non-object input yields ``{}``.

    On key collisions the later key wins but keeps its first position.
    """
    out: FlatRow = {}
    if not isinstance(value, dict):
        return out
    for key, item in value.items():
        full_key = f"{prefix}{SEPARATOR}{key}" if prefix else key
        if isinstance(item, dict):
            out.update(flatten(item, full_key))
        elif isinstance(item, list):
            if item and isinstance(item[0], dict):
                for i, element in enumerate(item):
                    out.update(flatten(element, f"{full_key}{SEPARATOR}{i}"))
            else:
                out[full_key] = _array_text(item)
        else:
            out[full_key] = item
    return out


def array_keys(flat: FlatRow) -> List[str]:
    """Keys of unrolled arrays, in the order they first appear in ``flat``."""
    found: List[str] = []
    for key in flat:
        m = _ARRAY_KEY_RE.match(key)
        if m and m.group(1) not in found:
            found.append(m.group(1))
    return found


def array_items(flat: FlatRow, array_key: str) -> List[FlatRow]:
    """Rebuild the per-element field maps of one unrolled array.

    Indices are visited in ascending order; missing indices are skipped.
    """
    pattern = re.compile(rf"^{re.escape(array_key)}{SEPARATOR}(\d+){SEPARATOR}(.*)$", re.DOTALL)
    by_index: Dict[int, FlatRow] = {}
    for key, value in flat.items():
        m = pattern.match(key)
        if m:
            by_index.setdefault(int(m.group(1)), {})[m.group(2)] = value
    return [by_index[i] for i in sorted(by_index)]


def expand(rows: Optional[Sequence[Any]], on_progress: Optional[Callable[[float], None]] = None) -> List[FlatRow]:
    """Flatten every element and emit one row per nested array element.

    An element without unrolled arrays gives exactly one row. Otherwise every
    array found contributes its own rows: the element's remaining scalar
    fields plus that array element's fields. Several arrays in one element
    add up (``len(a) + len(b)`` rows), they are not cross-multiplied.

    ``on_progress`` receives a whole percentage each time it grows.
    """
    if not isinstance(rows, (list, tuple)):
        return []
    result: List[FlatRow] = []
    total = len(rows)
    reported = -1
    for n, element in enumerate(rows, start=1):
        flat = flatten(element)
        keys = array_keys(flat)
        if not keys:
            result.append(flat)
        else:
            prefixes = tuple(f"{k}{SEPARATOR}" for k in keys)
            base = {k: v for k, v in flat.items() if not k.startswith(prefixes)}
            for array_key in keys:
                for fields in array_items(flat, array_key):
                    row = dict(base)
                    row.update(fields)
                    result.append(row)
        if on_progress is not None:
            pct = n * 100 // total
            if pct > reported:
                reported = pct
                on_progress(float(pct))
    logger.debug("expanded %d elements into %d rows", total, len(result))
    return result
