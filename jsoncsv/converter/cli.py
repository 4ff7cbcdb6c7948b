"""Convert a JSON file to a spreadsheet-ready CSV.

Usage:
    jsoncsv orders.json                 # writes orders.csv next to the input
    jsoncsv orders.json -o out/all.csv
    cat orders.json | jsoncsv -         # CSV goes to stdout
"""
from __future__ import annotations
import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from jsoncsv.config.env import LogConfig, configure_logging
from jsoncsv.converter.core import convert_text, csv_filename
from jsoncsv.errors import ConversionError

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="jsoncsv", description="Convert nested JSON into a flat CSV file")
    p.add_argument("input", help="JSON file to convert, or '-' for stdin")
    p.add_argument("-o", "--output", help="CSV path (default: <input name>.csv, stdout for stdin)")
    p.add_argument("-v", "--verbose", action="store_true", help="log progress to stderr")
    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(LogConfig(level="DEBUG" if args.verbose else "WARNING"))

    try:
        if args.input == "-":
            text = sys.stdin.buffer.read()
        else:
            text = Path(args.input).read_bytes()
    except OSError as e:
        print(f"Cannot read {args.input}: {e}", file=sys.stderr)
        return 1

    def progress(stage: str, pct: float) -> None:
        logger.debug("%s %.0f%%", stage, pct)

    try:
        result = convert_text(text, on_progress=progress)
    except ConversionError as e:
        print(str(e), file=sys.stderr)
        return 1

    if args.output:
        out = Path(args.output)
    elif args.input == "-":
        sys.stdout.buffer.write(result.body)
        sys.stdout.buffer.flush()
        return 0
    else:
        out = Path(args.input).with_name(csv_filename(args.input))
    out.write_bytes(result.body)
    logger.info("wrote %d rows to %s", result.row_count, out)
    print(f"{result.row_count} rows -> {out}", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
