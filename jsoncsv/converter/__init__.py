"""Conversion pipeline.

Parses JSON text, expands it into rows and encodes them as CSV. Every entry
point (CLI, HTTP route, background jobs) goes through `jsoncsv/converter/core.py`.
"""
