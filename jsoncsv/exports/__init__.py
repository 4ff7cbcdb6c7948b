"""Exports: CSV encoding of flattened rows.

- writers.py: header derivation, value formatting and BOM-prefixed CSV output
"""
