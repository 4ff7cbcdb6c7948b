"""Flattener package.

Collapses nested JSON objects into dotted-key (``__``) scalar rows and expands
arrays of objects into one row per element. Pure-python, no shared state.
See `jsoncsv/flattener/engine.py`.
"""
