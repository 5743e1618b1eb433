"""Ingestion layer.

This package contains the pieces a camera sighting passes through before it
reaches the trip state machine: plate recognition, plate normalization and
the duplicate-frame cooldown filter.
"""

__all__: list[str] = []
