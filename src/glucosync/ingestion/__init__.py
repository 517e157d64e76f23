"""Ingestion layer.

Turns raw feed payloads into validated :class:`~glucosync.models.Reading`
objects, dropping malformed entries at the boundary.
"""
