"""Endpoint modules for the official and Share feeds."""
