"""Verification pipeline that turns generated place names into geocoded records."""

__version__ = "0.1.0"
