"""Kick chat relay for browser overlays."""

__version__ = "0.1.0"
