"""Core configuration for Kick Chat Relay."""

from .settings import Settings

__all__ = ["Settings"]
