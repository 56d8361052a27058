"""Emote catalog and rendering."""
