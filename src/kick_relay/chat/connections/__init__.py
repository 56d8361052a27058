"""Upstream chat connections."""
