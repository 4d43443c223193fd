"""Availability and booking engine for a small indoor-cycling studio."""

__version__ = "0.1.0"
