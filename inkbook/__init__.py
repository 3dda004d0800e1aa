"""Availability and booking scheduling engine for the tattoo marketplace."""

__version__ = "0.1.0"
