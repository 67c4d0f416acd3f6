"""Reservation lifecycle and availability engine for a trailer rental marketplace."""

__version__ = "0.1.0"
