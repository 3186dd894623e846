"""Booking & availability engine for multi-tenant appointment businesses."""

__version__ = "1.0.0"
