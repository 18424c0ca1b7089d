"""Sekoropo - query aggregation layer for a piece-job marketplace."""

__version__ = "0.3.0"
