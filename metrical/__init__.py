"""Metrics collection agent with retrying HTTP delivery, and server configuration helpers."""

__version__ = "0.1.0"