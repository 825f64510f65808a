"""Chunked lecture video uploads with duration reconciliation."""

__version__ = "0.1.0"
