"""Signal Dashboard — personal calendar and research dashboard."""

__version__ = "0.1.0"
