"""Lytx safety event sync job."""

__version__ = "0.1.0"
