"""Tailfire — API credential lifecycle and object-storage providers."""

__version__ = "0.3.0"
