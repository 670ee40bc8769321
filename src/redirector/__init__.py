"""Redirector - host-based HTTP redirect gateway."""

__version__ = "0.1.0"
