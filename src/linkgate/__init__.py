"""Passwordless magic link authentication."""

__version__ = "0.1.0"
