"""Kangaroo: OAuth 2.0 authorization server with an administrative API."""

__version__ = "0.5.0"
