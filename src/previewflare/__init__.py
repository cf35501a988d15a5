"""Cloudflare Worker preview uploads and live DevTools sessions."""

__version__ = "0.1.0"
