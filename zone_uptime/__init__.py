"""Uptime monitoring for domains discovered from a Cloudflare account."""

from .__about__ import __version__

__all__ = ["__version__"]
