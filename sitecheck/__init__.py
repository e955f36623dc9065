"""Sitecheck: credential storage for unattended browser automation."""
from .version import __version__

__all__ = ["__version__"]
