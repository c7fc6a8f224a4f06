"""Command line interface for the SVID helper."""

from .main import cli

__all__ = ["cli"]
