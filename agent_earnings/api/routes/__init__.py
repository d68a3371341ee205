"""API routes package."""

from . import earnings

__all__ = ["earnings"]
