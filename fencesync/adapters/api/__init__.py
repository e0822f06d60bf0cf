"""
REST persistence adapter for FenceSync.
"""

from .client import FenceApiClient

__all__ = ["FenceApiClient"]
