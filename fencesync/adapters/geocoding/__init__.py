"""
Reverse geocoding adapter for FenceSync.
"""

from .mapbox import MapboxGeocoder

__all__ = ["MapboxGeocoder"]
