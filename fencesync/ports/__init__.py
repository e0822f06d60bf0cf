"""
Port interfaces for FenceSync hexagonal architecture.

This module defines the port interfaces (Protocols) that define
the contracts between the core and external adapters.
"""

from .persistence import PerimeterStorePort
from .transport import EventTransportPort
from .geocoding import GeocodingPort

__all__ = ["PerimeterStorePort", "EventTransportPort", "GeocodingPort"]
