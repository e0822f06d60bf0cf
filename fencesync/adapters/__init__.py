"""
Adapters for FenceSync hexagonal architecture.

This module contains the concrete implementations of port interfaces
that handle external I/O and infrastructure concerns.
"""

from .api.client import FenceApiClient
from .mqtt.transport import MqttEventTransport
from .geocoding.mapbox import MapboxGeocoder

__all__ = ["FenceApiClient", "MqttEventTransport", "MapboxGeocoder"]
