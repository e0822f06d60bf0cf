"""
Core domain models and pure functions for FenceSync.

This module contains the domain models and pure geometry/editing logic
that are independent of external I/O and infrastructure concerns.
"""

from .models import Vertex, Perimeter, Geofence, Rule, GeofencePin, DRAFT_PERIMETER_ID
from .errors import (
    FenceSyncError, InvalidRing, InsufficientVertices, IllegalStateTransition,
    PersistenceFailure, TransportUnavailable, InvalidEventPayload,
)
from .geomath import polygon_area, polygon_perimeter, measure
from .edit_session import PerimeterEditSession, SessionMode, DrawSnapshot, SaveRequest

__all__ = [
    "Vertex", "Perimeter", "Geofence", "Rule", "GeofencePin", "DRAFT_PERIMETER_ID",
    "FenceSyncError", "InvalidRing", "InsufficientVertices", "IllegalStateTransition",
    "PersistenceFailure", "TransportUnavailable", "InvalidEventPayload",
    "polygon_area", "polygon_perimeter", "measure",
    "PerimeterEditSession", "SessionMode", "DrawSnapshot", "SaveRequest",
]
