"""
FenceSync: geofence perimeter geometry, editing and multi-client synchronization.
"""

__version__ = "0.1.0"
