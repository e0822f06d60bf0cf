"""
Change event dispatch for FenceSync.
"""

from .broadcaster import ChangeBroadcaster, ConnectionState, Subscription

__all__ = ["ChangeBroadcaster", "ConnectionState", "Subscription"]
