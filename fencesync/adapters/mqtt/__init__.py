"""
MQTT change-event transport adapter for FenceSync.
"""

from .transport import MqttEventTransport

__all__ = ["MqttEventTransport"]
