"""
Geocoding port interface.

This module defines the protocol for best-effort reverse geocoding.
"""

from typing import Protocol
from fencesync.core.models import Vertex

class GeocodingPort(Protocol):
    """역지오코딩 포트 인터페이스"""

    async def reverse(self, vertex: Vertex) -> str:
        """
        좌표의 사람이 읽을 수 있는 주소를 반환합니다. 실패 시 대체 문자열을 반환하며 예외를 내지 않습니다.

        Args:
            vertex: 조회할 좌표

        Returns:
            주소 또는 대체 문자열
        """
        ...
