"""
Persistence port interface.

This module defines the protocol for the remote store that owns
geofences, perimeters, rules and pins. Every method may fail with a
transport or validation error.
"""

from typing import List, Protocol
from fencesync.core.models import Geofence, GeofencePin, Perimeter, Rule

class PerimeterStorePort(Protocol):
    """원격 저장소 포트 인터페이스"""

    async def list_perimeters(self, fence_id: int) -> List[Perimeter]:
        """펜스의 퍼리미터 목록을 조회합니다."""
        ...

    async def create_perimeter(self, perimeter: Perimeter) -> Perimeter:
        """퍼리미터를 생성하고 저장된 결과를 반환합니다."""
        ...

    async def update_perimeter(self, perimeter_id: int, perimeter: Perimeter) -> Perimeter:
        """퍼리미터를 수정하고 저장된 결과를 반환합니다."""
        ...

    async def delete_perimeter(self, perimeter_id: int) -> None:
        ...

    async def get_fence(self, fence_id: int) -> Geofence:
        ...

    async def create_fence(self, fence: Geofence) -> Geofence:
        ...

    async def update_fence(self, fence_id: int, fence: Geofence) -> Geofence:
        ...

    async def delete_fence(self, fence_id: int) -> None:
        ...

    async def list_rules(self, fence_id: int) -> List[Rule]:
        ...

    async def create_rule(self, rule: Rule) -> Rule:
        ...

    async def delete_rule(self, rule_id: int) -> None:
        ...

    async def list_pins(self, fence_id: int) -> List[GeofencePin]:
        ...

    async def delete_pin(self, pin_id: int) -> None:
        ...
