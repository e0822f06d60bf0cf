"""
Local perimeter state.

Holds the client's current view of perimeters, keyed by id. The
reconciliation controller writes optimistic entries here before the
persistence call returns and replaces them with authoritative ones after.
"""

from typing import Dict, Iterable, List, Optional

from fencesync.core.models import Perimeter
from fencesync.observability import metrics


class PerimeterCache:
    """퍼리미터 로컬 상태 (id → Perimeter)"""

    def __init__(self):
        self._items: Dict[int, Perimeter] = {}

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, perimeter_id: int) -> bool:
        return perimeter_id in self._items

    def get(self, perimeter_id: Optional[int]) -> Optional[Perimeter]:
        if perimeter_id is None:
            return None
        return self._items.get(perimeter_id)

    def put(self, perimeter: Perimeter) -> None:
        self._items[perimeter.id] = perimeter
        metrics.cached_perimeters.set(len(self._items))

    def remove(self, perimeter_id: int) -> Optional[Perimeter]:
        removed = self._items.pop(perimeter_id, None)
        metrics.cached_perimeters.set(len(self._items))
        return removed

    def for_fence(self, fence_id: int) -> List[Perimeter]:
        return [p for p in self._items.values() if p.fence_id == fence_id]

    def fence_of(self, perimeter_id: int) -> Optional[int]:
        perimeter = self._items.get(perimeter_id)
        return perimeter.fence_id if perimeter else None

    def replace_fence(self, fence_id: int, perimeters: Iterable[Perimeter]) -> None:
        """펜스의 퍼리미터를 권위 있는 목록으로 통째로 교체합니다."""
        for pid in [p.id for p in self.for_fence(fence_id)]:
            del self._items[pid]
        for p in perimeters:
            self._items[p.id] = p
        metrics.cached_perimeters.set(len(self._items))

    def drop_fence(self, fence_id: int) -> None:
        self.replace_fence(fence_id, [])

    def snapshot(self, fence_id: int) -> List[Perimeter]:
        return [p.model_copy(deep=True) for p in self.for_fence(fence_id)]
