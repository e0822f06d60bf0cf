"""
Client-local perimeter editing session.

States: IDLE -> DRAWING -> (confirm_draw) -> IDLE and
IDLE -> EDITING -> (save | cancel) -> IDLE. The draft is kept as an open
ring in display order, the way the map draw control hands it over.
Calls from the wrong state raise IllegalStateTransition and change nothing.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence

from fencesync.core import normalize
from fencesync.core.errors import IllegalStateTransition, InsufficientVertices
from fencesync.core.geomath import centroid_of, polygon_area, polygon_perimeter
from fencesync.core.models import Vertex
from fencesync.observability.logging_setup import get_logger

log = get_logger("fencesync.edit_session")


class SessionMode(str, Enum):
    IDLE = "idle"
    DRAWING = "drawing"
    EDITING = "editing"


@dataclass(frozen=True)
class DrawSnapshot:
    """그리기 확정 결과"""
    display_vertices: List[List[float]]
    storage_vertices: List[List[float]]
    center: Vertex
    area_m2: float
    perimeter_m: float


@dataclass(frozen=True)
class SaveRequest:
    """편집 저장 요청 (저장 순서 좌표)"""
    perimeter_id: int
    coordinates: List[List[float]]


def _as_pair(vertex: Sequence[float]) -> List[float]:
    return [float(vertex[0]), float(vertex[1])]


class PerimeterEditSession:
    """단일 퍼리미터 편집 상태 머신"""

    def __init__(self):
        self._mode = SessionMode.IDLE
        self._target: Optional[int] = None
        self._draft: List[List[float]] = []

    @property
    def mode(self) -> SessionMode:
        return self._mode

    @property
    def target_perimeter_id(self) -> Optional[int]:
        return self._target

    @property
    def draft(self) -> List[List[float]]:
        """표시 순서 초안 사본"""
        return [list(p) for p in self._draft]

    @property
    def is_active(self) -> bool:
        return self._mode is not SessionMode.IDLE

    def _require(self, attempted: str, *allowed: SessionMode) -> None:
        if self._mode not in allowed:
            raise IllegalStateTransition(self._mode.value, attempted)

    def _reset(self) -> None:
        self._mode = SessionMode.IDLE
        self._target = None
        self._draft = []

    # ---- 진입 ----
    def start_drawing(self) -> None:
        self._require("start_drawing", SessionMode.IDLE)
        self._mode = SessionMode.DRAWING
        self._draft = []
        log.debug("그리기 시작")

    def start_editing(self, perimeter_id: int, storage_vertices: Sequence[Sequence[float]]) -> bool:
        """
        기존 퍼리미터 편집을 시작합니다.

        Args:
            perimeter_id: 편집할 퍼리미터 ID
            storage_vertices: 저장 순서 좌표

        Returns:
            편집이 시작되면 True, 꼭짓점이 없어 무시되면 False
        """
        self._require("start_editing", SessionMode.IDLE)
        if not storage_vertices:
            log.warning(f"꼭짓점 없는 퍼리미터 편집 요청 무시: {perimeter_id}")
            return False
        self._draft = normalize.open_ring(normalize.to_display_order(storage_vertices))
        self._target = perimeter_id
        self._mode = SessionMode.EDITING
        log.debug(f"편집 시작 perimeter:{perimeter_id} vertices:{len(self._draft)}")
        return True

    # ---- 초안 변경 ----
    def add_vertex(self, vertex: Sequence[float]) -> None:
        self._require("add_vertex", SessionMode.DRAWING, SessionMode.EDITING)
        self._draft.append(_as_pair(vertex))

    def update_vertex(self, index: int, vertex: Sequence[float]) -> None:
        self._require("update_vertex", SessionMode.DRAWING, SessionMode.EDITING)
        self._draft[index] = _as_pair(vertex)

    def remove_vertex(self, index: int) -> None:
        self._require("remove_vertex", SessionMode.DRAWING, SessionMode.EDITING)
        del self._draft[index]

    def replace_draft(self, display_vertices: Sequence[Sequence[float]]) -> None:
        """그리기 컨트롤이 넘겨준 피처 전체로 초안을 교체합니다 (닫힌 링 허용)."""
        self._require("replace_draft", SessionMode.DRAWING, SessionMode.EDITING)
        self._draft = normalize.open_ring([_as_pair(v) for v in display_vertices])

    # ---- 종료 ----
    def confirm_draw(self) -> DrawSnapshot:
        self._require("confirm_draw", SessionMode.DRAWING)
        display = normalize.remove_consecutive_duplicates(normalize.open_ring(self._draft))
        distinct = len({(p[0], p[1]) for p in display})
        if distinct < normalize.MIN_RING_VERTICES:
            raise InsufficientVertices(
                f"polygon needs at least {normalize.MIN_RING_VERTICES} distinct vertices, got {distinct}"
            )
        storage = normalize.validate(normalize.to_storage_order(display))

        vertices = [Vertex.from_display(p) for p in display]
        snapshot = DrawSnapshot(
            display_vertices=display,
            storage_vertices=storage,
            center=centroid_of(vertices),
            area_m2=polygon_area(vertices),
            perimeter_m=polygon_perimeter(vertices),
        )
        self._reset()
        log.info(f"그리기 확정 vertices:{len(display)} area:{snapshot.area_m2:.1f}m²")
        return snapshot

    def save(self) -> SaveRequest:
        self._require("save", SessionMode.EDITING)
        coordinates = normalize.normalize_for_storage(self._draft)
        request = SaveRequest(perimeter_id=self._target, coordinates=coordinates)
        self._reset()
        log.info(f"편집 저장 perimeter:{request.perimeter_id} vertices:{len(coordinates)}")
        return request

    def cancel(self) -> None:
        self._require("cancel", SessionMode.DRAWING, SessionMode.EDITING)
        log.debug(f"편집 취소 mode:{self._mode.value}")
        self._reset()
