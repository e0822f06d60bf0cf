"""
Normalization functions for FenceSync.

This module contains pure functions for moving coordinate rings across the
storage/display order boundary and the open/closed ring boundary.

Storage order is [latitude, longitude] (persistence layer); display order is
[longitude, latitude] (map widgets). The order of a pair cannot be told from
its shape, so every function names the order it expects.
"""

from numbers import Real
from typing import List, Sequence

from fencesync.common.geo import is_finite_pair, validate_coordinates
from fencesync.core.errors import InvalidRing
from fencesync.observability.logging_setup import get_logger

log = get_logger("fencesync.normalize")

Pair = List[float]

MIN_RING_VERTICES = 3


def _swap(pairs: Sequence[Sequence[float]]) -> List[Pair]:
    return [[p[1], p[0]] for p in pairs]


def to_display_order(storage_pairs: Sequence[Sequence[float]]) -> List[Pair]:
    """[위도, 경도] → [경도, 위도]"""
    return _swap(storage_pairs)


def to_storage_order(display_pairs: Sequence[Sequence[float]]) -> List[Pair]:
    """[경도, 위도] → [위도, 경도]"""
    return _swap(display_pairs)


def _same(a: Sequence[float], b: Sequence[float]) -> bool:
    return a[0] == b[0] and a[1] == b[1]


def close_ring(pairs: Sequence[Sequence[float]]) -> List[Pair]:
    """첫 꼭짓점과 마지막 꼭짓점이 다르면 첫 꼭짓점 사본을 덧붙입니다."""
    ring = [list(p) for p in pairs]
    if ring and not _same(ring[0], ring[-1]):
        ring.append(list(ring[0]))
    return ring


def open_ring(pairs: Sequence[Sequence[float]]) -> List[Pair]:
    """첫 꼭짓점과 마지막 꼭짓점이 같으면 마지막을 제거합니다."""
    ring = [list(p) for p in pairs]
    if len(ring) > 1 and _same(ring[0], ring[-1]):
        ring.pop()
    return ring


def remove_consecutive_duplicates(pairs: Sequence[Sequence[float]]) -> List[Pair]:
    """
    인접한 중복 꼭짓점을 하나로 합칩니다.

    드래그 편집으로 꼭짓점이 이웃 위에 겹쳐졌을 때 사용합니다. 링을 닫는
    마지막 중복은 건드리지 않습니다 (open_ring 의 역할).
    """
    result: List[Pair] = []
    for p in pairs:
        if result and _same(result[-1], p):
            continue
        result.append(list(p))
    return result


def _is_number(value) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def validate(storage_pairs: Sequence[Sequence[float]]) -> List[Pair]:
    """
    저장 순서 링을 검증합니다.

    Args:
        storage_pairs: [[위도, 경도], ...]

    Returns:
        열린 링

    Raises:
        InvalidRing: 숫자 쌍이 아니거나, 유한하지 않거나, 범위를 벗어나거나,
            열린 뒤 서로 다른 꼭짓점이 3개 미만인 경우
    """
    for index, pair in enumerate(storage_pairs):
        if len(pair) != 2 or not all(_is_number(c) for c in pair):
            raise InvalidRing(f"vertex {index} is not a numeric pair: {pair!r}")
        if not is_finite_pair(pair):
            raise InvalidRing(f"vertex {index} has a non-finite component: {pair!r}")
        if not validate_coordinates(pair[0], pair[1]):
            raise InvalidRing(f"vertex {index} is out of range: {pair!r}")

    ring = open_ring(storage_pairs)
    distinct = {(p[0], p[1]) for p in ring}
    if len(distinct) < MIN_RING_VERTICES:
        raise InvalidRing(f"ring needs at least {MIN_RING_VERTICES} distinct vertices, got {len(distinct)}")
    return ring


def normalize_for_storage(display_pairs: Sequence[Sequence[float]]) -> List[Pair]:
    """편집 초안(표시 순서)을 저장 가능한 열린 링(저장 순서)으로 변환합니다."""
    storage = to_storage_order(open_ring(display_pairs))
    deduped = remove_consecutive_duplicates(storage)
    if len(deduped) != len(storage):
        log.debug(f"중복 꼭짓점 제거: {len(storage)} -> {len(deduped)}")
    return validate(deduped)
