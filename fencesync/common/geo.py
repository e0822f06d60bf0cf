"""
Geographic utilities for FenceSync.

This module provides geographic helpers including great-circle
distance, bounding boxes, point-in-polygon testing and
coordinate range checks.
"""

import math
from typing import Any, List, Sequence, Tuple

# 평균 지구 반지름 (미터)
MEAN_EARTH_RADIUS_M = 6371e3

def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float,
                       radius_m: float = MEAN_EARTH_RADIUS_M) -> float:
    """
    두 지점 간의 Haversine 거리를 계산합니다 (미터).

    Args:
        lat1: 첫 번째 지점의 위도
        lon1: 첫 번째 지점의 경도
        lat2: 두 번째 지점의 위도
        lon2: 두 번째 지점의 경도
        radius_m: 구 반지름 (미터)

    Returns:
        두 지점 간의 거리 (미터)
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = (math.sin(dlat / 2) ** 2 +
         math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return radius_m * c

def point_in_polygon(point: Tuple[float, float], polygon: Sequence[Sequence[float]]) -> bool:
    """
    점이 폴리곤 내부에 있는지 Ray casting 알고리즘으로 확인합니다.

    Args:
        point: 확인할 점 (경도, 위도)
        polygon: 폴리곤의 꼭짓점들 [(경도, 위도), ...]

    Returns:
        점이 폴리곤 내부에 있으면 True, 외부에 있으면 False
    """
    if len(polygon) < 3:
        return False

    x, y = point
    n = len(polygon)
    inside = False

    p1x, p1y = polygon[0]
    for i in range(1, n + 1):
        p2x, p2y = polygon[i % n]
        if min(p1y, p2y) < y <= max(p1y, p2y) and x <= max(p1x, p2x):
            xinters = (y - p1y) * (p2x - p1x) / (p2y - p1y) + p1x
            if p1x == p2x or x <= xinters:
                inside = not inside
        p1x, p1y = p2x, p2y

    return inside

def bounding_box(vertices: Sequence[Any]) -> Tuple[float, float, float, float]:
    """
    꼭짓점들(latitude/longitude 속성)의 경계 상자를 계산합니다.

    Returns:
        (min_lat, min_lon, max_lat, max_lon)
    """
    if not vertices:
        return (0.0, 0.0, 0.0, 0.0)

    lats = [v.latitude for v in vertices]
    lons = [v.longitude for v in vertices]

    return (min(lats), min(lons), max(lats), max(lons))

def bounding_box_center(vertices: Sequence[Any]) -> Tuple[float, float]:
    """경계 상자 중심 (위도, 경도). 진짜 무게중심이 아니며 역지오코딩 기준점으로 사용합니다."""
    min_lat, min_lon, max_lat, max_lon = bounding_box(vertices)
    return ((min_lat + max_lat) / 2, (min_lon + max_lon) / 2)

def validate_coordinates(lat: float, lon: float) -> bool:
    """
    좌표가 유효한지 확인합니다.

    Args:
        lat: 위도
        lon: 경도

    Returns:
        좌표가 유효하면 True
    """
    return -90 <= lat <= 90 and -180 <= lon <= 180

def is_finite_pair(pair: Sequence[float]) -> bool:
    return len(pair) == 2 and all(math.isfinite(c) for c in pair)

def to_lonlat_polygon(vertices: Sequence[Any]) -> List[Tuple[float, float]]:
    return [(v.longitude, v.latitude) for v in vertices]
