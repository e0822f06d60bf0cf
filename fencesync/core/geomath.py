"""
Spherical geometry for perimeters.

Area uses the spherical-excess style summation over the implicitly closed
ring; perimeter sums haversine legs with wrap-around. The two calculations
use different earth radii (equatorial for area, mean for perimeter). Stored
and displayed measurements depend on both, so they are kept apart.
"""

import math
from dataclasses import dataclass
from typing import Optional, Sequence

from fencesync.common.geo import (
    MEAN_EARTH_RADIUS_M,
    bounding_box_center,
    haversine_distance,
    point_in_polygon,
    to_lonlat_polygon,
)
from fencesync.core.models import GeofencePin, Perimeter, Vertex

AREA_EARTH_RADIUS_M = 6378137.0
PERIMETER_EARTH_RADIUS_M = MEAN_EARTH_RADIUS_M


@dataclass(frozen=True)
class Measurement:
    area_m2: float
    perimeter_m: float
    center: Optional[Vertex]


def polygon_area(vertices: Sequence[Vertex], radius_m: float = AREA_EARTH_RADIUS_M) -> float:
    """폴리곤 면적 (제곱미터). 꼭짓점이 3개 미만이면 0."""
    if not vertices or len(vertices) < 3:
        return 0.0

    total = 0.0
    n = len(vertices)
    for i in range(n):
        p1 = vertices[i]
        p2 = vertices[(i + 1) % n]
        lat1 = math.radians(p1.latitude)
        lat2 = math.radians(p2.latitude)
        lng1 = math.radians(p1.longitude)
        lng2 = math.radians(p2.longitude)
        total += (lng2 - lng1) * (2 + math.sin(lat1) + math.sin(lat2))

    return abs(total * radius_m * radius_m / 2)


def polygon_perimeter(vertices: Sequence[Vertex], radius_m: float = PERIMETER_EARTH_RADIUS_M) -> float:
    """폴리곤 둘레 (미터). 꼭짓점이 2개 미만이면 0."""
    if not vertices or len(vertices) < 2:
        return 0.0

    total = 0.0
    n = len(vertices)
    for i in range(n):
        a = vertices[i]
        b = vertices[(i + 1) % n]
        total += haversine_distance(a.latitude, a.longitude, b.latitude, b.longitude, radius_m)

    return total


def centroid_of(vertices: Sequence[Vertex]) -> Vertex:
    """경계 상자 중심을 Vertex 로 반환합니다."""
    lat, lon = bounding_box_center(vertices)
    return Vertex(latitude=lat, longitude=lon)


def circle_area(radius: float) -> float:
    return math.pi * radius * radius


def circle_circumference(radius: float) -> float:
    return 2 * math.pi * radius


def measure(perimeter: Perimeter) -> Measurement:
    """퍼리미터 종류에 따라 면적/둘레/중심을 계산합니다."""
    if perimeter.type == "circle":
        radius = perimeter.radius or 0.0
        center = Vertex.from_storage(perimeter.center) if perimeter.center else None
        return Measurement(circle_area(radius), circle_circumference(radius), center)

    vertices = perimeter.vertices()
    center = centroid_of(vertices) if vertices else None
    return Measurement(polygon_area(vertices), polygon_perimeter(vertices), center)


def pin_inside(pin: GeofencePin, perimeter: Perimeter) -> bool:
    """핀이 퍼리미터 내부에 있는지 확인합니다."""
    lat, lon = pin.coordinates[0], pin.coordinates[1]
    if perimeter.type == "circle":
        if not perimeter.center or perimeter.radius is None:
            return False
        c_lat, c_lon = perimeter.center[0], perimeter.center[1]
        return haversine_distance(lat, lon, c_lat, c_lon) <= perimeter.radius
    return point_in_polygon((lon, lat), to_lonlat_polygon(perimeter.vertices()))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def format_distance(meters: float) -> str:
    if meters >= 1000:
        return f"{meters / 1000:.2f} km"
    return f"{_round_half_up(meters)} m"


def format_area(sq_meters: float) -> str:
    if sq_meters >= 1_000_000:
        return f"{sq_meters / 1_000_000:.2f} km²"
    return f"{_round_half_up(sq_meters)} m²"
