"""
Geospatial math for event-to-property correlation.

Pure functions, no I/O. Distances are great-circle miles; polygon edge
distances use a local equirectangular projection centred on the property,
which is accurate to well under a percent at the sub-100 mile ranges the
scorer cares about.
"""
import math
from dataclasses import dataclass
from typing import Tuple

from shapely.geometry import Point, Polygon

from .models.geometry import GeoPoint, Geometry

EARTH_RADIUS_MILES = 3958.8

CARDINAL_DIRECTIONS = ("N", "NE", "E", "SE", "S", "SW", "W", "NW")


@dataclass(frozen=True)
class NearestPoint:
    """Closest point of an event geometry to a property"""
    point: GeoPoint
    distance_miles: float
    bearing_degrees: float
    inside: bool = False

    @property
    def cardinal_direction(self) -> str:
        return cardinal_bucket(self.bearing_degrees)


def haversine_distance_miles(a: GeoPoint, b: GeoPoint) -> float:
    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    dlat = lat2 - lat1
    dlon = math.radians(b.lon - a.lon)
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    # rounding can push h fractionally past 1 for antipodal points
    h = min(1.0, max(0.0, h))
    return 2 * EARTH_RADIUS_MILES * math.asin(math.sqrt(h))


def initial_bearing_degrees(origin: GeoPoint, target: GeoPoint) -> float:
    """Forward azimuth from origin to target in [0, 360); 0 for identical points."""
    if origin.lat == target.lat and origin.lon == target.lon:
        return 0.0
    lat1, lat2 = math.radians(origin.lat), math.radians(target.lat)
    dlon = math.radians(target.lon - origin.lon)
    x = math.sin(dlon) * math.cos(lat2)
    y = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(dlon)
    bearing = math.degrees(math.atan2(x, y)) % 360.0
    # -0.0 % 360 and tiny negatives can land on exactly 360.0
    return 0.0 if bearing >= 360.0 else bearing


def cardinal_bucket(bearing_degrees: float) -> str:
    """8-point compass sector; each is 45 degrees wide and centred on its heading."""
    normalized = bearing_degrees % 360.0
    index = int((normalized + 22.5) // 45.0) % 8
    return CARDINAL_DIRECTIONS[index]


def _to_local_xy(origin: GeoPoint, point: GeoPoint) -> Tuple[float, float]:
    dlon = (point.lon - origin.lon + 180.0) % 360.0 - 180.0
    x = math.radians(dlon) * EARTH_RADIUS_MILES * math.cos(math.radians(origin.lat))
    y = math.radians(point.lat - origin.lat) * EARTH_RADIUS_MILES
    return x, y


def _from_local_xy(origin: GeoPoint, x: float, y: float) -> GeoPoint:
    lat = origin.lat + math.degrees(y / EARTH_RADIUS_MILES)
    cos_lat = math.cos(math.radians(origin.lat))
    if abs(cos_lat) < 1e-12:
        lon = origin.lon
    else:
        lon = origin.lon + math.degrees(x / (EARTH_RADIUS_MILES * cos_lat))
    lon = (lon + 180.0) % 360.0 - 180.0
    return GeoPoint(max(-90.0, min(90.0, lat)), lon)


def _closest_on_segment(ax: float, ay: float, bx: float, by: float) -> Tuple[float, float]:
    """Closest point to the origin on segment a-b."""
    dx, dy = bx - ax, by - ay
    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        return ax, ay
    t = -(ax * dx + ay * dy) / length_sq
    t = max(0.0, min(1.0, t))
    return ax + t * dx, ay + t * dy


def to_shapely(geometry: Geometry):
    """Shapely geometry in (lon, lat) axis order."""
    if geometry.is_polygon:
        return Polygon([(p.lon, p.lat) for p in geometry.coordinates])
    first = geometry.coordinates[0]
    return Point(first.lon, first.lat)


def point_in_polygon(point: GeoPoint, geometry: Geometry) -> bool:
    """True when point lies inside or on the boundary of a polygon geometry."""
    if not geometry.is_polygon:
        return False
    polygon = to_shapely(geometry)
    if not polygon.is_valid:
        polygon = polygon.buffer(0)
    return polygon.covers(Point(point.lon, point.lat))


def nearest_point_on_geometry(origin: GeoPoint, geometry: Geometry) -> NearestPoint:
    """
    Closest point of geometry to origin, with distance and bearing.

    Points return themselves. Polygons are scanned edge by edge, including the
    closing edge, and the global minimum is kept. An origin inside the polygon
    is reported at distance 0, bearing 0 with inside=True.
    """
    if geometry.is_empty:
        raise ValueError("geometry has no coordinates")

    if not geometry.is_polygon:
        # degenerate polygons (< 3 vertices) fall through to their edges below
        if len(geometry.coordinates) == 1:
            target = geometry.coordinates[0]
            return NearestPoint(
                point=target,
                distance_miles=haversine_distance_miles(origin, target),
                bearing_degrees=initial_bearing_degrees(origin, target),
            )
    elif point_in_polygon(origin, geometry):
        return NearestPoint(point=origin, distance_miles=0.0, bearing_degrees=0.0, inside=True)

    vertices = [_to_local_xy(origin, p) for p in geometry.coordinates]
    best = None
    best_dist_sq = math.inf
    count = len(vertices)
    edge_count = count if count > 2 else count - 1
    for i in range(max(edge_count, 1)):
        ax, ay = vertices[i]
        bx, by = vertices[(i + 1) % count]
        cx, cy = _closest_on_segment(ax, ay, bx, by)
        dist_sq = cx * cx + cy * cy
        if dist_sq < best_dist_sq:
            best_dist_sq = dist_sq
            best = (cx, cy)

    target = _from_local_xy(origin, best[0], best[1])
    return NearestPoint(
        point=target,
        distance_miles=haversine_distance_miles(origin, target),
        bearing_degrees=initial_bearing_degrees(origin, target),
    )


def geometry_centroid(geometry: Geometry) -> GeoPoint:
    """Point itself, or the area centroid of a polygon (vertex mean if degenerate)."""
    if geometry.is_empty:
        raise ValueError("geometry has no coordinates")
    if geometry.is_polygon:
        polygon = to_shapely(geometry)
        if polygon.area > 0:
            centroid = polygon.centroid
            return GeoPoint(centroid.y, centroid.x)
    lats = [p.lat for p in geometry.coordinates]
    lons = [p.lon for p in geometry.coordinates]
    return GeoPoint(sum(lats) / len(lats), sum(lons) / len(lons))
