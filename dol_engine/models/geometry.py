"""
Geometry primitives shared by events, collectors and the scorer.

Coordinates are WGS84 degrees. GeoJSON input is [lon, lat] ordered; everything
inside the engine is (lat, lon).
"""
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple

MILES_PER_DEGREE_LAT = 69.0


@dataclass(frozen=True)
class GeoPoint:
    """A WGS84 coordinate"""
    lat: float
    lon: float


@dataclass(frozen=True)
class Geometry:
    """Point or polygon extent of a weather event.

    Polygons hold an open ring (closing vertex dropped).
    """
    kind: str
    coordinates: Tuple[GeoPoint, ...]

    POINT = "point"
    POLYGON = "polygon"

    @classmethod
    def point(cls, lat: float, lon: float) -> "Geometry":
        return cls(cls.POINT, (GeoPoint(lat, lon),))

    @classmethod
    def polygon(cls, vertices: Iterable[Sequence[float]]) -> "Geometry":
        """Build a polygon from (lat, lon) vertices, closed or open."""
        ring = [v if isinstance(v, GeoPoint) else GeoPoint(float(v[0]), float(v[1])) for v in vertices]
        if len(ring) > 1 and ring[0] == ring[-1]:
            ring = ring[:-1]
        return cls(cls.POLYGON, tuple(ring))

    @classmethod
    def from_geojson(cls, geometry: Mapping[str, Any]) -> "Geometry":
        """Build from a GeoJSON geometry mapping.

        Supports Point, Polygon (outer ring) and MultiPolygon (largest outer
        ring by vertex count). Anything else, or missing coordinates, yields
        an empty geometry that event construction rejects.
        """
        if not geometry:
            return cls(cls.POINT, ())
        gtype = geometry.get("type")
        coords = geometry.get("coordinates") or []

        if gtype == "Point":
            if len(coords) < 2:
                return cls(cls.POINT, ())
            return cls.point(float(coords[1]), float(coords[0]))
        if gtype == "Polygon":
            outer = coords[0] if coords else []
            return cls.polygon((c[1], c[0]) for c in outer)
        if gtype == "MultiPolygon":
            rings = [poly[0] for poly in coords if poly]
            if not rings:
                return cls(cls.POLYGON, ())
            outer = max(rings, key=len)
            return cls.polygon((c[1], c[0]) for c in outer)
        return cls(cls.POINT, ())

    @property
    def is_empty(self) -> bool:
        return len(self.coordinates) == 0

    @property
    def is_polygon(self) -> bool:
        return self.kind == self.POLYGON and len(self.coordinates) >= 3

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "coordinates": [[p.lat, p.lon] for p in self.coordinates]}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Geometry":
        points: List[GeoPoint] = [GeoPoint(float(lat), float(lon)) for lat, lon in data.get("coordinates", [])]
        return cls(data.get("kind", cls.POINT), tuple(points))


@dataclass(frozen=True)
class BoundingBox:
    """Lat/lon envelope used to scope collector queries"""
    min_lat: float
    min_lon: float
    max_lat: float
    max_lon: float

    @classmethod
    def around(cls, center: GeoPoint, radius_miles: float) -> "BoundingBox":
        """Envelope that contains every point within radius_miles of center."""
        dlat = radius_miles / MILES_PER_DEGREE_LAT
        cos_lat = max(math.cos(math.radians(center.lat)), 1e-6)
        dlon = min(radius_miles / (MILES_PER_DEGREE_LAT * cos_lat), 180.0)
        return cls(
            min_lat=max(center.lat - dlat, -90.0),
            min_lon=max(center.lon - dlon, -180.0),
            max_lat=min(center.lat + dlat, 90.0),
            max_lon=min(center.lon + dlon, 180.0),
        )

    def contains(self, point: GeoPoint) -> bool:
        return self.min_lat <= point.lat <= self.max_lat and self.min_lon <= point.lon <= self.max_lon

    def intersects(self, geometry: Geometry) -> bool:
        """True when the geometry's envelope overlaps this box."""
        if geometry.is_empty:
            return False
        lats = [p.lat for p in geometry.coordinates]
        lons = [p.lon for p in geometry.coordinates]
        return not (
            max(lats) < self.min_lat or min(lats) > self.max_lat or
            max(lons) < self.min_lon or min(lons) > self.max_lon
        )

    def to_query(self) -> str:
        """west,south,east,north string used by GeoJSON feeds."""
        return f"{self.min_lon:.4f},{self.min_lat:.4f},{self.max_lon:.4f},{self.max_lat:.4f}"
