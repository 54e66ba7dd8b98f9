# src/Services/geometry_engine.py

"""
Geometry Engine for fence polygons.

The consistency services never touch coordinates through their own
geometry code; every spatial primitive goes through a GeometryEngine:

- explode            single-part pieces of a multi-part geometry (ST_Dump)
- repair             valid approximation of the input (ST_MakeValid)
- canonicalize       snap to grid + normalize rings/parts (ST_SnapToGrid + ST_Normalize)
- serialize / hash   deterministic WKB + md5 (ST_AsBinary + md5)
- validity tests     is_valid / validity_reason / is_simple
- equals_exact       vertex-for-vertex equality (ST_OrderingEquals)
- area               geodesic area in m² (ST_Area on geography)

ShapelyGeometryEngine runs those primitives in-process with Shapely (GEOS,
the same library PostGIS is built on) and pyproj for geodesic area.

Error policy:
- GeometryParseError: the input is not a usable GeoJSON geometry. Callers
  decide locally (drop the row, flag the fence).
- GeometryEngineError: GEOS itself failed. Fatal for the calling operation.
- repair() returning None: the geometry cannot be repaired. Not an error.
"""

import hashlib
import json
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Union

import shapely
from shapely.errors import GEOSException
from shapely.geometry import MultiPolygon, Polygon, shape
from shapely.geometry.base import BaseGeometry
from shapely.validation import explain_validity
from pyproj import Geod


GeoJSON = Dict[str, Any]
RawGeometry = Union[str, bytes, Mapping[str, Any]]

POLYGONAL_TYPES = ("Polygon", "MultiPolygon")


# ==========================================================
# Errors
# ==========================================================

class FenceGeometryError(Exception):
    """Base class for geometry failures raised by the engine."""


class GeometryParseError(FenceGeometryError, ValueError):
    """Raw geometry could not be turned into a GeoJSON / Shapely geometry."""


class GeometryEngineError(FenceGeometryError):
    """The geometry backend failed while running a primitive."""


# ==========================================================
# GeoJSON loading (driver quirks: JSON text or decoded object)
# ==========================================================

def load_geojson(raw: Optional[RawGeometry]) -> GeoJSON:
    """
    Decode a GeoJSON geometry as returned by ST_AsGeoJSON.

    Drivers hand back either JSON text or an already decoded object.
    Anything without a `type` and a `coordinates` member is rejected.

    Raises:
        GeometryParseError: empty, undecodable or structurally incomplete input
    """
    if raw is None or raw == "" or raw == b"":
        raise GeometryParseError("empty geometry")

    if isinstance(raw, (str, bytes)):
        try:
            geom = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise GeometryParseError(f"invalid GeoJSON text: {e}") from e
    else:
        geom = raw

    if not isinstance(geom, Mapping):
        raise GeometryParseError(f"expected GeoJSON object, got {type(geom).__name__}")
    if not geom.get("type") or not geom.get("coordinates"):
        raise GeometryParseError("GeoJSON geometry requires 'type' and 'coordinates'")

    return dict(geom)


# ==========================================================
# Contract
# ==========================================================

class GeometryEngine(ABC):
    """Spatial primitives consumed by the fence consistency services."""

    @abstractmethod
    def parse(self, raw: RawGeometry) -> BaseGeometry:
        ...

    @abstractmethod
    def explode(self, geometry: BaseGeometry) -> List[BaseGeometry]:
        ...

    @abstractmethod
    def repair(self, geometry: BaseGeometry) -> Optional[BaseGeometry]:
        ...

    @abstractmethod
    def canonicalize(self, geometry: BaseGeometry, tolerance: float) -> Optional[BaseGeometry]:
        ...

    @abstractmethod
    def serialize_deterministic(self, geometry: BaseGeometry) -> bytes:
        ...

    @abstractmethod
    def hash(self, data: bytes) -> str:
        ...

    @abstractmethod
    def equals_exact(self, a: BaseGeometry, b: BaseGeometry) -> bool:
        ...

    @abstractmethod
    def is_valid(self, geometry: BaseGeometry) -> bool:
        ...

    @abstractmethod
    def validity_reason(self, geometry: BaseGeometry) -> Optional[str]:
        ...

    @abstractmethod
    def is_simple(self, geometry: BaseGeometry) -> bool:
        ...

    @abstractmethod
    def area(self, geometry: BaseGeometry) -> float:
        ...

    @abstractmethod
    def to_geojson(self, geometry: BaseGeometry) -> GeoJSON:
        ...


# ==========================================================
# Shapely binding
# ==========================================================

class ShapelyGeometryEngine(GeometryEngine):
    """
    GeometryEngine backed by Shapely 2 / GEOS.

    Coordinates are WGS84 longitude/latitude. Planar predicates (validity,
    simplicity, canonical form) work directly on degrees, as PostGIS does
    for geometry(…, 4326). Area is computed on the WGS84 ellipsoid.
    """

    def __init__(self, ellps: str = "WGS84"):
        self._geod = Geod(ellps=ellps)

    # ------------------------------------------------------
    # Parsing / output
    # ------------------------------------------------------

    def parse(self, raw: RawGeometry) -> BaseGeometry:
        if isinstance(raw, BaseGeometry):
            return raw

        geojson = load_geojson(raw)
        try:
            geom = shape(geojson)
        except (ValueError, TypeError, KeyError, IndexError, AttributeError, GEOSException) as e:
            raise GeometryParseError(f"invalid {geojson.get('type')} geometry: {e}") from e

        if geom.is_empty:
            raise GeometryParseError("empty geometry")
        return geom

    def to_geojson(self, geometry: BaseGeometry) -> GeoJSON:
        # to_geojson emits plain lists, unlike mapping() which emits tuples
        return json.loads(shapely.to_geojson(geometry))

    # ------------------------------------------------------
    # Structural primitives
    # ------------------------------------------------------

    def explode(self, geometry: BaseGeometry) -> List[BaseGeometry]:
        return [part for part in shapely.get_parts(geometry) if not part.is_empty]

    def repair(self, geometry: BaseGeometry) -> Optional[BaseGeometry]:
        try:
            if geometry.is_valid:
                repaired = geometry
            else:
                repaired = shapely.make_valid(geometry)
            repaired = shapely.remove_repeated_points(repaired)
        except GEOSException as e:
            raise GeometryEngineError(f"make_valid failed: {e}") from e

        return _polygonal_part(repaired)

    def canonicalize(self, geometry: BaseGeometry, tolerance: float) -> Optional[BaseGeometry]:
        try:
            snapped = shapely.set_precision(geometry, grid_size=tolerance)
            # -0.0 and 0.0 serialize to different WKB bytes
            snapped = shapely.transform(snapped, lambda coords: coords + 0.0)
            normalized = shapely.normalize(snapped)
        except GEOSException as e:
            raise GeometryEngineError(f"canonicalize failed: {e}") from e

        normalized = _polygonal_part(normalized)
        if normalized is None:
            return None

        # A one-member MultiPolygon is the same shape as its Polygon
        if isinstance(normalized, MultiPolygon) and len(normalized.geoms) == 1:
            normalized = normalized.geoms[0]
        return normalized

    def serialize_deterministic(self, geometry: BaseGeometry) -> bytes:
        return shapely.to_wkb(
            geometry,
            hex=False,
            output_dimension=2,
            byte_order=1,
            include_srid=False
        )

    def hash(self, data: bytes) -> str:
        return hashlib.md5(data).hexdigest()

    # ------------------------------------------------------
    # Predicates
    # ------------------------------------------------------

    def equals_exact(self, a: BaseGeometry, b: BaseGeometry) -> bool:
        # Same type, same vertices in the same order (ST_OrderingEquals)
        return bool(a.equals_exact(b, 0.0))

    def is_valid(self, geometry: BaseGeometry) -> bool:
        return bool(geometry.is_valid)

    def validity_reason(self, geometry: BaseGeometry) -> Optional[str]:
        try:
            return explain_validity(geometry)
        except GEOSException as e:
            raise GeometryEngineError(f"explain_validity failed: {e}") from e

    def is_simple(self, geometry: BaseGeometry) -> bool:
        return bool(geometry.is_simple)

    def area(self, geometry: BaseGeometry) -> float:
        area, _perimeter = self._geod.geometry_area_perimeter(geometry)
        return abs(area)


def _polygonal_part(geometry: BaseGeometry) -> Optional[BaseGeometry]:
    """
    Keep only the polygonal pieces of a geometry.

    make_valid may return a GeometryCollection with collapsed lines or
    points next to the polygons; fences only care about the areas.
    """
    if geometry is None or geometry.is_empty:
        return None
    if isinstance(geometry, (Polygon, MultiPolygon)):
        return geometry

    polygons: List[Polygon] = []
    for part in shapely.get_parts(geometry):
        if isinstance(part, Polygon) and not part.is_empty:
            polygons.append(part)
        elif isinstance(part, MultiPolygon):
            polygons.extend(p for p in part.geoms if not p.is_empty)
        elif part.geom_type == "GeometryCollection":
            nested = _polygonal_part(part)
            if nested is not None:
                polygons.extend(shapely.get_parts(nested))

    if not polygons:
        return None
    if len(polygons) == 1:
        return polygons[0]
    return MultiPolygon(polygons)


# --------------------------------------------------------
# INSTANCIA GLOBAL (Singleton)
# --------------------------------------------------------
geometry_engine = ShapelyGeometryEngine()
