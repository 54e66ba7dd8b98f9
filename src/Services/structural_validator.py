# src/Services/structural_validator.py

"""
Structural validation of fence geometry.

The engine's validity bit says *whether* a polygon is broken; this module
adds *why*, by checking the raw GeoJSON coordinates before any parser gets
a chance to close rings or drop repeated points:

- has_unclosed_ring       first point != last point (rings with >= 3 points)
- has_duplicate_vertices  two consecutive identical points

is_valid, is_simple and valid_reason are the engine's answers, verbatim.
A fence is invalid iff any of: not valid, not simple, unclosed ring,
duplicate vertices.

Read-only: nothing here repairs or writes geometry.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional

from src.Services.duplicate_grouper import (
    DuplicateIndex,
    GROUP_UNIQUE,
    group_duplicates,
)
from src.Services.fence_store import FenceRecord
from src.Services.geometry_engine import (
    GeoJSON,
    GeometryEngine,
    GeometryParseError,
    load_geojson,
)


@dataclass
class ValidationIssue:
    fence_id: int
    name: str
    is_valid: bool
    valid_reason: Optional[str]
    is_simple: bool
    has_unclosed_ring: bool
    has_duplicate_vertices: bool
    is_duplicate: bool = False
    duplicate_of_id: Optional[int] = None
    duplicate_group_size: int = 1
    group_state: str = GROUP_UNIQUE

    @property
    def is_invalid(self) -> bool:
        return (
            not self.is_valid
            or not self.is_simple
            or self.has_unclosed_ring
            or self.has_duplicate_vertices
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fenceId": self.fence_id,
            "name": self.name,
            "isValid": self.is_valid,
            "validReason": self.valid_reason,
            "isSimple": self.is_simple,
            "hasUnclosedRing": self.has_unclosed_ring,
            "hasDuplicateVertices": self.has_duplicate_vertices,
            "isDuplicate": self.is_duplicate,
            "duplicateOfId": self.duplicate_of_id,
            "duplicateGroupSize": self.duplicate_group_size,
            "groupState": self.group_state,
        }


# ==========================================================
# Ring predicates (raw coordinates, exact equality)
# ==========================================================

def _rings(geometry: GeoJSON) -> Iterator[List[Any]]:
    coords = geometry.get("coordinates")
    if not isinstance(coords, list):
        return

    if geometry.get("type") == "Polygon":
        polygons = [coords]
    elif geometry.get("type") == "MultiPolygon":
        polygons = coords
    else:
        return

    for polygon in polygons:
        if not isinstance(polygon, list):
            continue
        for ring in polygon:
            if isinstance(ring, list):
                yield ring


def _same_point(a: Any, b: Any) -> bool:
    if not isinstance(a, (list, tuple)) or not isinstance(b, (list, tuple)):
        return False
    if len(a) < 2 or len(b) < 2:
        return False
    return a[0] == b[0] and a[1] == b[1]


def has_unclosed_ring(geometry: GeoJSON) -> bool:
    for ring in _rings(geometry):
        # Shorter rings are invalid anyway and are not flagged here
        if len(ring) < 3:
            continue
        if not _same_point(ring[0], ring[-1]):
            return True
    return False


def has_duplicate_vertices(geometry: GeoJSON) -> bool:
    for ring in _rings(geometry):
        for a, b in zip(ring, ring[1:]):
            if _same_point(a, b):
                return True
    return False


# ==========================================================
# Per-fence inspection
# ==========================================================

def inspect_fence(record: FenceRecord, engine: GeometryEngine) -> ValidationIssue:
    """
    Classify one fence. The record must carry a geometry.

    Geometry the engine cannot parse is reported as neither valid nor
    simple, with the parse error as the reason.
    """
    try:
        raw = load_geojson(record.geometry)
    except GeometryParseError as e:
        return ValidationIssue(
            fence_id=record.id,
            name=record.label,
            is_valid=False,
            valid_reason=str(e),
            is_simple=False,
            has_unclosed_ring=False,
            has_duplicate_vertices=False
        )

    unclosed = has_unclosed_ring(raw)
    duplicate_vertices = has_duplicate_vertices(raw)

    try:
        geom = engine.parse(raw)
    except GeometryParseError as e:
        return ValidationIssue(
            fence_id=record.id,
            name=record.label,
            is_valid=False,
            valid_reason=str(e),
            is_simple=False,
            has_unclosed_ring=unclosed,
            has_duplicate_vertices=duplicate_vertices
        )

    return ValidationIssue(
        fence_id=record.id,
        name=record.label,
        is_valid=engine.is_valid(geom),
        valid_reason=engine.validity_reason(geom),
        is_simple=engine.is_simple(geom),
        has_unclosed_ring=unclosed,
        has_duplicate_vertices=duplicate_vertices
    )


def validate_structure(
    records: Iterable[FenceRecord],
    engine: GeometryEngine
) -> List[ValidationIssue]:
    """Structural issues for every fence with geometry, ascending fence id."""
    issues = [
        inspect_fence(record, engine)
        for record in records
        if record.geometry is not None
    ]
    issues.sort(key=lambda issue: issue.fence_id)
    return issues


def validate_fences(
    records: Iterable[FenceRecord],
    engine: GeometryEngine,
    tolerance: float,
    duplicates: Optional[DuplicateIndex] = None
) -> List[ValidationIssue]:
    """
    Structural validation with duplicate-group membership folded in.

    `duplicates` may be passed when the caller already grouped the same
    snapshot.
    """
    records = list(records)
    issues = validate_structure(records, engine)

    if duplicates is None:
        duplicates = group_duplicates(records, engine, tolerance)

    for issue in issues:
        membership = duplicates.membership(issue.fence_id)
        issue.is_duplicate = membership.is_duplicate
        issue.duplicate_of_id = membership.duplicate_of_id
        issue.duplicate_group_size = membership.group_size
        issue.group_state = membership.group_state

    invalid = sum(1 for issue in issues if issue.is_invalid)
    print(f"[VALIDATE] {len(issues)} fence(s) checked: "
          f"{len(issues) - invalid} valid, {invalid} invalid")

    return issues


def summarize(issues: Iterable[ValidationIssue]) -> Dict[str, int]:
    issues = list(issues)
    invalid = sum(1 for issue in issues if issue.is_invalid)
    return {"validCount": len(issues) - invalid, "invalidCount": invalid}
