# src/Services/fence_store.py

"""
Snapshot records and the storage contract used by the consistency services.

Services work on a snapshot of fence rows taken at the start of an
operation and write back only through FenceStore, so the same code runs
against PostGIS (Repositories.fence.SqlFenceStore) or an in-memory store.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence


# Cities matched by name; "other" is every fence naming none of them
KNOWN_REGIONS = ("lahore", "karachi", "islamabad")
REGION_OTHER = "other"


class FenceStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    UNKNOWN = "unknown"

    @classmethod
    def from_db(cls, value: Optional[str]) -> "FenceStatus":
        """NULL, missing column or unexpected text all read as unknown."""
        if value is None:
            return cls.UNKNOWN
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.UNKNOWN


def display_name(fence_id: int, name: Optional[str]) -> str:
    """Fence name, or the generated Zone_<id> when absent or blank."""
    if name is None or not str(name).strip():
        return f"Zone_{fence_id}"
    return str(name)


@dataclass
class FenceRecord:
    """One fence row as read from storage. `geometry` is GeoJSON or None."""
    id: int
    name: Optional[str] = None
    status: FenceStatus = FenceStatus.UNKNOWN
    geometry: Optional[Any] = None
    extras: Dict[str, Any] = field(default_factory=dict)

    @property
    def label(self) -> str:
        return display_name(self.id, self.name)


@dataclass
class FenceFilters:
    """Read filters for the parts query (search, region, status, bbox, area range)."""
    search: Optional[str] = None
    region: Optional[str] = None
    status: Optional[FenceStatus] = None
    bbox: Optional[Sequence[float]] = None
    min_area: Optional[float] = None
    max_area: Optional[float] = None

    @classmethod
    def from_params(
        cls,
        search: Optional[str] = None,
        region: Optional[str] = None,
        status: Optional[str] = None,
        bbox: Optional[str] = None,
        min_area: Optional[float] = None,
        max_area: Optional[float] = None
    ) -> "FenceFilters":
        """
        Build filters from loosely typed query parameters.

        Unknown regions or status values, malformed bboxes and negative
        areas are ignored rather than rejected, matching the list endpoint.
        """
        parsed_status = None
        if status is not None and str(status).strip():
            s = str(status).strip().lower()
            if s in ("true", "active"):
                parsed_status = FenceStatus.ACTIVE
            elif s in ("false", "inactive"):
                parsed_status = FenceStatus.INACTIVE

        return cls(
            search=search.strip() if search and search.strip() else None,
            region=parse_region(region),
            status=parsed_status,
            bbox=parse_bbox(bbox),
            min_area=min_area if min_area is not None and min_area >= 0 else None,
            max_area=max_area if max_area is not None and max_area >= 0 else None
        )


def parse_region(value: Optional[str]) -> Optional[str]:
    """Lower-cased region name when it is one of the known regions or "other"."""
    if not value:
        return None
    region = str(value).strip().lower()
    if region in KNOWN_REGIONS or region == REGION_OTHER:
        return region
    return None


def matches_region(name: Optional[str], region: str) -> bool:
    """
    Name-based region test, same rule as the SQL filter.

    A fence without a name matches no region, not even "other".
    """
    if name is None:
        return False
    lowered = name.lower()
    if region == REGION_OTHER:
        return not any(city in lowered for city in KNOWN_REGIONS)
    return region in lowered


def parse_bbox(value: Optional[str]) -> Optional[List[float]]:
    """
    Parse 'minLng,minLat,maxLng,maxLat' (WGS84).

    Returns None for missing, non-numeric, wrong-arity or inverted boxes.
    """
    if not value:
        return None
    try:
        parts = [float(p.strip()) for p in value.split(",")]
    except ValueError:
        return None
    if len(parts) != 4 or any(p != p or p in (float("inf"), float("-inf")) for p in parts):
        return None
    min_lng, min_lat, max_lng, max_lat = parts
    if min_lng >= max_lng or min_lat >= max_lat:
        return None
    return parts


class FenceStoreError(Exception):
    """The fence table cannot support the requested operation."""


class FenceStore(ABC):
    """
    Storage contract for fence snapshots and bulk mutations.

    Mutations are set-based: one call touches every qualifying row and
    returns the ids that were actually changed. Ids that no longer exist
    are skipped, never raised.
    """

    @abstractmethod
    def load_fences(self, ids: Optional[Iterable[int]] = None) -> List[FenceRecord]:
        """Fences with non-null geometry, ascending id. `ids` narrows the read."""

    @abstractmethod
    def load_parts(self, filters: Optional[FenceFilters] = None) -> List[Any]:
        """Exploded single-part rows ordered by (fence id, part ordinal)."""

    @abstractmethod
    def count_parts(self, filters: Optional[FenceFilters] = None) -> int:
        """Number of exploded part rows matching the filters."""

    @abstractmethod
    def get_fence(self, fence_id: int) -> Optional[Dict[str, Any]]:
        """`{"id", "name", "geometry"}` for one fence, or None."""

    @abstractmethod
    def update_status(self, ids: Iterable[int], status: FenceStatus) -> List[int]:
        """Set status on ids whose status differs; return the changed ids."""

    @abstractmethod
    def update_geometries(self, geometries: Mapping[int, Any]) -> List[int]:
        """Replace geometry (GeoJSON) per id; return the ids that existed."""
