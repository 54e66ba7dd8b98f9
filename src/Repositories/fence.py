# src/Repositories/fence.py
"""
Fence Repository - PostGIS access for the fence consistency services.

Responsibilities:
- Snapshot reads of fence geometry (GeoJSON via ST_AsGeoJSON)
- Exploded part reads (ST_Dump) with list filters
- Set-based status and geometry updates (one statement per call)

The fence table belongs to the CRUD application and may or may not carry
the optional `status`, `address` and `city` columns; they are detected once
per engine and read only when present.

Usage:
    from src.Repositories.fence import SqlFenceStore

    store = SqlFenceStore(db)
    records = store.load_fences()
    changed = store.update_status([4, 9], FenceStatus.INACTIVE)
"""

import json
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy import func, inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from geoalchemy2.shape import to_shape

from src.Core.config import settings
from src.Models.fence import Fence
from src.Services.fence_reassembler import PartRow
from src.Services.fence_store import (
    FenceFilters,
    FenceRecord,
    FenceStatus,
    FenceStore,
    FenceStoreError,
    KNOWN_REGIONS,
    REGION_OTHER,
)
from src.Services.geometry_engine import geometry_engine

OPTIONAL_COLUMNS = ("address", "city")

# ST_AsGeoJSON rounds to 9 decimals by default; snapshots are written back by repair
SNAPSHOT_MAX_DECIMALS = 15

_column_cache: Dict[Tuple[str, str], frozenset] = {}


# ==========================================================
# SCHEMA DETECTION
# ==========================================================

def _table() -> str:
    return settings.FENCES_TABLE


def get_fence_columns(DB: Session) -> frozenset:
    """
    Column names of the fence table, cached per database URL.
    """
    bind = DB.get_bind()
    cache_key = (str(bind.url), _table())
    if cache_key not in _column_cache:
        columns = inspect(bind).get_columns(_table())
        _column_cache[cache_key] = frozenset(c["name"] for c in columns)
    return _column_cache[cache_key]


def _extra_columns(DB: Session) -> List[str]:
    present = get_fence_columns(DB)
    return [c for c in OPTIONAL_COLUMNS if c in present]


def _has_status(DB: Session) -> bool:
    return "status" in get_fence_columns(DB)


# ==========================================================
# READ OPERATIONS - SNAPSHOT
# ==========================================================

def get_fences(DB: Session, ids: Optional[Iterable[int]] = None) -> List[FenceRecord]:
    """
    Fences with non-null geometry, ascending id.

    Args:
        DB: SQLAlchemy session
        ids: Optional subset of fence ids

    Returns:
        List[FenceRecord]: GeoJSON geometry, status and optional columns
    """
    extras = _extra_columns(DB)
    select_cols = [
        "f.id",
        "f.name",
        f"ST_AsGeoJSON(f.geom, {SNAPSHOT_MAX_DECIMALS}) AS geometry"
    ]
    select_cols.append("f.status" if _has_status(DB) else "NULL AS status")
    select_cols.extend(f"f.{c}" for c in extras)

    where = ["f.geom IS NOT NULL"]
    params: Dict[str, Any] = {}
    if ids is not None:
        params["ids"] = list(ids)
        if not params["ids"]:
            return []
        where.append("f.id = ANY(:ids)")

    query = text(f"""
        SELECT {", ".join(select_cols)}
        FROM {_table()} f
        WHERE {" AND ".join(where)}
        ORDER BY f.id
    """)

    rows = DB.execute(query, params).mappings().all()
    return [
        FenceRecord(
            id=row["id"],
            name=row["name"],
            status=FenceStatus.from_db(row["status"]),
            geometry=row["geometry"],
            extras={c: row[c] for c in extras}
        )
        for row in rows
    ]


def get_fence_by_id(DB: Session, fence_id: int) -> Optional[Dict[str, Any]]:
    """
    Single fence with GeoJSON geometry, or None if it does not exist.

    The name falls back to Zone_<id>.
    """
    row = (
        DB.query(Fence.id, Fence.name, Fence.geom)
        .filter(Fence.id == fence_id)
        .first()
    )
    if row is None:
        return None

    geometry = None
    if row.geom is not None:
        geometry = geometry_engine.to_geojson(to_shape(row.geom))

    return {
        "id": row.id,
        "name": FenceRecord(id=row.id, name=row.name).label,
        "geometry": geometry
    }


def count_fences(DB: Session) -> int:
    """Cuenta fences con geometría."""
    return DB.query(func.count(Fence.id)).filter(Fence.geom.isnot(None)).scalar() or 0


# ==========================================================
# READ OPERATIONS - EXPLODED PARTS
# ==========================================================

def _filter_clauses(DB: Session, filters: Optional[FenceFilters]) -> Tuple[str, Dict[str, Any]]:
    if filters is None:
        return "", {}

    clauses: List[str] = []
    params: Dict[str, Any] = {}

    if filters.search:
        clauses.append("f.name ILIKE :search")
        params["search"] = f"%{filters.search}%"

    if filters.region == REGION_OTHER:
        clauses.append("(" + " AND ".join(
            f"f.name NOT ILIKE :region_{city}" for city in KNOWN_REGIONS
        ) + ")")
        params.update({f"region_{city}": f"%{city}%" for city in KNOWN_REGIONS})
    elif filters.region:
        clauses.append("f.name ILIKE :region")
        params["region"] = f"%{filters.region}%"

    if filters.status is not None and _has_status(DB):
        clauses.append("COALESCE(f.status, '') = :status")
        params["status"] = filters.status.value

    if filters.bbox:
        clauses.append(
            "ST_Intersects(d.geom, ST_MakeEnvelope(:min_lng, :min_lat, :max_lng, :max_lat, 4326))"
        )
        params.update(zip(("min_lng", "min_lat", "max_lng", "max_lat"), filters.bbox))

    if filters.min_area is not None:
        clauses.append("ST_Area(d.geom::geography) >= :min_area")
        params["min_area"] = filters.min_area

    if filters.max_area is not None:
        clauses.append("ST_Area(d.geom::geography) <= :max_area")
        params["max_area"] = filters.max_area

    clause_str = "".join(f" AND {c}" for c in clauses)
    return clause_str, params


def get_fence_parts(DB: Session, filters: Optional[FenceFilters] = None) -> List[PartRow]:
    """
    Exploded single-part rows ordered by (fence id, part path).

    Each MultiPolygon fence yields one row per member polygon.
    """
    extras = _extra_columns(DB)
    clauses, params = _filter_clauses(DB, filters)
    extra_select = "".join(f", f.{c}" for c in extras)

    query = text(f"""
        SELECT f.id, f.name{extra_select},
               ST_AsGeoJSON(d.geom) AS geometry,
               COALESCE(d.path[1], 0) AS ordinal
        FROM {_table()} f,
        LATERAL ST_Dump(f.geom) AS d
        WHERE f.geom IS NOT NULL
        {clauses}
        ORDER BY f.id, d.path
    """)

    rows = DB.execute(query, params).mappings().all()
    return [
        PartRow(
            fence_id=row["id"],
            name=row["name"],
            geometry=row["geometry"],
            extras={c: row[c] for c in extras},
            ordinal=row["ordinal"]
        )
        for row in rows
    ]


def count_fence_parts(DB: Session, filters: Optional[FenceFilters] = None) -> int:
    clauses, params = _filter_clauses(DB, filters)
    query = text(f"""
        SELECT COUNT(*) AS count
        FROM {_table()} f,
        LATERAL ST_Dump(f.geom) AS d
        WHERE f.geom IS NOT NULL
        {clauses}
    """)
    return int(DB.execute(query, params).scalar() or 0)


# ==========================================================
# UPDATE OPERATIONS (set-based)
# ==========================================================

def set_fence_status(DB: Session, ids: Iterable[int], status: FenceStatus) -> List[int]:
    """
    Set status for every listed fence whose status differs.

    Returns:
        List[int]: ids that were changed (missing or unchanged ids excluded)

    Raises:
        FenceStoreError: the fence table has no status column
    """
    ids = list(ids)
    if not ids:
        return []
    if not _has_status(DB):
        print(f"[REPO] Table '{_table()}' has no status column; cannot set '{status.value}'")
        raise FenceStoreError(
            f"Table '{_table()}' has no status column; fences cannot be marked {status.value}"
        )

    query = text(f"""
        UPDATE {_table()}
        SET status = :status
        WHERE id = ANY(:ids)
          AND status IS DISTINCT FROM :status
        RETURNING id
    """)

    try:
        changed = [row[0] for row in DB.execute(query, {"ids": ids, "status": status.value})]
        DB.commit()
    except SQLAlchemyError as e:
        DB.rollback()
        print(f"[REPO] Status update failed for {len(ids)} fence(s): {e}")
        raise

    print(f"[REPO] Status '{status.value}' set on {len(changed)}/{len(ids)} fence(s)")
    return changed


def replace_fence_geometries(DB: Session, geometries: Mapping[int, Any]) -> List[int]:
    """
    Replace geometry for each id in one UPDATE ... FROM unnest(...) statement.

    Args:
        geometries: fence id -> GeoJSON geometry (mapping or JSON text)

    Returns:
        List[int]: ids that existed and were rewritten
    """
    if not geometries:
        return []

    ids = list(geometries.keys())
    payloads = [
        g if isinstance(g, str) else json.dumps(g)
        for g in geometries.values()
    ]

    query = text(f"""
        UPDATE {_table()} AS f
        SET geom = ST_SetSRID(ST_GeomFromGeoJSON(v.geometry), 4326)
        FROM (
            SELECT unnest(CAST(:ids AS integer[])) AS id,
                   unnest(CAST(:geoms AS text[])) AS geometry
        ) AS v
        WHERE f.id = v.id
        RETURNING f.id
    """)

    try:
        changed = [row[0] for row in DB.execute(query, {"ids": ids, "geoms": payloads})]
        DB.commit()
    except SQLAlchemyError as e:
        DB.rollback()
        print(f"[REPO] Geometry update failed for {len(ids)} fence(s): {e}")
        raise

    print(f"[REPO] Geometry rewritten on {len(changed)}/{len(ids)} fence(s)")
    return changed


# ==========================================================
# STORE ADAPTER
# ==========================================================

class SqlFenceStore(FenceStore):
    """FenceStore over a SQLAlchemy session bound to PostGIS."""

    def __init__(self, DB: Session):
        self.DB = DB

    def load_fences(self, ids: Optional[Iterable[int]] = None) -> List[FenceRecord]:
        return get_fences(self.DB, ids)

    def load_parts(self, filters: Optional[FenceFilters] = None) -> List[PartRow]:
        return get_fence_parts(self.DB, filters)

    def count_parts(self, filters: Optional[FenceFilters] = None) -> int:
        return count_fence_parts(self.DB, filters)

    def get_fence(self, fence_id: int) -> Optional[Dict[str, Any]]:
        return get_fence_by_id(self.DB, fence_id)

    def update_status(self, ids: Iterable[int], status: FenceStatus) -> List[int]:
        return set_fence_status(self.DB, ids, status)

    def update_geometries(self, geometries: Mapping[int, Any]) -> List[int]:
        return replace_fence_geometries(self.DB, geometries)
