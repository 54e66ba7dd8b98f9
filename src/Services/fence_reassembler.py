# src/Services/fence_reassembler.py

"""
Reassembly of exploded fence geometry into one GeoJSON Feature per fence.

The parts query explodes every stored MultiPolygon into single Polygon rows
(ST_Dump), so a fence can arrive as several rows. Read consumers expect one
Feature per fence:

- 0 usable parts  -> fence dropped (never a Feature with empty geometry)
- 1 part          -> Polygon Feature, part as-is
- >1 parts        -> MultiPolygon Feature, MultiPolygon parts flattened

A part that fails to parse is dropped from its fence only. Callers must not
treat a missing id in a bulk read as an error.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from src.Services.fence_store import FenceRecord, display_name
from src.Services.geometry_engine import (
    GeoJSON,
    GeometryEngine,
    GeometryParseError,
    POLYGONAL_TYPES,
    load_geojson,
)


@dataclass
class PartRow:
    """One exploded part. `extras` holds optional columns by name (address, city)."""
    fence_id: int
    name: Optional[str]
    geometry: Any
    extras: Dict[str, Any] = field(default_factory=dict)
    ordinal: int = 0


@dataclass
class _FenceGroup:
    name: str
    extras: Dict[str, Any]
    parts: List[GeoJSON] = field(default_factory=list)


def _usable_part(raw: Any) -> Optional[GeoJSON]:
    try:
        geom = load_geojson(raw)
    except GeometryParseError:
        return None
    if geom["type"] not in POLYGONAL_TYPES:
        return None
    return geom


def _merge_parts(parts: List[GeoJSON]) -> GeoJSON:
    if len(parts) == 1:
        return parts[0]

    members = []
    for part in parts:
        if part["type"] == "Polygon":
            members.append(part["coordinates"])
        else:
            members.extend(part["coordinates"])
    return {"type": "MultiPolygon", "coordinates": members}


def reassemble(rows: Iterable[PartRow]) -> List[GeoJSON]:
    """
    Group part rows by fence id and build one Feature per fence.

    Features come out in first-seen fence order; parts keep emission order.
    Name and extras are taken from the first row of each fence.
    """
    groups: Dict[int, _FenceGroup] = {}
    dropped_rows = 0

    for row in rows:
        geometry = _usable_part(row.geometry)

        group = groups.get(row.fence_id)
        if group is None:
            group = _FenceGroup(
                name=display_name(row.fence_id, row.name),
                extras={k: v for k, v in row.extras.items() if k != "name"}
            )
            groups[row.fence_id] = group

        if geometry is None:
            dropped_rows += 1
            continue
        group.parts.append(geometry)

    features: List[GeoJSON] = []
    for fence_id, group in groups.items():
        if not group.parts:
            continue
        features.append({
            "type": "Feature",
            "id": fence_id,
            "properties": {"name": group.name, **group.extras},
            "geometry": _merge_parts(group.parts)
        })

    if dropped_rows:
        print(f"[REASSEMBLE] Dropped {dropped_rows} unparseable part(s); "
              f"{len(groups) - len(features)} fence(s) left without geometry")

    return features


def explode_records(records: Iterable[FenceRecord], engine: GeometryEngine) -> List[PartRow]:
    """
    In-process equivalent of the ST_Dump parts query.

    Records whose geometry cannot be parsed yield one row carrying the raw
    value, so reassemble() applies its usual drop policy to them.
    """
    rows: List[PartRow] = []
    for record in sorted(records, key=lambda r: r.id):
        if record.geometry is None:
            continue
        try:
            parts = engine.explode(engine.parse(record.geometry))
        except GeometryParseError:
            rows.append(PartRow(record.id, record.name, record.geometry, dict(record.extras), 0))
            continue

        for ordinal, part in enumerate(parts, start=1):
            rows.append(PartRow(
                fence_id=record.id,
                name=record.name,
                geometry=engine.to_geojson(part),
                extras=dict(record.extras),
                ordinal=ordinal
            ))
    return rows


def to_feature_collection(features: List[GeoJSON]) -> GeoJSON:
    return {"type": "FeatureCollection", "features": features}
