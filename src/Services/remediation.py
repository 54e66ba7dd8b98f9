# src/Services/remediation.py

"""
Remediation of fence records: auto-repair and soft deactivation.

Three externally triggered transitions over a fresh snapshot:

- repair(ids)               engine repair written back to `geom` for the given ids
- deactivate_invalid()      status -> 'inactive' for every structurally invalid fence
- deactivate_duplicates()   status -> 'inactive' for every non-canonical duplicate

Each transition issues a single set-based mutation through the FenceStore.
Rows that vanished between snapshot and update, rows already inactive,
geometries the engine cannot repair and geometries repair leaves unchanged
are skipped and counted out, never raised. Calling a deactivation twice in
a row reports 0 affected rows the second time. GeometryEngineError and
storage errors propagate; nothing is retried here.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List

from src.Services.duplicate_grouper import group_duplicates
from src.Services.fence_store import FenceStatus, FenceStore
from src.Services.geometry_engine import GeometryEngine, GeometryParseError, load_geojson
from src.Services.structural_validator import (
    has_duplicate_vertices,
    has_unclosed_ring,
    validate_structure,
)


@dataclass
class RemediationResult:
    affected_ids: List[int] = field(default_factory=list)
    skipped_ids: List[int] = field(default_factory=list)
    message: str = ""

    @property
    def affected_count(self) -> int:
        return len(self.affected_ids)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "updatedCount": self.affected_count,
            "updatedIds": self.affected_ids,
            "skippedIds": self.skipped_ids,
            "message": self.message,
        }


def normalize_ids(ids: Iterable[Any]) -> List[int]:
    """Positive integer ids, de-duplicated and sorted. Anything else is dropped."""
    clean = set()
    for value in ids or []:
        if isinstance(value, bool):
            continue
        if isinstance(value, float):
            if not value.is_integer():
                continue
            value = int(value)
        if isinstance(value, int) and value > 0:
            clean.add(value)
    return sorted(clean)


class RemediationController:
    """
    Drives repair and deactivation against a FenceStore.

    The controller keeps no state between calls; every operation reads its
    own snapshot.
    """

    def __init__(self, store: FenceStore, engine: GeometryEngine, tolerance: float):
        self.store = store
        self.engine = engine
        self.tolerance = tolerance

    def repair(self, ids: Iterable[Any]) -> RemediationResult:
        targeted = normalize_ids(ids)
        if not targeted:
            return RemediationResult(message="No fence ids to repair")

        repaired: Dict[int, Any] = {}
        unchanged: List[int] = []
        for record in self.store.load_fences(targeted):
            if record.geometry is None:
                continue
            try:
                raw = load_geojson(record.geometry)
                original = self.engine.parse(raw)
            except GeometryParseError as e:
                print(f"[REMEDIATION] Fence {record.id} not repairable: {e}")
                continue

            geom = self.engine.repair(original)
            if geom is None:
                print(f"[REMEDIATION] Fence {record.id} not repairable: empty result")
                continue

            # Parsing closes rings silently, so raw defects count as a change
            if (
                not has_unclosed_ring(raw)
                and not has_duplicate_vertices(raw)
                and self.engine.equals_exact(geom, original)
            ):
                unchanged.append(record.id)
                continue
            repaired[record.id] = self.engine.to_geojson(geom)

        affected = sorted(self.store.update_geometries(repaired)) if repaired else []
        skipped = sorted(set(targeted) - set(affected))

        print(f"[REMEDIATION] Repaired {len(affected)}/{len(targeted)} fence(s)"
              + (f", {len(unchanged)} already valid" if unchanged else "")
              + (f", skipped {skipped}" if skipped else ""))

        return RemediationResult(
            affected_ids=affected,
            skipped_ids=skipped,
            message=f"{len(affected)} fences repaired"
        )

    def deactivate_invalid(self) -> RemediationResult:
        issues = validate_structure(self.store.load_fences(), self.engine)
        targeted = [issue.fence_id for issue in issues if issue.is_invalid]
        return self._deactivate(targeted, "invalid")

    def deactivate_duplicates(self) -> RemediationResult:
        index = group_duplicates(self.store.load_fences(), self.engine, self.tolerance)
        return self._deactivate(index.non_canonical_ids(), "duplicate")

    def _deactivate(self, targeted: List[int], reason: str) -> RemediationResult:
        affected: List[int] = []
        if targeted:
            affected = sorted(self.store.update_status(targeted, FenceStatus.INACTIVE))

        # Targeted ids not changed were already inactive or no longer exist
        skipped = sorted(set(targeted) - set(affected))

        print(f"[REMEDIATION] {len(affected)} {reason} fence(s) marked inactive "
              f"({len(targeted)} matched)")

        return RemediationResult(
            affected_ids=affected,
            skipped_ids=skipped,
            message=f"{len(affected)} {reason} fences marked as inactive"
        )
