# src/Services/fence_consistency.py

"""
Fence consistency service: the entry point used by the HTTP layer.

Wires a FenceStore and a GeometryEngine into the read path (reassembly),
the validation pass (structure + duplicate groups) and the remediation
transitions.

Usage:
    service = FenceConsistencyService(SqlFenceStore(db), geometry_engine)
    features = service.reassemble(service.store.load_parts())
    issues = service.validate(service.store.load_fences())
    result = service.deactivate_duplicates()
"""

from typing import Any, Dict, Iterable, List, Optional

from src.Core.config import CANONICAL_TOLERANCE_DEG
from src.Services.fence_reassembler import PartRow, reassemble
from src.Services.fence_store import FenceFilters, FenceRecord, FenceStore
from src.Services.geometry_engine import GeoJSON, GeometryEngine
from src.Services.remediation import RemediationController, RemediationResult
from src.Services.structural_validator import ValidationIssue, summarize, validate_fences


class FenceConsistencyService:

    def __init__(
        self,
        store: FenceStore,
        engine: GeometryEngine,
        tolerance: float = CANONICAL_TOLERANCE_DEG
    ):
        self.store = store
        self.engine = engine
        self.tolerance = tolerance
        self.remediation = RemediationController(store, engine, tolerance)

    # ------------------------------------------------------
    # Read path
    # ------------------------------------------------------

    def reassemble(self, rows: Iterable[PartRow]) -> List[GeoJSON]:
        return reassemble(rows)

    def list_features(self, filters: Optional[FenceFilters] = None) -> List[GeoJSON]:
        return reassemble(self.store.load_parts(filters))

    # ------------------------------------------------------
    # Validation
    # ------------------------------------------------------

    def validate(self, fences: Optional[Iterable[FenceRecord]] = None) -> List[ValidationIssue]:
        if fences is None:
            fences = self.store.load_fences()
        return validate_fences(fences, self.engine, self.tolerance)

    def validation_report(self) -> Dict[str, Any]:
        issues = self.validate()
        report: Dict[str, Any] = summarize(issues)
        report["issues"] = [issue.to_dict() for issue in issues]
        return report

    # ------------------------------------------------------
    # Remediation
    # ------------------------------------------------------

    def repair(self, ids: Iterable[Any]) -> RemediationResult:
        return self.remediation.repair(ids)

    def deactivate_invalid(self) -> RemediationResult:
        return self.remediation.deactivate_invalid()

    def deactivate_duplicates(self) -> RemediationResult:
        return self.remediation.deactivate_duplicates()
