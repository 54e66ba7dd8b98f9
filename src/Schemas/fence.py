# src/Schemas/fence.py

from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, Dict, Any, List


class FenceFeature(BaseModel):
    """GeoJSON Feature: one per fence, Polygon or MultiPolygon."""
    type: str = "Feature"
    id: int
    properties: Dict[str, Any]
    geometry: Dict[str, Any]


class FenceFeatureCollection(BaseModel):
    type: str = "FeatureCollection"
    features: List[FenceFeature]


class FenceCount(BaseModel):
    total: int


class FenceGet(BaseModel):
    """Schema para respuesta de fence individual."""
    id: int
    name: str
    geometry: Optional[Dict[str, Any]] = None


class ValidationIssue(BaseModel):
    """Per-fence structural and duplicate report (camelCase on the wire)."""
    model_config = ConfigDict(populate_by_name=True)

    fence_id: int = Field(..., alias="fenceId")
    name: str
    is_valid: bool = Field(..., alias="isValid")
    valid_reason: Optional[str] = Field(None, alias="validReason")
    is_simple: bool = Field(..., alias="isSimple")
    has_unclosed_ring: bool = Field(..., alias="hasUnclosedRing")
    has_duplicate_vertices: bool = Field(..., alias="hasDuplicateVertices")
    is_duplicate: bool = Field(False, alias="isDuplicate")
    duplicate_of_id: Optional[int] = Field(None, alias="duplicateOfId")
    duplicate_group_size: int = Field(1, alias="duplicateGroupSize")
    group_state: str = Field("unique", alias="groupState")


class ValidateResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    valid_count: int = Field(..., alias="validCount")
    invalid_count: int = Field(..., alias="invalidCount")
    issues: List[ValidationIssue]


class FixRequest(BaseModel):
    """Ids to repair. Non-positive or non-integer entries are ignored."""
    ids: List[Any] = Field(default_factory=list)


class FixResponse(BaseModel):
    fixed: int
    fixed_ids: List[int] = Field(default_factory=list, alias="fixedIds", serialization_alias="fixedIds")
    skipped_ids: List[int] = Field(default_factory=list, alias="skippedIds", serialization_alias="skippedIds")

    model_config = ConfigDict(populate_by_name=True)


class RemediationResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    updated_count: int = Field(..., alias="updatedCount")
    updated_ids: List[int] = Field(default_factory=list, alias="updatedIds")
    skipped_ids: List[int] = Field(default_factory=list, alias="skippedIds")
    message: str
