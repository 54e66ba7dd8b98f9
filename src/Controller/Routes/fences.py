# src/Controller/Routes/fences.py

"""
Fence Consistency REST API

Thin HTTP surface over the fence consistency services. Parameter parsing and
status mapping live here; grouping, validation and remediation rules live in
src/Services.

Endpoints:
- GET    /fences/                          FeatureCollection (one Feature per fence)
- GET    /fences/validate                  Structural + duplicate report
- POST   /fences/validate/fix              Repair geometry for given ids
- POST   /fences/validate/mark-inactive    Deactivate every invalid fence
- POST   /fences/validate/dedupe           Deactivate non-canonical duplicates
- GET    /fences/{fence_id}                Single fence with geometry

GeoJSON Format:
- Coordinates are in [longitude, latitude] order (EPSG:4326)

Usage:
    # In main.py
    from src.Controller.Routes import fences
    app.include_router(fences.router, prefix="/fences", tags=["fences"])
"""

# Standard library
from typing import Optional, Union

# FastAPI
from fastapi import APIRouter, Depends, HTTPException, Query

# Internal dependencies
from src.Controller.deps import get_fence_service
from src.Core.config import settings
from src.Schemas import fence as fence_schema
from src.Services.fence_consistency import FenceConsistencyService
from src.Services.fence_reassembler import to_feature_collection
from src.Services.fence_store import FenceFilters, FenceStoreError
from src.Services.remediation import normalize_ids

router = APIRouter()


# ==========================================================
# 📌 List Fences (FeatureCollection)
# ==========================================================

@router.get(
    "/",
    response_model=Union[fence_schema.FenceFeatureCollection, fence_schema.FenceCount]
)
def list_fences(
    search: Optional[str] = Query(None, description="Case-insensitive name filter"),
    region: Optional[str] = Query(None, description="lahore | karachi | islamabad | other"),
    status: Optional[str] = Query(None, description="active | inactive (true | false)"),
    bbox: Optional[str] = Query(None, description="minLng,minLat,maxLng,maxLat"),
    minArea: Optional[float] = Query(None, description="Minimum part area (m²)"),
    maxArea: Optional[float] = Query(None, description="Maximum part area (m²)"),
    countOnly: bool = Query(False, description="Return only the part count"),
    service: FenceConsistencyService = Depends(get_fence_service)
):
    """
    Get fences as a GeoJSON FeatureCollection.

    Stored MultiPolygons are exploded by the database and reassembled here,
    so each fence appears exactly once. Fences whose parts all fail to
    parse are left out of the collection.

    Example Requests:
        GET /fences/?status=active
        GET /fences/?region=other
        GET /fences/?bbox=74.2,31.4,74.4,31.6&minArea=1000
        GET /fences/?countOnly=true
    """
    filters = FenceFilters.from_params(
        search=search,
        region=region,
        status=status,
        bbox=bbox,
        min_area=minArea,
        max_area=maxArea
    )

    try:
        if countOnly:
            return {"total": service.store.count_parts(filters)}
        features = service.list_features(filters)
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to fetch fences: {str(e)}"
        )

    return to_feature_collection(features)


# ==========================================================
# 📌 Validation Report
# ==========================================================

@router.get("/validate", response_model=fence_schema.ValidateResponse)
def validate_fences(service: FenceConsistencyService = Depends(get_fence_service)):
    """
    Classify every fence with geometry.

    Returns:
        {
            "validCount": 120,
            "invalidCount": 3,
            "issues": [
                {
                    "fenceId": 7,
                    "name": "Zone_7",
                    "isValid": false,
                    "validReason": "Self-intersection[74.3 31.5]",
                    "isSimple": false,
                    "hasUnclosedRing": false,
                    "hasDuplicateVertices": false,
                    "isDuplicate": true,
                    "duplicateOfId": 4,
                    "duplicateGroupSize": 2,
                    "groupState": "member"
                },
                ...
            ]
        }

    Issues are ordered by fence id.
    """
    try:
        return service.validation_report()
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Validation failed: {str(e)}"
        )


# ==========================================================
# 📌 Repair Geometry
# ==========================================================

@router.post("/validate/fix", response_model=fence_schema.FixResponse)
def fix_fences(
    payload: fence_schema.FixRequest,
    service: FenceConsistencyService = Depends(get_fence_service)
):
    """
    Apply geometry repair to the given fence ids.

    Ids that do not exist, or whose geometry cannot be repaired, are skipped
    and listed in `skippedIds`.

    Raises:
        400: No usable ids, or more ids than REPAIR_MAX_BATCH
    """
    ids = normalize_ids(payload.ids)
    if not ids:
        raise HTTPException(status_code=400, detail="No valid ids provided")
    if len(ids) > settings.REPAIR_MAX_BATCH:
        raise HTTPException(
            status_code=400,
            detail=f"At most {settings.REPAIR_MAX_BATCH} ids per repair call"
        )

    try:
        result = service.repair(ids)
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Fix failed: {str(e)}"
        )

    return {
        "fixed": result.affected_count,
        "fixedIds": result.affected_ids,
        "skippedIds": result.skipped_ids
    }


# ==========================================================
# 📌 Deactivate Invalid Fences
# ==========================================================

@router.post("/validate/mark-inactive", response_model=fence_schema.RemediationResponse)
def mark_invalid_inactive(service: FenceConsistencyService = Depends(get_fence_service)):
    """
    Set status = 'inactive' on every fence the validator reports as invalid.

    Fences already inactive are not rewritten, so a second call reports 0.

    Raises:
        409: The fence table has no status column
    """
    try:
        result = service.deactivate_invalid()
    except FenceStoreError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to mark invalid fences as inactive: {str(e)}"
        )
    return result.to_dict()


# ==========================================================
# 📌 Deactivate Duplicate Fences
# ==========================================================

@router.post("/validate/dedupe", response_model=fence_schema.RemediationResponse)
def dedupe_fences(service: FenceConsistencyService = Depends(get_fence_service)):
    """
    Set status = 'inactive' on every non-canonical member of a duplicate group.

    The canonical member (smallest id) keeps its status. No rows are deleted.

    Raises:
        409: The fence table has no status column
    """
    try:
        result = service.deactivate_duplicates()
    except FenceStoreError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to de-duplicate fences: {str(e)}"
        )
    return result.to_dict()


# ==========================================================
# 📌 Get Specific Fence
# ==========================================================

@router.get("/{fence_id}", response_model=fence_schema.FenceGet)
def get_fence(fence_id: int, service: FenceConsistencyService = Depends(get_fence_service)):
    """
    Get one fence with its GeoJSON geometry.

    Raises:
        400: Non-positive id
        404: Fence not found
    """
    if fence_id <= 0:
        raise HTTPException(status_code=400, detail="Invalid id")

    try:
        fence = service.store.get_fence(fence_id)
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to fetch fence: {str(e)}"
        )

    if fence is None:
        raise HTTPException(status_code=404, detail="Fence not found")
    return fence
