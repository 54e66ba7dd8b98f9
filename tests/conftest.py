"""
Test configuration and shared fixtures.

Tests run without PostGIS: services are exercised against an in-memory
FenceStore and the Shapely geometry engine.
"""

import copy
import os

# Settings are validated at import time; no connection is opened.
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest

from src.Core.config import CANONICAL_TOLERANCE_DEG
from src.Services.fence_reassembler import explode_records
from src.Services.fence_store import FenceRecord, FenceStatus, FenceStore, matches_region
from src.Services.geometry_engine import ShapelyGeometryEngine


# ==========================================================
# Geometry fixtures
# ==========================================================

TRIANGLE = [[0.0, 0.0], [1.0, 0.0], [0.0, 1.0], [0.0, 0.0]]
BOWTIE = [[0.0, 0.0], [1.0, 1.0], [1.0, 0.0], [0.0, 1.0], [0.0, 0.0]]
FLAT = [[0.0, 0.0], [1.0, 0.0], [2.0, 0.0], [0.0, 0.0]]


def polygon(*rings):
    return {"type": "Polygon", "coordinates": [list(r) for r in rings]}


def multipolygon(*polygons):
    return {"type": "MultiPolygon", "coordinates": [list(p) for p in polygons]}


def square(x0, y0, size=1.0):
    return [[x0, y0], [x0 + size, y0], [x0 + size, y0 + size], [x0, y0 + size], [x0, y0]]


# ==========================================================
# In-memory store
# ==========================================================

class InMemoryFenceStore(FenceStore):
    """FenceStore over a dict, recording every mutation call."""

    def __init__(self, engine, records=()):
        self.engine = engine
        self.fences = {r.id: r for r in records}
        self.status_calls = []
        self.geometry_calls = []

    def add(self, fence_id, geometry, name=None, status=FenceStatus.ACTIVE, **extras):
        self.fences[fence_id] = FenceRecord(
            id=fence_id, name=name, status=status, geometry=geometry, extras=extras
        )
        return self.fences[fence_id]

    def load_fences(self, ids=None):
        wanted = None if ids is None else set(ids)
        return [
            copy.deepcopy(r)
            for fid, r in sorted(self.fences.items())
            if r.geometry is not None and (wanted is None or fid in wanted)
        ]

    def load_parts(self, filters=None):
        records = self.load_fences()
        if filters is not None:
            if filters.search:
                records = [
                    r for r in records
                    if r.name and filters.search.lower() in r.name.lower()
                ]
            if filters.region:
                records = [r for r in records if matches_region(r.name, filters.region)]
            if filters.status is not None:
                records = [r for r in records if r.status == filters.status]
        return explode_records(records, self.engine)

    def count_parts(self, filters=None):
        return len(self.load_parts(filters))

    def get_fence(self, fence_id):
        record = self.fences.get(fence_id)
        if record is None:
            return None
        return {"id": record.id, "name": record.label, "geometry": record.geometry}

    def update_status(self, ids, status):
        ids = list(ids)
        self.status_calls.append((ids, status))
        changed = []
        for fid in ids:
            record = self.fences.get(fid)
            if record is not None and record.status != status:
                record.status = status
                changed.append(fid)
        return changed

    def update_geometries(self, geometries):
        self.geometry_calls.append(dict(geometries))
        changed = []
        for fid, geometry in geometries.items():
            if fid in self.fences:
                self.fences[fid].geometry = geometry
                changed.append(fid)
        return changed


@pytest.fixture
def engine():
    return ShapelyGeometryEngine()


@pytest.fixture
def tolerance():
    return CANONICAL_TOLERANCE_DEG


@pytest.fixture
def store(engine):
    return InMemoryFenceStore(engine)
