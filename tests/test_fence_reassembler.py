"""
Tests for reassembling exploded parts into one Feature per fence.
"""

import json

from src.Services.fence_reassembler import (
    PartRow,
    explode_records,
    reassemble,
    to_feature_collection,
)
from src.Services.fence_store import FenceRecord
from tests.conftest import TRIANGLE, multipolygon, polygon, square


def _row(fence_id, geometry, name="Fence", ordinal=0, **extras):
    if isinstance(geometry, dict):
        geometry = json.dumps(geometry)
    return PartRow(fence_id=fence_id, name=name, geometry=geometry, extras=extras, ordinal=ordinal)


class TestReassemble:

    def test_single_part_is_polygon_as_is(self):
        geom = polygon(TRIANGLE)
        features = reassemble([_row(1, geom)])

        assert len(features) == 1
        assert features[0]["id"] == 1
        assert features[0]["type"] == "Feature"
        assert features[0]["geometry"] == geom

    def test_two_parts_become_multipolygon(self):
        rows = [
            _row(3, polygon(square(0, 0)), ordinal=1),
            _row(3, polygon(square(5, 5)), ordinal=2),
        ]
        features = reassemble(rows)

        assert len(features) == 1
        geometry = features[0]["geometry"]
        assert geometry["type"] == "MultiPolygon"
        assert len(geometry["coordinates"]) == 2
        assert geometry["coordinates"][0] == [square(0, 0)]
        assert geometry["coordinates"][1] == [square(5, 5)]

    def test_multipolygon_parts_are_flattened(self):
        rows = [
            _row(1, polygon(square(0, 0))),
            _row(1, multipolygon([square(2, 2)], [square(4, 4)])),
        ]
        geometry = reassemble(rows)[0]["geometry"]

        assert geometry["type"] == "MultiPolygon"
        assert len(geometry["coordinates"]) == 3
        for member in geometry["coordinates"]:
            # polygon -> ring -> point -> number: no nested multipolygons
            assert isinstance(member[0][0][0], (int, float))

    def test_unparseable_part_dropped_from_its_fence_only(self):
        rows = [
            _row(1, polygon(square(0, 0))),
            _row(1, "{broken"),
            _row(2, polygon(TRIANGLE)),
        ]
        features = reassemble(rows)

        assert [f["id"] for f in features] == [1, 2]
        assert features[0]["geometry"]["type"] == "Polygon"

    def test_fence_without_usable_parts_is_dropped(self):
        rows = [
            _row(1, None),
            _row(1, '{"type": "Polygon"}'),
            _row(2, polygon(TRIANGLE)),
        ]
        features = reassemble(rows)

        assert [f["id"] for f in features] == [2]

    def test_non_polygonal_part_is_not_usable(self):
        rows = [_row(1, {"type": "LineString", "coordinates": [[0, 0], [1, 1]]})]
        assert reassemble(rows) == []

    def test_name_fallback(self):
        rows = [
            _row(7, polygon(TRIANGLE), name=None),
            _row(8, polygon(TRIANGLE), name="   "),
            _row(9, polygon(TRIANGLE), name="Gulberg"),
        ]
        names = [f["properties"]["name"] for f in reassemble(rows)]
        assert names == ["Zone_7", "Zone_8", "Gulberg"]

    def test_extras_cannot_replace_name(self):
        rows = [
            _row(1, polygon(TRIANGLE), name="Real", city="Lahore"),
            _row(2, polygon(TRIANGLE), name=None),
        ]
        rows[0].extras["name"] = "x"
        rows[1].extras["name"] = "y"

        features = reassemble(rows)
        assert features[0]["properties"] == {"name": "Real", "city": "Lahore"}
        assert features[1]["properties"] == {"name": "Zone_2"}

    def test_extras_from_first_row(self):
        rows = [
            _row(1, polygon(square(0, 0)), name="A", city="Lahore", address="Mall Rd"),
            _row(1, polygon(square(3, 3)), name="ignored", city="Karachi", address=None),
        ]
        props = reassemble(rows)[0]["properties"]
        assert props == {"name": "A", "city": "Lahore", "address": "Mall Rd"}

    def test_rows_of_one_fence_need_not_be_adjacent(self):
        rows = [
            _row(1, polygon(square(0, 0))),
            _row(2, polygon(TRIANGLE)),
            _row(1, polygon(square(5, 5))),
        ]
        features = reassemble(rows)

        assert [f["id"] for f in features] == [1, 2]
        assert len(features[0]["geometry"]["coordinates"]) == 2

    def test_reassembly_is_repeatable(self):
        rows = [
            _row(1, polygon(square(0, 0))),
            _row(1, polygon(square(5, 5))),
            _row(2, polygon(TRIANGLE), name=None),
        ]
        first = json.dumps(to_feature_collection(reassemble(rows)))
        second = json.dumps(to_feature_collection(reassemble(rows)))
        assert first == second

    def test_one_feature_per_fence_with_parts(self):
        rows = [_row(fid, polygon(square(fid, 0))) for fid in (1, 1, 2, 3, 3, 3)]
        features = reassemble(rows)
        assert sorted(f["id"] for f in features) == [1, 2, 3]


class TestExplodeRecords:

    def test_multipolygon_record_round_trips(self, engine):
        record = FenceRecord(
            id=4,
            name="Two parts",
            geometry=multipolygon([square(0, 0)], [square(5, 5)])
        )
        rows = explode_records([record], engine)

        assert [r.ordinal for r in rows] == [1, 2]
        assert all(r.fence_id == 4 for r in rows)

        features = reassemble(rows)
        assert len(features) == 1
        assert features[0]["geometry"]["type"] == "MultiPolygon"
        assert len(features[0]["geometry"]["coordinates"]) == 2

    def test_null_geometry_skipped(self, engine):
        assert explode_records([FenceRecord(id=1, geometry=None)], engine) == []

    def test_engine_rejected_record_keeps_raw_part(self, engine):
        record = FenceRecord(id=1, geometry=polygon([[0, 0], [1, 0], [0, 0]]))
        rows = explode_records([record], engine)

        assert len(rows) == 1
        # Ring passes the structural GeoJSON check, so the raw part survives
        assert reassemble(rows)[0]["id"] == 1
