"""
Tests for read filters, status mapping and settings validation.
"""

import pytest
from pydantic import ValidationError

from src.Core.config import CANONICAL_TOLERANCE_DEG, Settings
from src.Services.fence_store import (
    FenceFilters,
    FenceRecord,
    FenceStatus,
    display_name,
    matches_region,
    parse_bbox,
    parse_region,
)


class TestParseBbox:

    def test_valid_box(self):
        assert parse_bbox("74.2, 31.4, 74.4, 31.6") == [74.2, 31.4, 74.4, 31.6]

    @pytest.mark.parametrize("value", [
        None,
        "",
        "1,2,3",
        "1,2,3,4,5",
        "a,b,c,d",
        "74.4,31.4,74.2,31.6",
        "74.2,31.6,74.4,31.4",
        "0,0,0,1",
        "nan,0,1,1",
        "0,0,inf,1",
    ])
    def test_rejected(self, value):
        assert parse_bbox(value) is None


class TestFenceFilters:

    @pytest.mark.parametrize("raw, expected", [
        ("active", FenceStatus.ACTIVE),
        ("TRUE", FenceStatus.ACTIVE),
        ("inactive", FenceStatus.INACTIVE),
        ("false", FenceStatus.INACTIVE),
        ("archived", None),
        ("  ", None),
        (None, None),
    ])
    def test_status(self, raw, expected):
        assert FenceFilters.from_params(status=raw).status == expected

    def test_blank_search_ignored(self):
        assert FenceFilters.from_params(search="   ").search is None
        assert FenceFilters.from_params(search=" gate ").search == "gate"

    def test_negative_areas_ignored(self):
        filters = FenceFilters.from_params(min_area=-1, max_area=500.0)
        assert filters.min_area is None
        assert filters.max_area == 500.0

    def test_bad_bbox_ignored(self):
        assert FenceFilters.from_params(bbox="1,2").bbox is None


class TestRegion:

    @pytest.mark.parametrize("raw, expected", [
        ("Lahore", "lahore"),
        (" karachi ", "karachi"),
        ("ISLAMABAD", "islamabad"),
        ("other", "other"),
        ("quetta", None),
        ("", None),
        (None, None),
    ])
    def test_parse(self, raw, expected):
        assert parse_region(raw) == expected
        assert FenceFilters.from_params(region=raw).region == expected

    def test_city_matches_name_substring(self):
        assert matches_region("DHA Lahore Phase 5", "lahore")
        assert not matches_region("Clifton Karachi", "lahore")

    def test_other_excludes_every_known_city(self):
        assert matches_region("Peshawar Cantt", "other")
        assert not matches_region("Islamabad F-7", "other")

    def test_unnamed_fence_matches_no_region(self):
        assert not matches_region(None, "other")
        assert not matches_region(None, "lahore")


class TestFenceStatus:

    @pytest.mark.parametrize("raw, expected", [
        ("active", FenceStatus.ACTIVE),
        (" Inactive ", FenceStatus.INACTIVE),
        (None, FenceStatus.UNKNOWN),
        ("deleted", FenceStatus.UNKNOWN),
    ])
    def test_from_db(self, raw, expected):
        assert FenceStatus.from_db(raw) == expected

    def test_compares_with_plain_text(self):
        assert FenceStatus.INACTIVE == "inactive"


class TestDisplayName:

    @pytest.mark.parametrize("name", [None, "", "   "])
    def test_generated(self, name):
        assert display_name(42, name) == "Zone_42"

    def test_kept(self):
        assert display_name(42, "Model Town") == "Model Town"

    def test_record_label(self):
        assert FenceRecord(id=3).label == "Zone_3"


class TestSettings:

    def test_defaults(self):
        s = Settings(DATABASE_URL="postgresql://localhost/fences")
        assert s.FENCES_TABLE == "fence"
        assert s.CANONICAL_TOLERANCE_DEG == CANONICAL_TOLERANCE_DEG

    @pytest.mark.parametrize("table", ["fence; DROP TABLE fence", "1fence", "public.fence", ""])
    def test_unsafe_table_name_falls_back(self, table):
        s = Settings(DATABASE_URL="postgresql://localhost/fences", FENCES_TABLE=table)
        assert s.FENCES_TABLE == "fence"

    def test_custom_table_name(self):
        s = Settings(DATABASE_URL="postgresql://localhost/fences", FENCES_TABLE="geo_fences")
        assert s.FENCES_TABLE == "geo_fences"

    @pytest.mark.parametrize("tolerance", [0, -1e-6])
    def test_non_positive_tolerance_rejected(self, tolerance):
        with pytest.raises(ValidationError):
            Settings(DATABASE_URL="postgresql://localhost/fences", CANONICAL_TOLERANCE_DEG=tolerance)
