# tests/utils/test_metadata.py
"""Tests for typed metadata getters."""

import pytest

from llmgate.utils import metadata as md

META = {
    "flag": True,
    "count": 30,
    "whole": 5.0,
    "ratio": 0.25,
    "name": "cache",
    "tags": ["a", "b"],
    "pair": ("x", "y"),
    "nested": {"ttl": 10},
    "bad_keys": {1: "one"},
}


class TestGetters:
    """Tests for the never-raising getters."""

    def test_get_bool(self):
        assert md.get_bool(META, "flag") is True
        assert md.get_bool(META, "count", default=True) is True
        assert md.get_bool(META, "missing") is False

    def test_get_int(self):
        assert md.get_int(META, "count") == 30
        assert md.get_int(META, "whole") == 5
        assert md.get_int(META, "ratio", 7) == 7
        assert md.get_int(META, "flag", 5) == 5
        assert md.get_int(META, "name", 1) == 1

    def test_get_float(self):
        assert md.get_float(META, "ratio") == 0.25
        assert md.get_float(META, "count") == 30.0
        assert md.get_float(META, "flag", 1.5) == 1.5

    def test_get_str(self):
        assert md.get_str(META, "name") == "cache"
        assert md.get_str(META, "count", "none") == "none"

    def test_get_list(self):
        assert md.get_list(META, "tags") == ["a", "b"]
        assert md.get_list(META, "pair") == ["x", "y"]
        assert md.get_list(META, "name") is None
        assert md.get_list(META, "missing", []) == []

    def test_get_list_returns_copy(self):
        result = md.get_list(META, "tags")
        result.append("c")
        assert META["tags"] == ["a", "b"]

    def test_get_map(self):
        assert md.get_map(META, "nested") == {"ttl": 10}
        assert md.get_map(META, "bad_keys") is None
        assert md.get_map(META, "tags", {}) == {}

    @pytest.mark.parametrize("metadata", [None, "not a map", 42, ["flag"]])
    def test_non_mapping_metadata(self, metadata):
        """Test every getter degrades to its default on malformed metadata."""
        assert md.get_bool(metadata, "flag") is False
        assert md.get_int(metadata, "count", 3) == 3
        assert md.get_float(metadata, "ratio", 0.5) == 0.5
        assert md.get_str(metadata, "name", "d") == "d"
        assert md.get_list(metadata, "tags") is None
        assert md.get_map(metadata, "nested") is None
