"""Tests for maptext/naming.py: matching, quoting and unique names."""
from __future__ import annotations

import pytest

from maptext.naming import format_name, names_match, needs_quotes, normalize_name, unique_name
from maptext.recovery import decode_quoted


class TestNormalize:
    def test_case_and_spacing(self):
        assert normalize_name("  Hot   WATER ") == "hot water"

    def test_newlines_become_spaces(self):
        assert normalize_name("Multi-line\nName") == "multi-line name"

    def test_names_match(self):
        assert names_match("Kettle", "kettle")
        assert not names_match("Kettle", "Kettles")
        assert not names_match("", "")


class TestFormatName:
    def test_plain_name_is_bare(self):
        assert format_name("Power Supply") == "Power Supply"
        assert not needs_quotes("Power Supply")

    @pytest.mark.parametrize("name", [
        "Cup [of] tea", 'Say "hi"', "A->B", "semi;colon", "back\\slash", "Two\nLines", " padded",
    ])
    def test_special_names_are_quoted(self, name):
        assert needs_quotes(name)
        rendered = format_name(name)
        assert rendered.startswith('"') and rendered.endswith('"')

    @pytest.mark.parametrize("name", ['Say "hi"', "Two\nLines", "back\\slash", "Cup [of] tea"])
    def test_quoted_form_decodes_back(self, name):
        assert decode_quoted(format_name(name)).value == name


class TestUniqueName:
    def test_free_name_unchanged(self):
        assert unique_name("Kettle", ["Tea"]) == "Kettle"

    def test_first_suffix(self):
        assert unique_name("Kettle", ["Kettle"]) == "Kettle 1"

    def test_smallest_unused_suffix(self):
        assert unique_name("Kettle", ["Kettle", "Kettle 1", "Kettle 3"]) == "Kettle 2"

    def test_collision_is_case_insensitive(self):
        assert unique_name("kettle", ["KETTLE"]) == "kettle 1"

    def test_exhausted(self, monkeypatch):
        import maptext.naming as naming
        monkeypatch.setattr(naming, "MAX_UNIQUE_ATTEMPTS", 2)
        with pytest.raises(ValueError):
            unique_name("A", ["A", "A 1", "A 2"])
