"""Tests for maptext/parser.py and the parsed-map export schema."""
from __future__ import annotations

import json

import pytest

from maptext.parser import declared_names, parse
from models import EMPTY_NAME, ParsedMap
from schemas import export_parsed_map, get_parsed_map_schema, validate_parsed_map

MAP = "\n".join([
    "title Tea Shop",
    "anchor Business [0.95, 0.63]",
    "component Cup of Tea [0.79, 0.61]",
    "component Kettle [0.45, 0.57] (build)",
    "pipeline Kettle",
    "{",
    "  component Electric Kettle [0.63]",
    "}",
    "market Retail [0.6, 0.7]",
    "note Tea matters [0.3, 0.4]",
    "settlers [0.5, 0.4, 0.3, 0.6]",
    "evolve Kettle->Smart Kettle 0.8",
    "Business->Cup of Tea",
    "Cup of Tea->Kettle;needs hot water",
    "component [0.5, 0.5]",
])


class TestParse:
    def test_all_kinds(self):
        parsed = parse(MAP)
        assert parsed.title == "Tea Shop"
        assert [a.name for a in parsed.anchors] == ["Business"]
        assert [c.name for c in parsed.components] == ["Cup of Tea", "Kettle", "Recovered Component Name"]
        assert [m.name for m in parsed.markets] == ["Retail"]
        assert [n.text for n in parsed.notes] == ["Tea matters"]
        assert [(m.name, m.decorator) for m in parsed.methods] == [("Kettle", "build")]
        assert [p.name for p in parsed.pipelines] == ["Kettle"]
        assert len(parsed.attitudes) == 1
        assert [(l.start, l.end) for l in parsed.links] == [("Business", "Cup of Tea"), ("Cup of Tea", "Kettle")]
        assert parsed.links[1].context == "needs hot water"
        assert [(e.name, e.override) for e in parsed.evolutions] == [("Kettle", "Smart Kettle")]

    def test_empty_name_event(self):
        parsed = parse(MAP)
        assert [(e.kind, e.line) for e in parsed.events] == [(EMPTY_NAME, 15)]

    def test_events_sorted_by_line(self):
        parsed = parse('component "B [0.1, 0.1]\nanchor [0.2, 0.2]\ncomponent [0.3, 0.3]')
        assert [e.line for e in parsed.events] == sorted(e.line for e in parsed.events)

    def test_all_names_includes_children_and_overrides(self):
        names = declared_names(MAP)
        assert "Electric Kettle" in names
        assert "Smart Kettle" in names
        assert "Business" in names

    @pytest.mark.parametrize("bad", [None, 0, "", ["component A"]])
    def test_non_string_is_empty_map(self, bad):
        parsed = parse(bad)
        assert isinstance(parsed, ParsedMap)
        assert parsed.components == []
        assert parsed.title == "Untitled Map"

    def test_parse_is_pure(self):
        assert parse(MAP).to_dict() == parse(MAP).to_dict()


class TestParsedMapSchema:
    def test_schema_loads(self):
        schema = get_parsed_map_schema()
        assert "$defs" in schema

    def test_export_validates(self):
        ok, errors = validate_parsed_map(parse(MAP).to_dict())
        assert ok, errors

    def test_empty_map_validates(self):
        ok, errors = validate_parsed_map(ParsedMap().to_dict())
        assert ok, errors

    def test_export_is_json(self):
        data = json.loads(export_parsed_map(parse(MAP)))
        assert data["title"] == "Tea Shop"

    def test_out_of_range_rejected(self):
        data = parse(MAP).to_dict()
        data["components"][0]["visibility"] = 1.5
        ok, errors = validate_parsed_map(data)
        assert not ok
        assert errors[0].startswith("components -> 0 -> visibility:")

    def test_missing_field_rejected(self):
        data = parse(MAP).to_dict()
        del data["links"]
        ok, errors = validate_parsed_map(data)
        assert not ok
        assert errors[0].startswith("root:")
