"""Tests for maptext/pipelines.py: extraction, bounds detection and text generation."""
from __future__ import annotations

import pytest

from maptext.errors import ElementNotFoundError
from maptext.parser import parse
from maptext.pipelines import (
    child_maturities,
    find_pipeline_at,
    generate_pipeline_text,
    insert_pipeline_component,
    is_within_pipeline,
    pipeline_bounds,
    pipelines_in,
)
from models import UNTERMINATED_BLOCK, Pipeline, PipelineComponent

KETTLE = "\n".join([
    "component Kettle [0.45, 0.57]",
    "pipeline Kettle",
    "{",
    "  component Campfire Kettle [0.35] label [-10, 20]",
    "  component Electric Kettle [0.63]",
    "}",
    "component Power [0.10, 0.70]",
])


class TestPipelineExtraction:
    def test_children(self):
        pipeline = pipelines_in(KETTLE)[0]
        assert pipeline.name == "Kettle"
        assert [(c.name, c.maturity, c.line) for c in pipeline.components] == [
            ("Campfire Kettle", 0.35, 4), ("Electric Kettle", 0.63, 5)]
        assert (pipeline.components[0].label.x, pipeline.components[0].label.y) == (-10.0, 20.0)

    def test_children_define_maturity_range(self):
        pipeline = pipelines_in(KETTLE)[0]
        assert (pipeline.maturity1, pipeline.maturity2) == (0.35, 0.63)
        assert not pipeline.hidden

    def test_bracket_maturities(self):
        pipeline = pipelines_in("pipeline Kettle [0.15, 0.65]")[0]
        assert (pipeline.maturity1, pipeline.maturity2) == (0.15, 0.65)
        assert not pipeline.hidden

    def test_defaults_without_bracket(self):
        pipeline = pipelines_in("pipeline Kettle")[0]
        assert (pipeline.maturity1, pipeline.maturity2) == (0.2, 0.8)
        assert pipeline.hidden

    def test_visibility_from_same_named_component(self):
        pipeline = parse(KETTLE).pipelines[0]
        assert pipeline.visibility == 0.45

    def test_blank_line_before_brace(self):
        text = "pipeline P\n\n{\n  component C [0.4]\n}"
        assert [c.name for c in pipelines_in(text)[0].components] == ["C"]

    def test_unterminated_block(self):
        text = "pipeline P\n{\n  component C [0.4]\ncomponent D [0.5, 0.5]"
        result = parse(text)
        assert result.pipelines[0].components == []
        assert [e.kind for e in result.events] == [UNTERMINATED_BLOCK]
        assert [(c.name, c.line) for c in result.components] == [("D", 4)]

    def test_unterminated_block_keeps_rest_of_document(self):
        text = "\n".join([
            "pipeline P",
            "{",
            "  component C [0.4]",
            "  component C2 [0.6]",
            "component Z [0.3, 0.4]",
            "note Remember [0.2, 0.2]",
            "anchor User [0.95, 0.5]",
            "User->Z",
        ])
        result = parse(text)
        assert [c.name for c in result.components] == ["Z"]
        assert [n.text for n in result.notes] == ["Remember"]
        assert [a.name for a in result.anchors] == ["User"]
        assert len(result.links) == 1
        assert [(e.kind, e.line) for e in result.events] == [(UNTERMINATED_BLOCK, 2)]

    def test_unterminated_block_ends_at_first_unindented_line(self):
        text = "pipeline P\n{\n  component C [0.4]\ncomponent Z [0.3, 0.4]\n  component Y [0.7, 0.7]"
        result = parse(text)
        assert [c.name for c in result.components] == ["Z", "Y"]

    def test_two_pipelines(self):
        text = "pipeline A\n{\n  component A1 [0.2]\n}\npipeline B\n{\n  component B1 [0.7]\n}"
        pipelines = pipelines_in(text)
        assert [[c.name for c in p.components] for p in pipelines] == [["A1"], ["B1"]]

    def test_non_string(self):
        assert pipelines_in(None) == []


class TestBounds:
    def test_bounds_from_children(self):
        pipeline = Pipeline(name="P", visibility=0.5,
                            components=[PipelineComponent("a", 0.3), PipelineComponent("b", 0.6)])
        assert pipeline_bounds(pipeline) == (0.3, 0.6)

    def test_bounds_padded_without_children(self):
        pipeline = Pipeline(name="P", maturity1=0.3, maturity2=0.6, visibility=0.5)
        low, high = pipeline_bounds(pipeline)
        assert low == pytest.approx(0.2)
        assert high == pytest.approx(0.7)

    def test_bounds_clamped(self):
        pipeline = Pipeline(name="P", maturity1=0.05, maturity2=0.95, visibility=0.5)
        assert pipeline_bounds(pipeline) == (0.0, 1.0)

    def test_tolerance_is_asymmetric(self):
        pipeline = Pipeline(name="P", maturity1=0.3, maturity2=0.6, visibility=0.5)
        # 0.15 below is inside the 0.2 tolerance
        assert is_within_pipeline(pipeline, 0.35, 0.4)
        # 0.15 above is outside 0.2 * 0.3
        assert not is_within_pipeline(pipeline, 0.65, 0.4)
        assert is_within_pipeline(pipeline, 0.55, 0.4)

    def test_maturity_outside_bounds(self):
        pipeline = Pipeline(name="P", maturity1=0.3, maturity2=0.6, visibility=0.5)
        assert not is_within_pipeline(pipeline, 0.5, 0.9)

    def test_pipeline_without_visibility(self):
        assert not is_within_pipeline(Pipeline(name="P"), 0.5, 0.5)

    def test_closest_pipeline_wins(self):
        upper = Pipeline(name="Upper", maturity1=0.3, maturity2=0.6, visibility=0.5)
        lower = Pipeline(name="Lower", maturity1=0.3, maturity2=0.6, visibility=0.4)
        assert find_pipeline_at([upper, lower], 0.38, 0.4).name == "Lower"
        assert find_pipeline_at([upper, lower], 0.1, 0.4) is None

    def test_settings_drive_tolerance(self, isolated_settings):
        isolated_settings.settings.pipelines.snap_tolerance = 0.05
        pipeline = Pipeline(name="P", maturity1=0.3, maturity2=0.6, visibility=0.5)
        assert not is_within_pipeline(pipeline, 0.35, 0.4)


class TestGeneration:
    def test_child_maturities_centered(self):
        assert child_maturities(0.5) == (0.35, 0.65)

    def test_child_maturities_shifted_at_edges(self):
        assert child_maturities(0.05) == (0.0, 0.3)
        assert child_maturities(0.95) == (0.7, 1.0)

    def test_minimum_spacing(self):
        left, right = child_maturities(0.5, spacing=0.01)
        assert right - left == pytest.approx(0.1)

    def test_generate_text(self):
        text = generate_pipeline_text("Kettle", 0.5, 0.5)
        assert text.split("\n") == [
            "component Kettle [0.50, 0.50]",
            "pipeline Kettle",
            "{",
            "  component Pipeline Component 1 [0.35]",
            "  component Pipeline Component 2 [0.65]",
            "}",
        ]

    def test_generated_children_unique(self):
        text = generate_pipeline_text("Kettle", 0.5, 0.5, existing_names=["Pipeline Component 1"])
        assert "component Pipeline Component 1 1 [0.35]" in text

    def test_generated_text_parses(self):
        parsed = parse(generate_pipeline_text("Kettle", 0.5, 0.5))
        assert parsed.pipelines[0].visibility == 0.5
        assert len(parsed.pipelines[0].components) == 2
        assert parsed.events == []


class TestInsertPipelineComponent:
    def test_inserted_before_existing_children(self):
        result = insert_pipeline_component(KETTLE, "Kettle", "Gas Kettle", 0.5)
        lines = result.split("\n")
        assert lines[3] == "  component Gas Kettle [0.50]"
        assert lines[4] == "  component Campfire Kettle [0.35] label [-10, 20]"
        assert len(lines) == len(KETTLE.split("\n")) + 1

    def test_label(self):
        result = insert_pipeline_component(KETTLE, "Kettle", "Gas Kettle", 0.5, label=(-10, -10))
        assert "  component Gas Kettle [0.50] label [-10, -10]" in result

    def test_block_created_when_missing(self):
        result = insert_pipeline_component("pipeline Kettle\ncomponent X [0.1, 0.1]", "Kettle", "Gas", 0.4)
        assert result == "pipeline Kettle\n{\n  component Gas [0.40]\n}\ncomponent X [0.1, 0.1]"

    def test_case_insensitive_pipeline_lookup(self):
        assert "component Gas" in insert_pipeline_component(KETTLE, "kettle", "Gas", 0.4)

    def test_unknown_pipeline(self):
        with pytest.raises(ElementNotFoundError):
            insert_pipeline_component(KETTLE, "Teapot", "Gas", 0.4)

    def test_crlf_preserved(self):
        text = KETTLE.replace("\n", "\r\n")
        result = insert_pipeline_component(text, "Kettle", "Gas", 0.4)
        assert "\n" not in result.replace("\r\n", "")
