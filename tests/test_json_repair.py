"""Tests for LLM JSON repair."""

import json

import pytest

from bizfit_api.json_repair import repair_json, strip_code_fences

ANALYSIS_RESPONSE = json.dumps(
    {
        "businessAnalysis": [
            {
                "businessId": "freelancing",
                "fitScore": 88,
                "reasoning": "Your communication skills and {structured} habits fit client work.",
                "strengths": ["Communication", "Organization"],
                "challenges": ["Finding \"first\" clients"],
                "confidence": 0.85,
            },
            {
                "businessId": "saas-development",
                "fitScore": 41,
                "reasoning": "Requires more runway than you planned.",
                "strengths": [],
                "challenges": ["Timeline", "Budget"],
                "confidence": 0.7,
            },
        ],
        "personalityProfile": {
            "strengths": ["Self-motivated"],
            "developmentAreas": ["Risk tolerance"],
            "workStyle": "Independent",
            "riskProfile": "Moderate",
        },
        "recommendations": ["Start with a small pilot", "Track your hours"],
        "meta": {"complete": True, "version": 2, "notes": None},
    },
    indent=2,
)


class TestStripCodeFences:
    """Tests for markdown fence removal."""

    def test_json_fence(self):
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_bare_fence(self):
        assert strip_code_fences("```\n{}\n```") == "{}"

    def test_fence_without_newlines(self):
        assert strip_code_fences("```json{}```") == "{}"

    def test_no_fence(self):
        assert strip_code_fences('  {"a": 1}  ') == '{"a": 1}'


class TestRepairJson:
    """Tests for repair_json."""

    def test_valid_json_unchanged(self):
        assert repair_json(ANALYSIS_RESPONSE) == json.loads(ANALYSIS_RESPONSE)

    def test_fenced_json(self):
        assert repair_json('```json\n{"a": 1}\n```') == {"a": 1}

    def test_prose_around_object(self):
        """Text before the first brace and after the closing brace is dropped."""
        raw = 'Here is your analysis: {"a": [1, 2]} Let me know if you need more!'
        assert repair_json(raw) == {"a": [1, 2]}

    def test_truncated_fenced_output(self):
        """A fence that never closes is still stripped."""
        assert repair_json('```json\n{"a": [1, 2') == {"a": [1, 2]}

    def test_truncated_mid_string(self):
        """A value cut off mid-string is dropped and the object closed."""
        assert repair_json('{"reasoning": "because you are very organiz') == {}

    def test_truncated_mid_string_keeps_earlier_fields(self):
        raw = '{"fitScore": 72, "reasoning": "because you are very organiz'
        assert repair_json(raw) == {"fitScore": 72}

    def test_truncated_inside_array(self):
        assert repair_json('{"strengths": ["a", "b') == {"strengths": ["a"]}

    def test_nested_containers_closed_in_order(self):
        assert repair_json('{"a": {"b": 1, "c": [1, 2') == {"a": {"b": 1, "c": [1, 2]}}

    def test_dangling_comma(self):
        assert repair_json('{"a": 1, ') == {"a": 1}

    def test_key_without_value(self):
        assert repair_json('{"a": 1, "b"') == {"a": 1}
        assert repair_json('{"a": 1, "b":') == {"a": 1}

    def test_partial_literal(self):
        assert repair_json('{"a": 1, "b": tru') == {"a": 1}

    def test_braces_inside_strings_ignored(self):
        assert repair_json('{"a": "x { y", "b": [1') == {"a": "x { y", "b": [1]}

    def test_trailing_commas_removed(self):
        assert repair_json('{"a": [1, 2,], }') == {"a": [1, 2]}

    def test_commas_inside_strings_kept(self):
        """Only structural trailing commas go; string text is untouched."""
        assert repair_json('{"a": "x, ]y", "b": "z,}", "c": [1,],}') == {
            "a": "x, ]y",
            "b": "z,}",
            "c": [1],
        }

    def test_fenced_empty_structure(self):
        """Fences are stripped and the empty structure parses."""
        raw = '```json\n{"personalityProfile":{},"businessAnalysis":[],"recommendations":[]}\n```'
        assert repair_json(raw) == {
            "personalityProfile": {},
            "businessAnalysis": [],
            "recommendations": [],
        }

    def test_mismatched_closer(self):
        assert repair_json('{"a": [1}') is None

    @pytest.mark.parametrize("raw", ["", "   ", "no json here", "[1, 2, 3]", '"just a string"'])
    def test_no_object(self, raw):
        assert repair_json(raw) is None

    @pytest.mark.parametrize("raw", [None, 42, {"a": 1}, b'{"a": 1}'])
    def test_non_string_input(self, raw):
        assert repair_json(raw) is None

    def test_every_truncation_offset(self):
        """Repair never raises and returns a dict or None at any cut point."""
        for offset in range(len(ANALYSIS_RESPONSE) + 1):
            result = repair_json(ANALYSIS_RESPONSE[:offset])
            assert result is None or isinstance(result, dict), offset

    def test_every_truncation_offset_fenced(self):
        fenced = f"```json\n{ANALYSIS_RESPONSE}\n```"
        for offset in range(len(fenced) + 1):
            result = repair_json(fenced[:offset])
            assert result is None or isinstance(result, dict), offset

    def test_deep_nesting_does_not_raise(self):
        result = repair_json('{"a": ' + "[" * 5000)
        assert result is None or isinstance(result, dict)
