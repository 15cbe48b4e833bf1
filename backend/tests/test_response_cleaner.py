"""
Tests for decoding raw model output into JSON objects.
"""

import json

import pytest
from hypothesis import given, settings, strategies as st

from core.errors import ParseError
from utils.response_cleaner import (
    PlainWorldSetting,
    StructuredWorldSetting,
    clean_response,
    decode_world_setting,
    parse_json_object,
    strip_fences,
    try_parse_json_object,
)

_text = st.text(alphabet=st.one_of(st.characters(), st.sampled_from("\u200b\u200c\u200d\ufeff")), max_size=40)
_json_scalar = st.one_of(st.none(), st.booleans(), st.integers(), _text)
_json_value = st.recursive(
    _json_scalar,
    lambda children: st.one_of(
        st.lists(children, max_size=4),
        st.dictionaries(_text, children, max_size=4),
    ),
    max_leaves=12,
)
_json_object = st.dictionaries(_text, _json_value, max_size=6)


class TestStripFences:
    def test_removes_language_tagged_fence(self):
        assert strip_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_removes_bare_fence(self):
        assert strip_fences('```\n{"a": 1}\n```  ') == '{"a": 1}'

    def test_plain_text_is_only_trimmed(self):
        assert strip_fences("  hello world \n") == "hello world"


class TestParseJsonObject:
    def test_slices_object_out_of_prose(self):
        raw = 'Sure! Here is the character:\n{"name": "Ima"}\nHope that helps.'
        assert parse_json_object(raw) == {"name": "Ima"}

    def test_stray_zero_width_characters_are_dropped_in_second_tier(self):
        raw = '\ufeff{"name":\u200b "Ima"}'
        assert clean_response(raw) == '{"name":\u200b "Ima"}'
        assert parse_json_object(raw) == {"name": "Ima"}

    def test_joiners_inside_string_values_survive(self):
        inner = '{"content": "family \U0001F468\u200d\U0001F469 and a\u200bb"}'
        decoded = parse_json_object(f"```json\n{inner}\n```")
        assert decoded == json.loads(inner)
        assert "\u200d" in decoded["content"]

    def test_second_tier_removes_trailing_commas_and_control_characters(self):
        raw = '```json\n{"tags": ["a", "b",], "title": "T"\x07,}\n```'
        assert parse_json_object(raw) == {"tags": ["a", "b"], "title": "T"}

    def test_non_object_json_is_rejected(self):
        with pytest.raises(ParseError):
            parse_json_object("[1, 2, 3]")

    def test_error_keeps_bounded_snippet(self):
        raw = "{" + "x" * 2000
        with pytest.raises(ParseError) as info:
            parse_json_object(raw)
        snippet = info.value.snippet
        assert snippet.startswith("{xxx")
        assert snippet.endswith("... (truncated)")
        assert len(snippet) == 500 + len("... (truncated)")

    def test_short_failure_keeps_whole_text(self):
        with pytest.raises(ParseError) as info:
            parse_json_object("not json at all")
        assert info.value.snippet == "not json at all"
        assert info.value.status_code == 502

    def test_try_parse_returns_none_on_failure(self):
        assert try_parse_json_object("nope") is None
        assert try_parse_json_object('{"ok": true}') == {"ok": True}

    @given(payload=_json_object)
    @settings(max_examples=150)
    def test_fenced_object_decodes_like_direct_parse(self, payload):
        text = json.dumps(payload, ensure_ascii=False)
        fenced = f"```json\n{text}\n```"
        assert parse_json_object(fenced) == json.loads(text)


class TestWorldSetting:
    def test_string_is_plain(self):
        setting = decode_world_setting("A city of seven gates.")
        assert isinstance(setting, PlainWorldSetting)
        assert setting.flatten() == "A city of seven gates."

    def test_object_flattens_into_labelled_sections(self):
        setting = decode_world_setting(
            {"background": "Old river city", "powerSystem": "Gate keys", "socialStructure": "Seven bloodlines"}
        )
        assert isinstance(setting, StructuredWorldSetting)
        assert setting.flatten() == (
            "**World Background**\nOld river city\n\n"
            "**Power System**\nGate keys\n\n"
            "**Social Structure**\nSeven bloodlines"
        )

    def test_missing_sections_are_skipped(self):
        assert decode_world_setting({"background": "Only this"}).flatten() == "**World Background**\nOnly this"

    def test_none_and_other_values(self):
        assert decode_world_setting(None).flatten() == ""
        assert decode_world_setting(["a", 1]).flatten() == '["a",1]'
