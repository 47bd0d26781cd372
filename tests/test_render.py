"""Unit tests for hygieia.render."""

from __future__ import annotations

from datetime import date

import pytest

from hygieia.events import ErrorEvent, Reasoning, TextFragment, ToolCall, ToolResult
from hygieia.errors import FormatError
from hygieia.render import (
    STREAM_ERROR_TEXT,
    TRUNCATED_SUFFIX,
    DiscordRenderer,
    TelegramRenderer,
    format_tool_result,
    serialize_result,
    truncate,
)


pytestmark = pytest.mark.unit


class TestSerialize:
    def test_truncate(self):
        assert truncate("abc", 5) == "abc"
        assert truncate("abcdef", 3) == "abc" + TRUNCATED_SUFFIX

    def test_pretty_json(self):
        assert serialize_result({"a": 1}) == '{\n  "a": 1\n}'

    def test_strings_untouched(self):
        assert serialize_result("plain") == "plain"

    def test_dates_serialized(self):
        assert '"2026-10-19"' in serialize_result({"day": date(2026, 10, 19)})

    def test_unserializable_raises(self):
        with pytest.raises(FormatError):
            serialize_result(object())

    def test_unserializable_placeholder(self):
        assert format_tool_result(object(), 500) == "[Complex data structure - object]"

    def test_long_result_truncated(self):
        out = format_tool_result({"text": "x" * 1000}, 50)
        assert out.endswith(TRUNCATED_SUFFIX)
        assert len(out) == 50 + len(TRUNCATED_SUFFIX)


class TestTelegramRenderer:
    def test_text_is_escaped(self):
        r = TelegramRenderer()
        assert r.render(TextFragment(text="a < b & c")) == "a &lt; b &amp; c"

    def test_tool_call(self):
        out = TelegramRenderer().render(ToolCall(name="generate_medical_report"))
        assert "<b>Using tool:</b> generate_medical_report" in out

    def test_tool_result_in_pre(self):
        out = TelegramRenderer().render(ToolResult(name="t", result={"k": "<v>"}))
        assert "<pre>" in out and "</pre>" in out
        assert "&lt;v&gt;" in out

    def test_reasoning(self):
        assert "💭 pondering" in TelegramRenderer().render(Reasoning(text="pondering"))

    def test_error_is_generic(self):
        out = TelegramRenderer().render(ErrorEvent(cause="HTTPStatusError: 502 from upstream"))
        assert STREAM_ERROR_TEXT in out
        assert "502" not in out

    def test_cut_point_plain(self):
        assert TelegramRenderer().cut_point("abcdefgh", 4) == 4

    def test_cut_point_avoids_tag(self):
        assert TelegramRenderer().cut_point("ab<b>cd</b>", 4) == 2

    def test_cut_point_avoids_entity(self):
        assert TelegramRenderer().cut_point("abc&amp;def", 5) == 3

    def test_cut_point_never_zero(self):
        assert TelegramRenderer().cut_point("<bbbbbbbbbb>", 4) == 4

    def test_cut_point_stays_out_of_element(self):
        assert TelegramRenderer().cut_point("ab<b>cdef</b>", 7) == 2

    def test_cut_point_before_open_pre(self):
        text = "x" * 10 + "<pre>" + "y" * 20 + "</pre>"
        assert TelegramRenderer().cut_point(text, 20) == 10


class TestDiscordRenderer:
    def test_text_passes_through(self):
        assert DiscordRenderer().render(TextFragment(text="**bold**")) == "**bold**"

    def test_tool_name_escaped(self):
        out = DiscordRenderer().render(ToolCall(name="my_tool"))
        assert "**Using tool:** my\\_tool" in out

    def test_result_code_block(self):
        out = DiscordRenderer().render(ToolResult(name="t", result={"a": 1}))
        assert out.count("```") == 2
        assert "```json" in out

    def test_result_fence_cannot_break_out(self):
        out = DiscordRenderer().render(ToolResult(name="t", result="```evil```"))
        assert out.count("```") == 2

    def test_placeholder(self):
        assert DiscordRenderer().placeholder == "Thinking…"
