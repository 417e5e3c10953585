"""
Tests for the channel text codec.

Run with:  python -m pytest botti_engine/test_codec.py -v
"""

import pytest

from botti_engine.codec import decode, encode


class TestEncode:

    def test_plain_word_unchanged(self):
        assert encode("hello") == "hello"

    def test_spaces_become_nbsp(self):
        assert encode("a  b") == "a&nbsp;&nbsp;b"

    def test_newlines_become_line_breaks(self):
        assert encode("one\ntwo") == "one<br />two"

    def test_markup_is_escaped(self):
        assert encode("<b>&'\"") == "&lt;b&gt;&amp;&#39;&quot;"

    def test_trailing_newline_dropped(self):
        assert encode("done\n") == "done"
        assert encode("done\n\n") == "done"

    def test_usage_string(self):
        assert encode("Usage: ip <user>") == "Usage:&nbsp;ip&nbsp;&lt;user&gt;"


class TestDecode:

    def test_line_break_and_nbsp(self):
        assert decode("a&nbsp;b<br />c") == "a b\nc"

    def test_entities(self):
        assert decode("&lt;&gt;&amp;&quot;&#39;") == "<>&\"'"

    def test_escaped_entity_is_not_double_decoded(self):
        assert decode("&amp;lt;") == "&lt;"


class TestRoundTrip:
    """decode(encode(s)) == s for text without a trailing newline."""

    @pytest.mark.parametrize("text", [
        "",
        "plain",
        "two  spaces and\ttab",
        "line one\nline two\n\nline four",
        "&nbsp; is not a space",
        "<br /> is not a newline",
        "&amp;lt; already escaped",
        "'quotes' and \"double quotes\"",
        "x < y && y > z",
        "ünïcödé 中文 🎲",
        "\nleading newline",
    ])
    def test_round_trip(self, text):
        assert decode(encode(text)) == text

    def test_trailing_newline_not_preserved(self):
        assert decode(encode("text\n")) == "text"
