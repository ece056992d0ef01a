"""Tests for backhub.styles helpers."""

import pytest
from rich.text import Text

from backhub.styles import (
    PALETTE,
    SYMBOLS,
    debug_message,
    detail_message,
    error_message,
    format_duration,
    info_message,
    progress_bar,
    status_glyph,
    success_message,
    warning_message,
)


class TestProgressBar:
    def test_half(self):
        assert progress_bar(5, 10, 10) == "[=====>    ] 50.0% - "

    def test_empty(self):
        assert progress_bar(0, 10, 10) == "[>         ] 0.0% - "

    def test_full(self):
        assert progress_bar(10, 10, 10) == "[==========] 100.0% - "

    def test_clamps_above_total(self):
        assert progress_bar(25, 10, 10) == progress_bar(10, 10, 10)

    def test_clamps_negative(self):
        assert progress_bar(-3, 10, 10) == progress_bar(0, 10, 10)

    def test_zero_total(self):
        assert progress_bar(5, 0, 4) == "[>   ] 0.0% - "

    def test_default_width(self):
        bar = progress_bar(1, 2)
        assert bar.index("]") == 31


class TestFormatDuration:
    @pytest.mark.parametrize(
        ("seconds", "expected"),
        [
            (0.25, "250ms"),
            (0, "0ms"),
            (3.24, "3.2s"),
            (59.0, "59.0s"),
            (0.9994, "999ms"),
            (0.9996, "1.0s"),
            (59.96, "1m00s"),
            (125, "2m05s"),
            (3725, "1h02m05s"),
        ],
    )
    def test_formats(self, seconds, expected):
        assert format_duration(seconds) == expected

    def test_negative_is_zero(self):
        assert format_duration(-1) == "0ms"


class TestGlyphs:
    def test_status_glyphs(self):
        assert status_glyph("success").plain == SYMBOLS["pass"]
        assert status_glyph("error").plain == SYMBOLS["fail"]
        assert status_glyph("warning").plain == SYMBOLS["warning"]
        assert status_glyph("pending").plain == SYMBOLS["pending"]

    def test_custom_status_uses_bullet(self):
        glyph = status_glyph("cloning")
        assert glyph.plain == SYMBOLS["bullet"]
        assert glyph.style == PALETTE.info

    def test_message_helpers_return_styled_text(self):
        text = error_message("boom")
        assert isinstance(text, Text)
        assert text.plain == "boom"
        assert text.style == PALETTE.error

    def test_for_status_falls_back_to_pending(self):
        assert PALETTE.for_status("error") == PALETTE.error
        assert PALETTE.for_status("something-else") == PALETTE.pending

    @pytest.mark.parametrize(
        "helper,style",
        [
            (success_message, PALETTE.success),
            (warning_message, PALETTE.warning),
            (info_message, PALETTE.info),
            (debug_message, PALETTE.debug),
            (detail_message, PALETTE.detail),
        ],
    )
    def test_each_helper_uses_its_style(self, helper, style):
        assert helper("x").style == style
