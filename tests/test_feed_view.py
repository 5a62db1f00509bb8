"""
Display helper tests for the TUI.
"""

from decimal import Decimal

from feed_viewer.types import ConnectionQuality, ConnectionStatus
from feed_viewer.ui.feed_view import (
    QUALITY_STYLES, STATUS_STYLES, format_price, format_size, format_volume, make_bar,
)


def test_format_price():
    assert format_price(Decimal("60250.1")) == "$60,250.10"
    assert format_price(None) == "-"


def test_format_size_and_volume():
    assert format_size(Decimal("0.5")) == "0.5000"
    assert format_volume(Decimal("2500000")) == "2.5M"
    assert format_volume(Decimal("1500")) == "1.5K"
    assert format_volume(Decimal("12")) == "12"


def test_make_bar_width():
    assert len(make_bar(Decimal("5"), Decimal("10"), 16, "#fff").plain) == 16
    assert make_bar(Decimal("1"), Decimal("0"), 8, "#fff").plain == " " * 8


def test_every_state_has_a_style():
    assert set(STATUS_STYLES) == set(ConnectionStatus)
    assert set(QUALITY_STYLES) == set(ConnectionQuality)
