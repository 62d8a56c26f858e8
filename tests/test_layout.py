"""Tests for grid layout widths and block sizing."""

import pytest

from fanstats.generator.layout import (
    Breakpoint,
    LayoutCaps,
    block_height,
    default_width,
    grid_columns,
    image_width,
    item_widths,
    validate_block_capacity,
    width_for,
    widths_for,
)
from fanstats.schema.models import (
    ChartConfiguration,
    ChartElement,
    ChartType,
    DataBlock,
    GridSettings,
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

def _chart(chart_type, aspect_ratio=None):
    n = 2 if chart_type in (ChartType.BAR, ChartType.PIE, ChartType.VALUE) else 1
    return ChartConfiguration(
        chart_id="c", title="C", type=chart_type, aspect_ratio=aspect_ratio,
        elements=tuple(ChartElement(f"stats.v{i}") for i in range(n)),
    )


def _block(width=None):
    return DataBlock(id="b", chart_id="c", width=width)


# ---------------------------------------------------------------------------
# Default widths
# ---------------------------------------------------------------------------

class TestDefaultWidth:
    @pytest.mark.parametrize("chart_type,expected", [
        (ChartType.KPI, 1),
        (ChartType.TEXT, 2),
        (ChartType.PIE, 2),
        (ChartType.BAR, 3),
        (ChartType.IMAGE, 3),
    ])
    def test_by_type(self, chart_type, expected):
        assert default_width(_chart(chart_type)) == expected

    def test_unknown_chart(self):
        assert default_width(None) == 3

    def test_table_is_full_bleed(self):
        assert default_width(_chart(ChartType.TABLE), cap=4) == 4

    @pytest.mark.parametrize("ratio,expected", [("9:16", 1), ("1:1", 2), ("16:9", 3), (None, 3)])
    def test_image_by_aspect_ratio(self, ratio, expected):
        assert image_width(ratio) == expected
        assert default_width(_chart(ChartType.IMAGE, ratio)) == expected


# ---------------------------------------------------------------------------
# width_for
# ---------------------------------------------------------------------------

class TestWidthFor:
    def test_explicit_width_clamped_per_breakpoint(self):
        block = _block(width=5)
        assert width_for(block, breakpoint=Breakpoint.MOBILE) == 2
        assert width_for(block, breakpoint=Breakpoint.DESKTOP) == 5

    def test_explicit_width_on_table_uses_breakpoint_cap(self):
        block = _block(width=5)
        chart = _chart(ChartType.TABLE)
        assert width_for(block, chart, Breakpoint.DESKTOP) == 5
        assert width_for(block, chart, Breakpoint.TABLET) == 4
        assert width_for(block, chart, Breakpoint.MOBILE) == 2

    def test_explicit_width_on_content_cell(self):
        assert width_for(_block(width=5), _chart(ChartType.BAR)) == 2
        assert width_for(_block(width=0), _chart(ChartType.BAR)) == 1

    def test_explicit_width_overrides_default(self):
        assert width_for(_block(width=2), _chart(ChartType.KPI)) == 2

    def test_default_width(self):
        assert width_for(_block(), _chart(ChartType.BAR)) == 3

    def test_default_width_capped_on_mobile(self):
        assert width_for(_block(), _chart(ChartType.BAR), Breakpoint.MOBILE) == 2

    def test_grid_settings_cap(self):
        grid = GridSettings(desktop_units=3, tablet_units=2, mobile_units=1)
        assert width_for(_block(), _chart(ChartType.TABLE), Breakpoint.DESKTOP,
                         grid_settings=grid) == 3
        assert width_for(_block(), _chart(ChartType.BAR), Breakpoint.MOBILE,
                         grid_settings=grid) == 1

    def test_multi_chart_tablet(self):
        block = _block(width=4)
        table = _chart(ChartType.TABLE)
        assert width_for(block, table, Breakpoint.TABLET) == 4
        assert width_for(block, table, Breakpoint.TABLET, multi_chart=True) == 2

    def test_custom_caps(self):
        caps = LayoutCaps(mobile=1)
        assert width_for(_block(), _chart(ChartType.PIE), Breakpoint.MOBILE, caps) == 1

    def test_widths_for_each_breakpoint(self):
        widths = widths_for(_block(), _chart(ChartType.BAR))
        assert widths == {"desktop": 3, "tablet": 3, "mobile": 2}

    def test_breakpoints_independent(self):
        widths = widths_for(_block(width=5), _chart(ChartType.TABLE))
        assert widths == {"desktop": 5, "tablet": 4, "mobile": 2}


# ---------------------------------------------------------------------------
# Block helpers
# ---------------------------------------------------------------------------

class TestBlockHelpers:
    def test_capacity_ok(self):
        check = validate_block_capacity([1, 3])
        assert check.valid
        assert check.total_units == 4

    def test_capacity_exceeded(self):
        check = validate_block_capacity([2, 3])
        assert not check.valid
        assert "exceeds maximum" in check.error

    def test_missing_width_counts_as_one(self):
        assert validate_block_capacity([None, None]).total_units == 2

    def test_grid_columns(self):
        assert grid_columns([2, 1, 1]) == "2fr 1fr 1fr"
        assert grid_columns([]) == "1fr"

    def test_item_widths(self):
        assert item_widths([1, 3], 800) == [200, 600]

    def test_block_height_default_ratio(self):
        assert block_height(1200) == 300

    def test_block_height_with_ratio(self):
        assert block_height(1200, "4:3") == 900

    def test_block_height_invalid_ratio(self):
        assert block_height(1200, "wide") == 300

    def test_block_height_zero_width(self):
        assert block_height(0) == 300
