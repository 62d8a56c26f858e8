"""Grid layout - how many grid units each data block occupies per breakpoint.

Width rules:
- An explicit block width wins.  Chart content cells are clamped to
  ``[1, 2]``; table blocks are full-bleed and clamped to the breakpoint cap.
- Otherwise the width comes from the chart type: kpi 1, text 2, pie 2,
  bar 3, image by aspect ratio (9:16 -> 1, 1:1 -> 2, 16:9 -> 3), table the
  full breakpoint width, anything else 3.
- Each breakpoint then clamps to its own cap.  Clamping on one breakpoint
  never changes another.

Also carries the block-level helpers used when several charts share one
row: unit capacity, CSS column weights and height from an aspect ratio.
"""

import re
from dataclasses import dataclass
from enum import Enum

from fanstats.schema.models import (
    DEFAULT_ASPECT_RATIO,
    ChartConfiguration,
    ChartType,
    DataBlock,
    GridSettings,
)


class Breakpoint(Enum):
    DESKTOP = "desktop"
    TABLET = "tablet"
    MOBILE = "mobile"


@dataclass(frozen=True)
class LayoutCaps:
    """Hard unit caps per breakpoint."""
    desktop: int = 6
    tablet: int = 4
    mobile: int = 2
    multi_chart_tablet: int = 2      # Tablet cap when a row holds several charts

    def cap(self, breakpoint: Breakpoint, multi_chart: bool = False) -> int:
        if breakpoint is Breakpoint.TABLET and multi_chart:
            return min(self.tablet, self.multi_chart_tablet)
        return getattr(self, breakpoint.value)

    def to_dict(self) -> dict:
        return {"desktop": self.desktop, "tablet": self.tablet, "mobile": self.mobile,
                "multiChartTablet": self.multi_chart_tablet}

    @classmethod
    def from_dict(cls, d: dict) -> "LayoutCaps":
        """Caps from a catalogue ``grid`` section; missing keys keep their defaults.

        Raises:
            ValueError: If a cap is not a positive integer.
        """
        kwargs = {}
        for key, attr in (("desktop", "desktop"), ("tablet", "tablet"), ("mobile", "mobile"),
                          ("multiChartTablet", "multi_chart_tablet")):
            if key not in d:
                continue
            value = d[key]
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                raise ValueError(f"grid.{key} must be a positive integer, got {value!r}")
            kwargs[attr] = value
        return cls(**kwargs)


DEFAULT_CAPS = LayoutCaps()

# Content cells never span more than this when sized explicitly.
CONTENT_WIDTH_RANGE = (1, 2)

BLOCK_CAPACITY = 4

DEFAULT_BLOCK_HEIGHT = 300

TYPE_WIDTHS = {
    ChartType.KPI: 1,
    ChartType.TEXT: 2,
    ChartType.PIE: 2,
    ChartType.BAR: 3,
}
FALLBACK_WIDTH = 3

IMAGE_WIDTHS = {"9:16": 1, "1:1": 2, "16:9": 3}

_RATIO = re.compile(r"^(\d+):(\d+)$")


def _grid_units(grid_settings: GridSettings, breakpoint: Breakpoint) -> int:
    return getattr(grid_settings, f"{breakpoint.value}_units")


def image_width(aspect_ratio: str | None) -> int:
    """Grid units for an image: portrait 1, square 2, landscape 3."""
    return IMAGE_WIDTHS.get(aspect_ratio or DEFAULT_ASPECT_RATIO,
                            IMAGE_WIDTHS[DEFAULT_ASPECT_RATIO])


def default_width(chart: ChartConfiguration | None, cap: int = DEFAULT_CAPS.desktop) -> int:
    """Width for a block with no explicit width.  ``cap`` sizes full-bleed tables."""
    if chart is None:
        return FALLBACK_WIDTH
    if chart.type is ChartType.TABLE:
        return cap
    if chart.type is ChartType.IMAGE:
        return image_width(chart.aspect_ratio)
    return TYPE_WIDTHS.get(chart.type, FALLBACK_WIDTH)


def width_for(
    block: DataBlock,
    chart: ChartConfiguration | None = None,
    breakpoint: Breakpoint = Breakpoint.DESKTOP,
    caps: LayoutCaps = DEFAULT_CAPS,
    grid_settings: GridSettings | None = None,
    multi_chart: bool = False,
) -> int:
    """Grid units for one block at one breakpoint.

    Args:
        block: The data block; its ``width`` is the explicit override.
        chart: The chart placed in the block.  Without it an explicit width
            is only bounded by the breakpoint cap.
        breakpoint: Which breakpoint to size for.
        caps: Hard caps per breakpoint.
        grid_settings: Template grid; further limits the cap to its units.
        multi_chart: The block's row holds more than one chart.
    """
    cap = caps.cap(breakpoint, multi_chart)
    if grid_settings is not None:
        cap = min(cap, _grid_units(grid_settings, breakpoint))
    cap = max(cap, 1)

    if block.width is not None:
        width = block.width
        if chart is not None and chart.type is not ChartType.TABLE:
            lo, hi = CONTENT_WIDTH_RANGE
            width = min(max(width, lo), hi)
    else:
        width = default_width(chart, cap)
    return min(max(width, 1), cap)


def widths_for(
    block: DataBlock,
    chart: ChartConfiguration | None = None,
    grid_settings: GridSettings | None = None,
    caps: LayoutCaps = DEFAULT_CAPS,
) -> dict[str, int]:
    """Width per breakpoint, keyed by breakpoint name."""
    return {
        bp.value: width_for(block, chart, bp, caps, grid_settings)
        for bp in Breakpoint
    }


# ---------------------------------------------------------------------------
# Block-level helpers
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CapacityCheck:
    valid: bool
    total_units: int
    error: str | None = None


def validate_block_capacity(widths, capacity: int = BLOCK_CAPACITY) -> CapacityCheck:
    """Check that the charts sharing one block fit in ``capacity`` units."""
    total = sum(w or 1 for w in widths)
    if total > capacity:
        return CapacityCheck(
            valid=False,
            total_units=total,
            error=(f"Block capacity exceeded: sum of chart widths ({total}) "
                   f"exceeds maximum ({capacity} units)"),
        )
    return CapacityCheck(valid=True, total_units=total)


def grid_columns(widths) -> str:
    """CSS ``grid-template-columns`` value, e.g. ``"2fr 1fr 1fr"``."""
    widths = list(widths)
    if not widths:
        return "1fr"
    return " ".join(f"{w or 1}fr" for w in widths)


def item_widths(widths, block_width: float) -> list[float]:
    """Pixel width of each chart in a block, proportional to its units."""
    widths = [w or 1 for w in widths]
    total = sum(widths)
    if total <= 0:
        return [block_width for _ in widths]
    return [w / total * block_width for w in widths]


def block_height(block_width: float, aspect_ratio: str | None = None) -> float:
    """Block height in pixels from its width and a ``"W:H"`` ratio (default 4:1)."""
    if block_width <= 0:
        return DEFAULT_BLOCK_HEIGHT
    if not aspect_ratio:
        return block_width / 4
    match = _RATIO.match(aspect_ratio)
    if not match:
        return block_width / 4
    w, h = int(match.group(1)), int(match.group(2))
    if w <= 0 or h <= 0:
        return block_width / 4
    return block_width * h / w
