"""Catalogue models - the contract between registry, calculator, and layout.

Defines the typed structure of everything the pipeline consumes: variables,
chart configurations (small formula programs), report templates with their
data blocks and grid settings, and the immutable chart results it produces.

Persisted shapes round-trip through ``to_dict`` / ``from_dict`` using the
camelCase keys of the stored documents.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class VariableType(Enum):
    """Value kind held by a statistics variable."""
    NUMERIC = "numeric"
    PERCENTAGE = "percentage"
    CURRENCY = "currency"
    COUNT = "count"
    TEXT = "text"


class ChartType(Enum):
    """Closed set of chart tags; each maps to one payload shape."""
    KPI = "kpi"        # Single number card
    BAR = "bar"        # Two or more bars
    PIE = "pie"        # Two or more slices
    TEXT = "text"      # Raw text passthrough
    TABLE = "table"    # Markdown table passthrough
    IMAGE = "image"    # URL / slug passthrough
    VALUE = "value"    # Composite: expands into one KPI and one BAR


class ValueType(Enum):
    """Display type of a chart element value."""
    NUMBER = "number"
    CURRENCY = "currency"
    PERCENTAGE = "percentage"


class Unavailable(Enum):
    """Marker for a formula that referenced a variable with no value.

    Distinct from a computed zero.  There is exactly one member, exported
    as ``UNAVAILABLE``.
    """
    TOKEN = "N/A"

    def __repr__(self) -> str:
        return "UNAVAILABLE"

    def __str__(self) -> str:
        return self.value


UNAVAILABLE = Unavailable.TOKEN

# Rendered in place of a value when a formula is unavailable.
NA = "N/A"

# Element arity per chart type: (minimum, maximum or None for unbounded).
ELEMENT_ARITY: dict[ChartType, tuple[int, int | None]] = {
    ChartType.KPI: (1, 1),
    ChartType.TEXT: (1, 1),
    ChartType.TABLE: (1, 1),
    ChartType.IMAGE: (1, 1),
    ChartType.BAR: (2, None),
    ChartType.PIE: (2, None),
    ChartType.VALUE: (2, 2),
}

# Upper bound on grid units per breakpoint.
GRID_UNIT_CAPS = {"desktop": 6, "tablet": 4, "mobile": 2}

ASPECT_RATIOS = ("16:9", "9:16", "1:1")
DEFAULT_ASPECT_RATIO = "16:9"


# ---------------------------------------------------------------------------
# Variables
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class VariableFlags:
    """Where a variable shows up in the editing surfaces."""
    visible_in_clicker: bool = False
    editable_in_manual: bool = True

    def to_dict(self) -> dict:
        return {"visibleInClicker": self.visible_in_clicker,
                "editableInManual": self.editable_in_manual}

    @classmethod
    def from_dict(cls, d: dict) -> "VariableFlags":
        return cls(
            visible_in_clicker=d.get("visibleInClicker", False),
            editable_in_manual=d.get("editableInManual", True),
        )


@dataclass(frozen=True)
class Variable:
    """A named, typed slot in a statistics record."""
    name: str                           # Stable key, e.g. "remoteImages"
    label: str
    type: VariableType
    category: str
    derived: bool = False
    formula: str | None = None          # Present iff derived
    flags: VariableFlags = field(default_factory=VariableFlags)
    is_custom: bool = False
    description: str | None = None

    @property
    def is_numeric(self) -> bool:
        return self.type is not VariableType.TEXT

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            "name": self.name,
            "label": self.label,
            "type": self.type.value,
            "category": self.category,
        }
        if self.derived:
            d["derived"] = True
            d["formula"] = self.formula
        d["flags"] = self.flags.to_dict()
        if self.is_custom:
            d["isCustom"] = True
        if self.description:
            d["description"] = self.description
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "Variable":
        return cls(
            name=d["name"],
            label=d.get("label", ""),
            type=VariableType(d.get("type", "count")),
            category=d.get("category", ""),
            derived=d.get("derived", False),
            formula=d.get("formula"),
            flags=VariableFlags.from_dict(d.get("flags", {})),
            is_custom=d.get("isCustom", False),
            description=d.get("description"),
        )


# ---------------------------------------------------------------------------
# Chart configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ElementFormat:
    """Prefix/suffix display hint, e.g. "€" + value or value + "%"."""
    rounded: bool = True
    prefix: str = ""
    suffix: str = ""

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"rounded": self.rounded}
        if self.prefix:
            d["prefix"] = self.prefix
        if self.suffix:
            d["suffix"] = self.suffix
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "ElementFormat":
        return cls(rounded=d.get("rounded", True),
                   prefix=d.get("prefix", ""), suffix=d.get("suffix", ""))


@dataclass(frozen=True)
class ChartElement:
    """One formula of a chart: a KPI value, a bar, a slice, a text field."""
    formula: str
    label: str | None = None
    color: str | None = None
    image_url: str | None = None
    type: ValueType | None = None
    parameters: dict[str, float] = field(default_factory=dict)
    formatting: ElementFormat | None = None

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"formula": self.formula}
        if self.label is not None:
            d["label"] = self.label
        if self.color:
            d["color"] = self.color
        if self.image_url:
            d["imageUrl"] = self.image_url
        if self.type:
            d["type"] = self.type.value
        if self.parameters:
            d["parameters"] = dict(self.parameters)
        if self.formatting:
            d["formatting"] = self.formatting.to_dict()
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "ChartElement":
        params = d.get("parameters") or {}
        # Stored parameters may be {"key": {"value": 1.5, "label": ...}}
        params = {k: (v.get("value", 0) if isinstance(v, dict) else v)
                  for k, v in params.items()}
        return cls(
            formula=d.get("formula", ""),
            label=d.get("label"),
            color=d.get("color"),
            image_url=d.get("imageUrl"),
            type=ValueType(d["type"]) if d.get("type") else None,
            parameters=params,
            formatting=ElementFormat.from_dict(d["formatting"]) if d.get("formatting") else None,
        )


@dataclass(frozen=True)
class ChartConfiguration:
    """A named recipe of formula elements describing one renderable chart."""
    chart_id: str
    title: str
    type: ChartType
    elements: tuple[ChartElement, ...] = ()
    emoji: str | None = None
    icon: str | None = None
    subtitle: str | None = None
    is_active: bool = True
    order: int = 0
    aspect_ratio: str | None = None      # Image charts only
    show_total: bool = False
    total_label: str | None = None

    def element_count_ok(self) -> bool:
        """Check the per-type element arity invariant."""
        lo, hi = ELEMENT_ARITY[self.type]
        n = len(self.elements)
        return n >= lo and (hi is None or n <= hi)

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            "chartId": self.chart_id,
            "title": self.title,
            "type": self.type.value,
            "elements": [e.to_dict() for e in self.elements],
            "isActive": self.is_active,
            "order": self.order,
        }
        if self.emoji:
            d["emoji"] = self.emoji
        if self.icon:
            d["icon"] = self.icon
        if self.subtitle:
            d["subtitle"] = self.subtitle
        if self.aspect_ratio:
            d["aspectRatio"] = self.aspect_ratio
        if self.show_total:
            d["showTotal"] = True
        if self.total_label:
            d["totalLabel"] = self.total_label
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "ChartConfiguration":
        return cls(
            chart_id=d["chartId"],
            title=d.get("title", ""),
            type=ChartType(d["type"]),
            elements=tuple(ChartElement.from_dict(e) for e in d.get("elements", [])),
            emoji=d.get("emoji"),
            icon=d.get("icon"),
            subtitle=d.get("subtitle"),
            is_active=d.get("isActive", True),
            order=d.get("order", 0),
            aspect_ratio=d.get("aspectRatio"),
            show_total=d.get("showTotal", False),
            total_label=d.get("totalLabel"),
        )


# ---------------------------------------------------------------------------
# Report templates
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GridSettings:
    """Columns available per breakpoint."""
    desktop_units: int = 3
    tablet_units: int = 2
    mobile_units: int = 1

    def to_dict(self) -> dict:
        return {"desktopUnits": self.desktop_units,
                "tabletUnits": self.tablet_units,
                "mobileUnits": self.mobile_units}

    @classmethod
    def from_dict(cls, d: dict) -> "GridSettings":
        return cls(
            desktop_units=d.get("desktopUnits", 3),
            tablet_units=d.get("tabletUnits", 2),
            mobile_units=d.get("mobileUnits", 1),
        )


@dataclass(frozen=True)
class DataBlock:
    """Placement of one chart inside a report template."""
    id: str
    chart_id: str
    width: int | None = None             # Explicit unit override
    order: int = 0

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"id": self.id, "chartId": self.chart_id,
                             "order": self.order}
        if self.width is not None:
            d["width"] = self.width
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "DataBlock":
        return cls(id=d["id"], chart_id=d["chartId"],
                   width=d.get("width"), order=d.get("order", 0))


@dataclass(frozen=True)
class ReportTemplate:
    """Ordered data blocks plus responsive grid settings."""
    id: str
    name: str
    grid_settings: GridSettings = field(default_factory=GridSettings)
    data_blocks: tuple[DataBlock, ...] = ()
    version: str = ""

    def ordered_blocks(self) -> list[DataBlock]:
        """Blocks by ``order``; ties keep insertion order (sort is stable)."""
        return sorted(self.data_blocks, key=lambda b: b.order)

    def chart_ids(self) -> list[str]:
        return [b.chart_id for b in self.ordered_blocks()]

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "gridSettings": self.grid_settings.to_dict(),
            "dataBlocks": [b.to_dict() for b in self.data_blocks],
        }
        if self.version:
            d["version"] = self.version
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "ReportTemplate":
        return cls(
            id=d["id"],
            name=d.get("name", d["id"]),
            grid_settings=GridSettings.from_dict(d.get("gridSettings", {})),
            data_blocks=tuple(DataBlock.from_dict(b) for b in d.get("dataBlocks", [])),
            version=d.get("version", ""),
        )


@dataclass(frozen=True)
class ProjectReference:
    """The slice of a project (event) needed for template resolution."""
    id: str
    name: str
    template_id: str | None = None
    partner_id: str | None = None

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"id": self.id, "name": self.name}
        if self.template_id:
            d["templateId"] = self.template_id
        if self.partner_id:
            d["partnerId"] = self.partner_id
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "ProjectReference":
        return cls(id=d["id"], name=d.get("name", d["id"]),
                   template_id=d.get("templateId"), partner_id=d.get("partnerId"))


@dataclass(frozen=True)
class PartnerReference:
    """The slice of a partner needed for template resolution."""
    id: str
    name: str
    template_id: str | None = None

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"id": self.id, "name": self.name}
        if self.template_id:
            d["templateId"] = self.template_id
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "PartnerReference":
        return cls(id=d["id"], name=d.get("name", d["id"]),
                   template_id=d.get("templateId"))


# ---------------------------------------------------------------------------
# Chart calculation results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class KpiPayload:
    value: float | str                   # Number, or NA when unavailable
    unavailable: bool = False
    value_type: ValueType | None = None
    formatting: ElementFormat | None = None

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"value": self.value, "unavailable": self.unavailable}
        if self.value_type:
            d["valueType"] = self.value_type.value
        if self.formatting:
            d["formatting"] = self.formatting.to_dict()
        return d


@dataclass(frozen=True)
class Segment:
    """One bar or slice."""
    label: str
    value: float
    percentage: float
    color: str | None = None
    unavailable: bool = False

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"label": self.label, "value": self.value,
                             "percentage": self.percentage}
        if self.color:
            d["color"] = self.color
        if self.unavailable:
            d["unavailable"] = True
        return d


@dataclass(frozen=True)
class SegmentPayload:
    """Bar / pie payload."""
    segments: tuple[Segment, ...]
    total: float
    insufficient_data: bool = False
    show_total: bool = False
    total_label: str | None = None

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            "segments": [s.to_dict() for s in self.segments],
            "total": self.total,
            "insufficientData": self.insufficient_data,
        }
        if self.show_total:
            d["showTotal"] = True
        if self.total_label:
            d["totalLabel"] = self.total_label
        return d


@dataclass(frozen=True)
class TextPayload:
    content: str
    unavailable: bool = False

    def to_dict(self) -> dict:
        return {"content": self.content, "unavailable": self.unavailable}


@dataclass(frozen=True)
class TablePayload:
    markdown: str
    unavailable: bool = False

    def to_dict(self) -> dict:
        return {"markdown": self.markdown, "unavailable": self.unavailable}


@dataclass(frozen=True)
class ImagePayload:
    url: str
    aspect_ratio: str = DEFAULT_ASPECT_RATIO
    unavailable: bool = False

    def to_dict(self) -> dict:
        return {"url": self.url, "aspectRatio": self.aspect_ratio,
                "unavailable": self.unavailable}


ChartPayload = Union[KpiPayload, SegmentPayload, TextPayload, TablePayload, ImagePayload]

# Payload class produced for each evaluable chart type.
PAYLOAD_TYPES: dict[ChartType, type] = {
    ChartType.KPI: KpiPayload,
    ChartType.BAR: SegmentPayload,
    ChartType.PIE: SegmentPayload,
    ChartType.TEXT: TextPayload,
    ChartType.TABLE: TablePayload,
    ChartType.IMAGE: ImagePayload,
}


@dataclass(frozen=True)
class ChartCalculationResult:
    """The pipeline's output unit, consumed by the renderer."""
    chart_id: str
    title: str
    type: ChartType
    payload: ChartPayload
    subtitle: str | None = None
    emoji: str | None = None
    icon: str | None = None
    has_errors: bool = False

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            "chartId": self.chart_id,
            "title": self.title,
            "type": self.type.value,
            "payload": self.payload.to_dict(),
            "hasErrors": self.has_errors,
        }
        if self.subtitle:
            d["subtitle"] = self.subtitle
        if self.emoji:
            d["emoji"] = self.emoji
        if self.icon:
            d["icon"] = self.icon
        return d
