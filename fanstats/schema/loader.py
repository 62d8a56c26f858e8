"""Catalogue loader - YAML serialization and deserialization of definitions.

A catalogue file holds everything the pipeline consumes besides statistics:
custom variables, chart configurations, report templates, the project and
partner references that point at templates, the global default template
id, and optional per-breakpoint layout caps (``grid``).  Built-in
variables and charts are merged in at load time, so a catalogue only needs
to list what it adds or overrides.

Example::

    defaultTemplateId: standard
    grid: {desktop: 6, tablet: 4, mobile: 2, multiChartTablet: 2}
    variables:
      - {name: vipGuests, label: VIP Guests, type: count, category: Event}
    charts:
      - chartId: vip
        title: VIP Guests
        type: kpi
        elements: [{formula: stats.vipGuests}]
    templates:
      - id: standard
        name: Standard
        gridSettings: {desktopUnits: 3, tabletUnits: 2, mobileUnits: 1}
        dataBlocks:
          - {id: b1, chartId: vip, order: 1}
    projects:
      - {id: p1, name: Cup Final, partnerId: club}
    partners:
      - {id: club, name: Club, templateId: standard}
"""

import dataclasses
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from fanstats.errors import ValidationError
from fanstats.generator.layout import DEFAULT_CAPS, LayoutCaps
from fanstats.processor.formula import parse
from fanstats.processor.registry import VariableRegistry, build_default_registry

from .defaults import build_default_charts
from .models import (
    GRID_UNIT_CAPS,
    ChartConfiguration,
    ChartType,
    PartnerReference,
    ProjectReference,
    ReportTemplate,
    Variable,
)


@dataclass
class Catalog:
    """Everything loaded from one catalogue file."""
    registry: VariableRegistry
    charts: dict[str, ChartConfiguration] = field(default_factory=dict)
    templates: dict[str, ReportTemplate] = field(default_factory=dict)
    projects: dict[str, ProjectReference] = field(default_factory=dict)
    partners: dict[str, PartnerReference] = field(default_factory=dict)
    default_template_id: str | None = None
    caps: LayoutCaps = DEFAULT_CAPS

    def to_dict(self) -> dict:
        d = {
            "variables": [v.to_dict() for v in self.registry if v.is_custom],
            "charts": [c.to_dict() for c in self.charts.values()],
            "templates": [t.to_dict() for t in self.templates.values()],
            "projects": [p.to_dict() for p in self.projects.values()],
            "partners": [p.to_dict() for p in self.partners.values()],
        }
        if self.default_template_id:
            d["defaultTemplateId"] = self.default_template_id
        if self.caps != DEFAULT_CAPS:
            d["grid"] = self.caps.to_dict()
        return d


def check_chart(chart: ChartConfiguration) -> ChartConfiguration:
    """Reject charts with a bad element count or an unparseable formula."""
    if not chart.chart_id:
        raise ValidationError("Chart has no chartId", token="chartId")
    if not chart.element_count_ok():
        raise ValidationError(
            f"Chart {chart.chart_id!r} of type {chart.type.value!r} has "
            f"{len(chart.elements)} element(s)",
            token=chart.chart_id,
        )
    for element in chart.elements:
        if chart.type is ChartType.IMAGE and element.image_url and not element.formula:
            continue
        parse(element.formula)
    return chart


def check_template(template: ReportTemplate) -> ReportTemplate:
    """Reject templates whose grid units fall outside the breakpoint caps."""
    grid = template.grid_settings
    for name, units in (("desktop", grid.desktop_units), ("tablet", grid.tablet_units),
                        ("mobile", grid.mobile_units)):
        cap = GRID_UNIT_CAPS[name]
        if not isinstance(units, int) or isinstance(units, bool) or not 1 <= units <= cap:
            raise ValidationError(
                f"Template {template.id!r}: {name}Units must be an integer in [1, {cap}], got {units!r}",
                token=f"{name}Units",
            )
    seen = set()
    for block in template.data_blocks:
        if block.id in seen:
            raise ValidationError(f"Template {template.id!r} repeats block id {block.id!r}",
                                  token=block.id)
        seen.add(block.id)
        if block.width is None:
            continue
        if not isinstance(block.width, int) or isinstance(block.width, bool) or block.width < 1:
            raise ValidationError(
                f"Block {block.id!r}: width must be a positive integer, got {block.width!r}",
                token=block.id,
            )
    return template


def _from_entries(entries, factory, key: str, kind: str, check=None) -> dict:
    out = {}
    for raw in entries or []:
        try:
            item = factory(raw)
        except ValidationError:
            raise
        except (KeyError, ValueError, TypeError) as exc:
            raise ValidationError(f"Malformed {kind} entry {raw!r}: {exc}",
                                  token=str(raw.get(key)) if isinstance(raw, dict) else None) from exc
        if check is not None:
            check(item)
        out[getattr(item, key)] = item
    return out


def _caps_from(raw) -> LayoutCaps:
    if raw is None:
        return DEFAULT_CAPS
    if not isinstance(raw, dict):
        raise ValidationError(f"grid must be a mapping, got {raw!r}", token="grid")
    try:
        return LayoutCaps.from_dict(raw)
    except ValueError as exc:
        raise ValidationError(str(exc), token="grid") from exc


def catalog_from_dict(data: dict | None, include_builtin_charts: bool = True) -> Catalog:
    """Build a :class:`Catalog`, validating every variable definition.

    Raises:
        ValidationError: On the first malformed variable, chart, or template.
    """
    data = data or {}
    if not isinstance(data, dict):
        raise ValidationError(f"Catalog must be a mapping, got {type(data).__name__}")
    custom = []
    for raw in data.get("variables", []):
        try:
            variable = Variable.from_dict(raw)
        except (KeyError, ValueError) as exc:
            raise ValidationError(f"Malformed variable entry {raw!r}: {exc}") from exc
        custom.append(dataclasses.replace(variable, is_custom=True))
    registry = build_default_registry(custom)

    charts: dict[str, ChartConfiguration] = {}
    if include_builtin_charts:
        charts.update({c.chart_id: c for c in build_default_charts()})
    charts.update(_from_entries(data.get("charts"), ChartConfiguration.from_dict,
                                "chart_id", "chart", check_chart))

    return Catalog(
        registry=registry,
        charts=charts,
        templates=_from_entries(data.get("templates"), ReportTemplate.from_dict, "id", "template",
                                check_template),
        projects=_from_entries(data.get("projects"), ProjectReference.from_dict, "id", "project"),
        partners=_from_entries(data.get("partners"), PartnerReference.from_dict, "id", "partner"),
        default_template_id=data.get("defaultTemplateId"),
        caps=_caps_from(data.get("grid")),
    )


def save_catalog(catalog: Catalog, path: str | Path) -> None:
    """Serialize a Catalog to a YAML file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.dump(catalog.to_dict(), f, default_flow_style=False, sort_keys=False,
                  allow_unicode=True, width=120)


def load_catalog(path: str | Path, include_builtin_charts: bool = True) -> Catalog:
    """Deserialize a Catalog from a YAML file."""
    path = Path(path)
    with open(path) as f:
        data = yaml.safe_load(f)
    return catalog_from_dict(data, include_builtin_charts=include_builtin_charts)
