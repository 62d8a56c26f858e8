"""Report builder - resolve a template, calculate its charts, and size its blocks.

Three callers share the same pipeline:

- the read-only report: ``build(project_id, stats)``
- the builder (manual editing) view: ``build_editor_view(project_id, stats)``
  plus ``apply_edit`` to recompute after a value changes
- the admin preview: ``build_preview()`` against a synthetic, fully-populated
  statistics record

Recovery is per block: a block whose chart is missing or misconfigured
becomes an error placeholder and its siblings still render.

Usage::

    from fanstats.generator.report_builder import ReportBuilder
    from fanstats.schema.loader import load_catalog

    catalog = load_catalog("catalog.yaml")
    builder = ReportBuilder.from_catalog(catalog)
    report = builder.build("cup-final", {"remoteImages": 120})
    report.notice()     # None, or "Using default template ..."
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from fanstats.errors import ConfigurationError, ValidationError
from fanstats.processor.calculator import ChartCalculator, expand_value_chart
from fanstats.processor.formula import referenced_variables
from fanstats.processor.ingestion import parse_numeric
from fanstats.processor.registry import VariableRegistry
from fanstats.processor.resolver import ResolvedTemplate, TemplateResolver
from fanstats.schema.defaults import FALLBACK_CHART_ID, build_default_charts
from fanstats.schema.models import (
    ChartCalculationResult,
    ChartConfiguration,
    ChartType,
    DataBlock,
    VariableType,
)

from .layout import DEFAULT_CAPS, LayoutCaps, widths_for

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class BlockResult:
    """One rendered cell: a chart result or an error placeholder."""
    block: DataBlock
    result: ChartCalculationResult | None
    widths: dict[str, int]
    error: str | None = None

    @property
    def is_placeholder(self) -> bool:
        return self.result is None

    def to_dict(self) -> dict:
        d = {"blockId": self.block.id, "chartId": self.block.chart_id, "widths": self.widths}
        if self.result is not None:
            d["result"] = self.result.to_dict()
        if self.error:
            d["error"] = self.error
        return d


@dataclass
class ReportResult:
    """Everything a renderer needs for one project report."""
    resolved: ResolvedTemplate
    blocks: list[BlockResult] = field(default_factory=list)

    @property
    def template(self):
        return self.resolved.template

    @property
    def resolved_from(self):
        return self.resolved.resolved_from

    @property
    def source(self) -> str:
        return self.resolved.source

    @property
    def results(self) -> list[ChartCalculationResult]:
        return [b.result for b in self.blocks if b.result is not None]

    @property
    def errors(self) -> list[BlockResult]:
        return [b for b in self.blocks if b.error]

    @property
    def has_errors(self) -> bool:
        return bool(self.errors) or any(r.has_errors for r in self.results)

    def notice(self) -> str | None:
        return self.resolved.notice()

    def to_dict(self) -> dict:
        d = {
            "templateId": self.template.id,
            "templateName": self.template.name,
            "resolvedFrom": self.resolved_from.value,
            "source": self.source,
            "gridSettings": self.template.grid_settings.to_dict(),
            "blocks": [b.to_dict() for b in self.blocks],
        }
        notice = self.notice()
        if notice:
            d["notice"] = notice
        return d


@dataclass
class EditorEntry:
    """One editable cell of the builder view."""
    block: DataBlock
    result: ChartCalculationResult | None
    widths: dict[str, int]
    editable_variables: list[str] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict:
        d = {
            "blockId": self.block.id,
            "chartId": self.block.chart_id,
            "widths": self.widths,
            "editableVariables": list(self.editable_variables),
        }
        if self.result is not None:
            d["result"] = self.result.to_dict()
        if self.error:
            d["error"] = self.error
        return d


@dataclass
class EditorView:
    resolved: ResolvedTemplate
    entries: list[EditorEntry] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "templateId": self.resolved.template.id,
            "resolvedFrom": self.resolved.resolved_from.value,
            "source": self.resolved.source,
            "entries": [e.to_dict() for e in self.entries],
        }


@dataclass
class PreviewEntry:
    """Preview outcome for one chart configuration."""
    chart: ChartConfiguration
    results: list[ChartCalculationResult] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict:
        d = {"chartId": self.chart.chart_id, "results": [r.to_dict() for r in self.results]}
        if self.error:
            d["error"] = self.error
        return d


# ---------------------------------------------------------------------------
# Synthetic statistics
# ---------------------------------------------------------------------------

SAMPLE_IMAGE_URL = "https://example.com/preview/sample.jpg"
SAMPLE_TABLE = "| Item | Value |\n| --- | --- |\n| Sample | 1 |"

_SYNTHETIC_BY_TYPE = {
    VariableType.CURRENCY: 25,
    VariableType.PERCENTAGE: 50,
}


def _sample_text(name: str, label: str) -> str:
    lowered = name.lower()
    if "image" in lowered:
        return SAMPLE_IMAGE_URL
    if "table" in lowered:
        return SAMPLE_TABLE
    return f"Sample {label}"


def synthetic_statistics(registry: VariableRegistry) -> dict[str, Any]:
    """A fully-populated record: every stored numeric variable is non-zero.

    Values are deterministic so previews are stable between runs.  Derived
    variables are left out and computed from their inputs.
    """
    stats: dict[str, Any] = {}
    for index, variable in enumerate(registry.list(derived=False)):
        if variable.type is VariableType.TEXT:
            stats[variable.name] = _sample_text(variable.name, variable.label)
        else:
            stats[variable.name] = _SYNTHETIC_BY_TYPE.get(variable.type, 10 * (index + 1))
    return stats


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------

class ReportBuilder:
    """Runs resolution, calculation and layout for one catalogue.

    Args:
        registry: Variable registry; a snapshot is held for calculations.
        charts: Chart configurations by id (or an iterable of them).  The
            built-in fallback KPI chart is added when missing so the
            fallback template always renders.
        resolver: Template resolver over the same catalogue.
        caps: Per-breakpoint unit caps.
    """

    def __init__(
        self,
        registry: VariableRegistry,
        charts: Mapping[str, ChartConfiguration] | Iterable[ChartConfiguration],
        resolver: TemplateResolver,
        caps: LayoutCaps = DEFAULT_CAPS,
    ):
        if not isinstance(charts, Mapping):
            charts = {c.chart_id: c for c in charts}
        charts = dict(charts)
        if FALLBACK_CHART_ID not in charts:
            fallback = {c.chart_id: c for c in build_default_charts()}[FALLBACK_CHART_ID]
            charts[FALLBACK_CHART_ID] = fallback
        self.registry = registry
        self.charts = charts
        self.resolver = resolver
        self.caps = caps
        self.calculator = ChartCalculator(registry)

    @classmethod
    def from_catalog(cls, catalog, caps: LayoutCaps | None = None) -> "ReportBuilder":
        if caps is None:
            caps = catalog.caps
        resolver = TemplateResolver(
            catalog.templates,
            catalog.projects,
            catalog.partners,
            catalog.default_template_id,
        )
        return cls(catalog.registry, catalog.charts, resolver, caps)

    # -- report -------------------------------------------------------------

    def build(self, project_id: str, stats: Mapping[str, Any]) -> ReportResult:
        """Build the read-only report for a project."""
        resolved = self.resolver.resolve(project_id)
        logger.debug("Project %r uses template %r (%s)", project_id,
                     resolved.template.id, resolved.resolved_from.value)
        report = ReportResult(resolved)
        grid = resolved.template.grid_settings
        for block in resolved.template.ordered_blocks():
            report.blocks.extend(self._render_block(block, stats, grid))
        return report

    def _render_block(self, block: DataBlock, stats, grid) -> list[BlockResult]:
        chart = self.charts.get(block.chart_id)
        if chart is None:
            logger.warning("Block %r references unknown chart %r", block.id, block.chart_id)
            return [BlockResult(block, None, widths_for(block, None, grid, self.caps),
                                error=f"Chart {block.chart_id!r} not found")]
        if not chart.is_active:
            logger.debug("Skipping inactive chart %r in block %r", chart.chart_id, block.id)
            return []

        parts = [chart]
        try:
            if chart.type is ChartType.VALUE:
                parts = list(expand_value_chart(chart))
            return [
                BlockResult(block, self.calculator.calculate(part, stats),
                            widths_for(block, part, grid, self.caps))
                for part in parts
            ]
        except ConfigurationError as exc:
            logger.warning("Block %r: %s", block.id, exc)
            return [BlockResult(block, None, widths_for(block, chart, grid, self.caps),
                                error=str(exc))]

    # -- builder view -------------------------------------------------------

    def editable_variables(self, chart: ChartConfiguration) -> list[str]:
        """Manually editable inputs behind a chart, derived variables unfolded."""
        out: dict[str, None] = {}
        seen: set[str] = set()

        def visit(formula: str):
            try:
                names = referenced_variables(formula)
            except ValidationError:
                return
            for name in names:
                if name in seen:
                    continue
                seen.add(name)
                variable = self.registry.get(name)
                if variable is None:
                    continue
                if variable.derived:
                    visit(variable.formula)
                elif variable.flags.editable_in_manual:
                    out.setdefault(name, None)

        for element in chart.elements:
            if element.formula:
                visit(element.formula)
        return list(out)

    def build_editor_view(self, project_id: str, stats: Mapping[str, Any]) -> EditorView:
        """Builder view: like the report, but value charts are not editable and are left out."""
        resolved = self.resolver.resolve(project_id)
        view = EditorView(resolved)
        grid = resolved.template.grid_settings
        for block in resolved.template.ordered_blocks():
            chart = self.charts.get(block.chart_id)
            if chart is None:
                view.entries.append(EditorEntry(
                    block, None, widths_for(block, None, grid, self.caps),
                    error=f"Chart {block.chart_id!r} not found",
                ))
                continue
            if chart.type is ChartType.VALUE:
                logger.debug("Editor view skips value chart %r", chart.chart_id)
                continue
            if not chart.is_active:
                continue
            widths = widths_for(block, chart, grid, self.caps)
            try:
                result = self.calculator.calculate(chart, stats)
            except ConfigurationError as exc:
                view.entries.append(EditorEntry(block, None, widths, error=str(exc)))
                continue
            view.entries.append(EditorEntry(block, result, widths,
                                            self.editable_variables(chart)))
        return view

    def apply_edit(self, stats: Mapping[str, Any], name: str, value: Any) -> dict[str, Any]:
        """Return a copy of ``stats`` with one manual edit applied.

        Raises:
            VariableNotFound: If ``name`` is not registered.
            ValidationError: If the variable is derived, not manually
                editable, or the value is not a number for a numeric field.
        """
        variable = self.registry.resolve(name)
        if variable.derived:
            raise ValidationError(f"{variable.name!r} is derived and cannot be edited",
                                  token=variable.name)
        if not variable.flags.editable_in_manual:
            raise ValidationError(f"{variable.name!r} is not editable in manual mode",
                                  token=variable.name)
        if variable.is_numeric:
            number = parse_numeric(value)
            if number != number:
                raise ValidationError(f"{value!r} is not a number for {variable.name!r}",
                                      token=str(value))
            value = int(number) if number.is_integer() else number
        else:
            value = "" if value is None else str(value)
        updated = dict(stats)
        updated[variable.name] = value
        return updated

    # -- admin preview ------------------------------------------------------

    def build_preview(self, charts: Iterable[ChartConfiguration] | None = None) -> list[PreviewEntry]:
        """Calculate every chart (active or not) against synthetic statistics."""
        if charts is None:
            charts = sorted(self.charts.values(), key=lambda c: c.order)
        stats = synthetic_statistics(self.registry)
        entries = []
        for chart in charts:
            entry = PreviewEntry(chart)
            try:
                parts = expand_value_chart(chart) if chart.type is ChartType.VALUE else (chart,)
                entry.results = [self.calculator.calculate(part, stats) for part in parts]
            except ConfigurationError as exc:
                entry.error = str(exc)
            entries.append(entry)
        return entries
