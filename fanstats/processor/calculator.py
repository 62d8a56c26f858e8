"""Chart calculator - turn a chart configuration plus a statistics record into a result.

Each chart type has exactly one payload shape and one calculation routine;
dispatch goes through ``_CALCULATORS`` so an unknown tag fails loudly instead
of falling through to a default.  Data problems never raise: a variable
with no value becomes ``UNAVAILABLE`` and is carried into the payload as a
"no data" marker, and ``has_errors`` is set on the result so the caller can
decide whether to banner it.

Composite ``value`` charts are expanded into a KPI and a BAR chart with
:func:`expand_value_chart` before dispatch.  Passing a bare ``value`` chart to
:meth:`ChartCalculator.calculate` is a ``ConfigurationError``.

Usage::

    from fanstats.processor.calculator import ChartCalculator

    calc = ChartCalculator()
    result = calc.calculate(chart, {"female": 180, "male": 220})
    result.payload.segments[0].percentage   # 45.0
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from fanstats.errors import ConfigurationError, ValidationError
from fanstats.processor.formula import (
    evaluate,
    parse,
    referenced_variables,
    resolve_text,
)
from fanstats.processor.registry import VariableRegistry, build_default_registry
from fanstats.schema.models import (
    DEFAULT_ASPECT_RATIO,
    NA,
    UNAVAILABLE,
    ChartCalculationResult,
    ChartConfiguration,
    ChartElement,
    ChartType,
    ImagePayload,
    KpiPayload,
    Segment,
    SegmentPayload,
    TablePayload,
    TextPayload,
    ValueType,
    VariableType,
)

logger = logging.getLogger(__name__)

_LABEL_FIELD = re.compile(r"\{\{([^}]+)\}\}")

DEFAULT_SEGMENT_COLOR = "#cccccc"
UNNAMED_ELEMENT = "Unnamed Element"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def resolve_label(label: str | None, stats: Mapping[str, Any]) -> str:
    """Substitute a ``{{stats.field}}`` placeholder with the field's value.

    Missing fields render as ``N/A`` in place of the placeholder.
    """
    if not label:
        return UNNAMED_ELEMENT
    match = _LABEL_FIELD.search(label)
    if not match:
        return label
    name = match.group(1).strip()
    if name.startswith("stats."):
        name = name[6:]
    value = stats.get(name)
    if value is None:
        return _LABEL_FIELD.sub(NA, label, count=1)
    return str(value)


def _round1(value: float) -> float:
    return round(value, 1)


def _has_table_row(markdown: str) -> bool:
    return any("|" in line for line in markdown.splitlines())


def expand_value_chart(chart: ChartConfiguration) -> tuple[ChartConfiguration, ChartConfiguration]:
    """Split a two-element ``value`` chart into its KPI and BAR halves.

    The KPI shows the first element; the BAR shows both.  Ids are suffixed
    ``-kpi`` and ``-bar`` so both halves can be placed independently.
    """
    if chart.type is not ChartType.VALUE:
        raise ConfigurationError(f"Chart {chart.chart_id!r} is not a value chart")
    if len(chart.elements) != 2:
        raise ConfigurationError(
            f"Value chart {chart.chart_id!r} needs exactly 2 elements, has {len(chart.elements)}"
        )
    kpi = ChartConfiguration(
        chart_id=f"{chart.chart_id}-kpi",
        title=chart.title,
        type=ChartType.KPI,
        elements=chart.elements[:1],
        emoji=chart.emoji,
        icon=chart.icon,
        subtitle=chart.subtitle,
        is_active=chart.is_active,
        order=chart.order,
    )
    bar = ChartConfiguration(
        chart_id=f"{chart.chart_id}-bar",
        title=chart.title,
        type=ChartType.BAR,
        elements=chart.elements,
        emoji=chart.emoji,
        icon=chart.icon,
        subtitle=chart.subtitle,
        is_active=chart.is_active,
        order=chart.order,
        show_total=chart.show_total,
        total_label=chart.total_label,
    )
    return kpi, bar


# ---------------------------------------------------------------------------
# Calculator
# ---------------------------------------------------------------------------

class ChartCalculator:
    """Evaluates chart configurations against one registry snapshot.

    Args:
        registry: Registry used to compute derived variables and to decide
            KPI clamping.  Defaults to the built-in catalogue.  A read-only
            snapshot is taken so concurrent registrations cannot change
            results mid-batch.
    """

    def __init__(self, registry: VariableRegistry | None = None):
        if registry is None:
            registry = build_default_registry()
        self.registry = registry.snapshot()

    # -- public API ---------------------------------------------------------

    def calculate(self, chart: ChartConfiguration, stats: Mapping[str, Any]) -> ChartCalculationResult:
        """Calculate one chart.

        Raises:
            ConfigurationError: For a bare ``value`` chart, or a chart type
                with no calculation routine.
        """
        if chart.type is ChartType.VALUE:
            raise ConfigurationError(
                f"Value chart {chart.chart_id!r} must be expanded before calculation"
            )
        try:
            routine = _CALCULATORS[chart.type]
        except KeyError:
            raise ConfigurationError(f"Unsupported chart type {chart.type!r}") from None
        if not chart.elements:
            raise ConfigurationError(f"Chart {chart.chart_id!r} has no elements")

        payload, has_errors = routine(self, chart, stats)
        if has_errors:
            logger.debug("Chart %r calculated with unavailable data", chart.chart_id)
        return ChartCalculationResult(
            chart_id=chart.chart_id,
            title=chart.title,
            type=chart.type,
            payload=payload,
            subtitle=chart.subtitle,
            emoji=chart.emoji,
            icon=chart.icon,
            has_errors=has_errors,
        )

    def calculate_active_charts(
        self,
        charts: Iterable[ChartConfiguration],
        stats: Mapping[str, Any],
    ) -> list[ChartCalculationResult]:
        """Calculate every active chart, preserving input order.

        ``value`` charts are expanded into their KPI and BAR results in place.
        A misconfigured chart is logged and skipped; its siblings still
        calculate.
        """
        results = []
        for chart in charts:
            if not chart.is_active:
                continue
            try:
                parts = expand_value_chart(chart) if chart.type is ChartType.VALUE else (chart,)
                results.extend([self.calculate(part, stats) for part in parts])
            except ConfigurationError as exc:
                logger.error("Skipping chart %r: %s", chart.chart_id, exc)
        return results

    # -- numeric charts -----------------------------------------------------

    def _evaluate(self, element: ChartElement, stats: Mapping[str, Any]):
        return evaluate(element.formula, stats, registry=self.registry,
                        parameters=element.parameters)

    def _clamps_to_zero(self, element: ChartElement) -> bool:
        """True when every referenced variable is a count and the element is not money/rate."""
        if element.type in (ValueType.CURRENCY, ValueType.PERCENTAGE):
            return False
        try:
            names = referenced_variables(element.formula)
        except ValidationError:
            return False
        if not names:
            return False
        for name in names:
            variable = self.registry.get(name)
            if variable is None or variable.type is not VariableType.COUNT:
                return False
        return True

    def _kpi(self, chart: ChartConfiguration, stats: Mapping[str, Any]):
        element = chart.elements[0]
        value = self._evaluate(element, stats)
        if value is UNAVAILABLE:
            return KpiPayload(value=NA, unavailable=True, value_type=element.type,
                              formatting=element.formatting), True
        if self._clamps_to_zero(element) and value < 0:
            value = 0.0
        return KpiPayload(value=value, value_type=element.type,
                          formatting=element.formatting), False

    def _segments(self, chart: ChartConfiguration, stats: Mapping[str, Any]):
        values = []
        for element in chart.elements:
            value = self._evaluate(element, stats)
            if value is UNAVAILABLE:
                logger.warning("Chart %r: element %r is unavailable (%s)",
                               chart.chart_id, element.label, element.formula)
            values.append(value)

        numeric = [0.0 if v is UNAVAILABLE else v for v in values]
        total = sum(numeric)
        segments = tuple(
            Segment(
                label=resolve_label(element.label, stats),
                value=number,
                percentage=_round1(number / total * 100) if total else 0.0,
                color=element.color or DEFAULT_SEGMENT_COLOR,
                unavailable=raw is UNAVAILABLE,
            )
            for element, raw, number in zip(chart.elements, values, numeric)
        )
        insufficient = total == 0 or all(v is UNAVAILABLE or v == 0 for v in values)
        payload = SegmentPayload(
            segments=segments,
            total=total,
            insufficient_data=insufficient,
            show_total=chart.show_total,
            total_label=chart.total_label,
        )
        return payload, any(s.unavailable for s in segments)

    # -- passthrough charts -------------------------------------------------

    def _text(self, chart: ChartConfiguration, stats: Mapping[str, Any]):
        content = resolve_text(chart.elements[0].formula, stats)
        if content is UNAVAILABLE:
            return TextPayload(content=NA, unavailable=True), True
        return TextPayload(content=content), False

    def _table(self, chart: ChartConfiguration, stats: Mapping[str, Any]):
        markdown = resolve_text(chart.elements[0].formula, stats)
        if markdown is UNAVAILABLE:
            return TablePayload(markdown=NA, unavailable=True), True
        if not _has_table_row(markdown):
            logger.warning("Chart %r: table content has no '|' row", chart.chart_id)
            return TablePayload(markdown=markdown, unavailable=True), True
        return TablePayload(markdown=markdown), False

    def _image(self, chart: ChartConfiguration, stats: Mapping[str, Any]):
        element = chart.elements[0]
        aspect_ratio = chart.aspect_ratio or DEFAULT_ASPECT_RATIO
        if element.formula:
            url = resolve_text(element.formula, stats)
        else:
            url = UNAVAILABLE
        if url is UNAVAILABLE and element.image_url:
            url = element.image_url
        if url is UNAVAILABLE or not url.strip():
            return ImagePayload(url=NA, aspect_ratio=aspect_ratio, unavailable=True), True
        return ImagePayload(url=url.strip(), aspect_ratio=aspect_ratio), False


_CALCULATORS = {
    ChartType.KPI: ChartCalculator._kpi,
    ChartType.BAR: ChartCalculator._segments,
    ChartType.PIE: ChartCalculator._segments,
    ChartType.TEXT: ChartCalculator._text,
    ChartType.TABLE: ChartCalculator._table,
    ChartType.IMAGE: ChartCalculator._image,
}


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------

@dataclass
class ChartCheck:
    """Outcome of :func:`validate_chart_with_stats`."""
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    result: ChartCalculationResult | None = None


def validate_chart_with_stats(
    chart: ChartConfiguration,
    stats: Mapping[str, Any],
    calculator: ChartCalculator | None = None,
) -> ChartCheck:
    """Dry-run a chart against real data and report what would go wrong.

    Errors are configuration problems (arity, unparseable formulas, a bare
    value chart).  Warnings are data problems (unavailable elements,
    insufficient data, an empty KPI).
    """
    calculator = calculator or ChartCalculator()
    check = ChartCheck(is_valid=True)

    if not chart.element_count_ok():
        check.errors.append(
            f"{chart.type.value} chart has {len(chart.elements)} element(s)"
        )
    for element in chart.elements:
        if chart.type is ChartType.IMAGE and element.image_url and not element.formula:
            continue
        try:
            parse(element.formula)
        except ValidationError as exc:
            check.errors.append(f"Invalid formula for {element.label or UNNAMED_ELEMENT!r}: {exc}")
    if check.errors:
        check.is_valid = False
        return check

    parts = expand_value_chart(chart) if chart.type is ChartType.VALUE else (chart,)
    for part in parts:
        result = calculator.calculate(part, stats)
        check.result = check.result or result
        payload = result.payload
        if isinstance(payload, SegmentPayload):
            for segment in payload.segments:
                if segment.unavailable:
                    check.warnings.append(f"Element {segment.label!r} has no data")
            if payload.insufficient_data:
                check.warnings.append("All elements are zero or unavailable")
        elif payload.unavailable:
            check.warnings.append(f"{part.type.value} chart {part.chart_id!r} has no data")
    return check


def calculation_summary(
    charts: Iterable[ChartConfiguration],
    results: Iterable[ChartCalculationResult],
) -> dict:
    """Counts of configured charts, produced results per type, and errors."""
    charts = list(charts)
    results = list(results)
    by_type = Counter(r.type.value for r in results)
    return {
        "totalCharts": len(charts),
        "activeCharts": sum(1 for c in charts if c.is_active),
        "results": len(results),
        "byType": {t.value: by_type[t.value] for t in ChartType if by_type[t.value]},
        "withErrors": [r.chart_id for r in results if r.has_errors],
    }
