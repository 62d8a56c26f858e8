"""QA validator - inspects a chart catalogue before it reaches a report.

Validates that chart configurations and report templates honour their
contracts: element counts per chart type, formulas that parse and only
reference registered variables, templates whose blocks point at existing
charts and whose grid settings stay inside the breakpoint caps.

Usage::

    from fanstats.qa.validator import CatalogValidator

    validator = CatalogValidator(registry)
    result = validator.validate(charts, templates)
    assert result.passed, result.report()
"""

from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from fanstats.errors import ValidationError
from fanstats.generator.layout import (
    BLOCK_CAPACITY,
    CONTENT_WIDTH_RANGE,
    validate_block_capacity,
    width_for,
)
from fanstats.processor.calculator import expand_value_chart
from fanstats.processor.formula import parse, referenced_variables
from fanstats.processor.registry import VariableRegistry
from fanstats.schema.models import (
    ASPECT_RATIOS,
    ELEMENT_ARITY,
    GRID_UNIT_CAPS,
    ChartConfiguration,
    ChartType,
    ReportTemplate,
    VariableType,
)

_PASSTHROUGH_TYPES = (ChartType.TEXT, ChartType.TABLE, ChartType.IMAGE)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class Issue:
    """A single QA issue found during validation."""
    severity: str       # "error" or "warning"
    kind: str           # "chart", "template" or "variable"
    subject: str        # Chart id, template id or variable name
    detail: str         # "" for subject-level issues, e.g. "element 2", "block b1"
    category: str       # e.g. "arity", "formula", "unknown_chart"
    message: str

    def __str__(self) -> str:
        loc = f"{self.kind} {self.subject}"
        if self.detail:
            loc += f" / {self.detail}"
        return f"[{self.severity.upper()}] {loc}: {self.message}"

    def to_dict(self) -> dict:
        return {
            "severity": self.severity,
            "kind": self.kind,
            "subject": self.subject,
            "detail": self.detail,
            "category": self.category,
            "message": self.message,
        }


@dataclass
class QAResult:
    """Aggregated result of QA validation."""
    issues: list[Issue] = field(default_factory=list)

    @property
    def errors(self) -> list[Issue]:
        return [i for i in self.issues if i.severity == "error"]

    @property
    def warnings(self) -> list[Issue]:
        return [i for i in self.issues if i.severity == "warning"]

    @property
    def passed(self) -> bool:
        return len(self.errors) == 0

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def warning_count(self) -> int:
        return len(self.warnings)

    def summary(self) -> str:
        """One-line summary string."""
        status = "PASS" if self.passed else "FAIL"
        return (
            f"QA {status}: {self.error_count} error(s), "
            f"{self.warning_count} warning(s)"
        )

    def report(self) -> str:
        """Multi-line report of all issues."""
        lines = [self.summary()]
        for issue in self.issues:
            lines.append(f"  {issue}")
        return "\n".join(lines)

    def to_dict(self) -> dict:
        return {
            "passed": self.passed,
            "summary": self.summary(),
            "issues": [i.to_dict() for i in self.issues],
        }


# ---------------------------------------------------------------------------
# CatalogValidator
# ---------------------------------------------------------------------------

class CatalogValidator:
    """Validates chart configurations and report templates against a registry.

    Parameters
    ----------
    registry : VariableRegistry
        The variables formulas are allowed to reference.
    """

    def __init__(self, registry: VariableRegistry) -> None:
        self.registry = registry

    def validate(self, charts: Iterable[ChartConfiguration],
                 templates: Iterable[ReportTemplate] = ()) -> QAResult:
        """Run all checks.

        ``charts`` may contain duplicates (they are reported); the last
        definition of an id is the one templates are checked against.
        """
        charts = list(charts.values()) if isinstance(charts, Mapping) else list(charts)
        if isinstance(templates, Mapping):
            templates = templates.values()
        result = QAResult()

        self._check_registry(result)
        self._check_duplicate_charts(charts, result)
        for chart in charts:
            self._check_chart(chart, result)

        by_id = {c.chart_id: c for c in charts}
        for template in templates:
            self._check_template(template, by_id, result)
        return result

    def _add(self, result: QAResult, severity: str, kind: str, subject: str,
             detail: str, category: str, message: str) -> None:
        result.issues.append(Issue(severity, kind, subject, detail, category, message))

    # ------------------------------------------------------------------
    # Registry checks
    # ------------------------------------------------------------------

    def _check_registry(self, result: QAResult) -> None:
        """Derived variables must only reference registered variables."""
        for variable in self.registry.list(derived=True):
            for name in referenced_variables(variable.formula):
                if name not in self.registry:
                    self._add(result, "error", "variable", variable.name, "",
                              "unknown_variable",
                              f"Derived formula references unknown variable {name!r}")

    # ------------------------------------------------------------------
    # Chart checks
    # ------------------------------------------------------------------

    def _check_duplicate_charts(self, charts: list[ChartConfiguration],
                                result: QAResult) -> None:
        counts = Counter(c.chart_id for c in charts)
        for chart_id, n in counts.items():
            if n > 1:
                self._add(result, "error", "chart", chart_id, "", "duplicate_chart",
                          f"Chart id defined {n} times")

    def _check_chart(self, chart: ChartConfiguration, result: QAResult) -> None:
        if not chart.element_count_ok():
            lo, hi = ELEMENT_ARITY[chart.type]
            expected = str(lo) if lo == hi else (f"{lo}+" if hi is None else f"{lo}-{hi}")
            self._add(result, "error", "chart", chart.chart_id, "", "arity",
                      f"{chart.type.value} chart needs {expected} element(s), "
                      f"has {len(chart.elements)}")

        if chart.type is ChartType.IMAGE and chart.aspect_ratio \
                and chart.aspect_ratio not in ASPECT_RATIOS:
            self._add(result, "warning", "chart", chart.chart_id, "", "aspect_ratio",
                      f"Unsupported aspect ratio {chart.aspect_ratio!r}; "
                      f"expected one of {', '.join(ASPECT_RATIOS)}")

        for index, element in enumerate(chart.elements, start=1):
            self._check_element(chart, index, element, result)

    def _check_element(self, chart, index, element, result: QAResult) -> None:
        detail = f"element {index}"
        if chart.type is ChartType.IMAGE and element.image_url and not element.formula:
            return
        try:
            expr = parse(element.formula)
        except ValidationError as exc:
            self._add(result, "error", "chart", chart.chart_id, detail, "formula",
                      f"Invalid formula {element.formula!r}: {exc}")
            return

        passthrough = chart.type in _PASSTHROUGH_TYPES
        for name in referenced_variables(expr):
            variable = self.registry.get(name)
            if variable is None:
                self._add(result, "error", "chart", chart.chart_id, detail,
                          "unknown_variable", f"Unknown variable {name!r}")
                continue
            is_text = variable.type is VariableType.TEXT
            if passthrough and not is_text:
                self._add(result, "warning", "chart", chart.chart_id, detail,
                          "variable_type",
                          f"{chart.type.value} element uses non-text variable {name!r}")
            elif not passthrough and is_text:
                self._add(result, "warning", "chart", chart.chart_id, detail,
                          "variable_type",
                          f"{chart.type.value} element uses text variable {name!r}; "
                          f"it will always be unavailable")

    # ------------------------------------------------------------------
    # Template checks
    # ------------------------------------------------------------------

    def _check_template(self, template: ReportTemplate,
                        charts: dict[str, ChartConfiguration],
                        result: QAResult) -> None:
        grid = template.grid_settings
        for name, units in (("desktop", grid.desktop_units),
                            ("tablet", grid.tablet_units),
                            ("mobile", grid.mobile_units)):
            cap = GRID_UNIT_CAPS[name]
            if not isinstance(units, int) or not 1 <= units <= cap:
                self._add(result, "error", "template", template.id, "", "grid",
                          f"{name}Units must be in [1, {cap}], got {units!r}")

        for block_id, n in Counter(b.id for b in template.data_blocks).items():
            if n > 1:
                self._add(result, "error", "template", template.id, f"block {block_id}",
                          "duplicate_block", f"Block id used {n} times")

        for block in template.ordered_blocks():
            detail = f"block {block.id}"
            chart = charts.get(block.chart_id)
            if chart is None:
                self._add(result, "error", "template", template.id, detail,
                          "unknown_chart", f"References unknown chart {block.chart_id!r}")
                continue
            if not chart.is_active:
                self._add(result, "warning", "template", template.id, detail,
                          "inactive_chart", f"Chart {chart.chart_id!r} is inactive and will not render")
            lo, hi = CONTENT_WIDTH_RANGE
            if block.width is not None and chart.type is not ChartType.TABLE \
                    and not lo <= block.width <= hi:
                self._add(result, "warning", "template", template.id, detail,
                          "width_clamped",
                          f"Width {block.width} will be clamped to [{lo}, {hi}]")
            if chart.type is ChartType.VALUE and chart.element_count_ok():
                parts = expand_value_chart(chart)
                widths = [width_for(block, part, grid_settings=grid) for part in parts]
                check = validate_block_capacity(widths, BLOCK_CAPACITY)
                if not check.valid:
                    self._add(result, "warning", "template", template.id, detail,
                              "capacity", check.error)


# ---------------------------------------------------------------------------
# Convenience function
# ---------------------------------------------------------------------------

def validate_catalog(catalog) -> QAResult:
    """One-shot convenience: validate a loaded Catalog."""
    return CatalogValidator(catalog.registry).validate(
        catalog.charts.values(), catalog.templates.values())
