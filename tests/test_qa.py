"""Tests for the catalogue QA validator."""

import pytest

from fanstats.processor.registry import build_default_registry
from fanstats.qa.validator import CatalogValidator, Issue, QAResult, validate_catalog
from fanstats.schema.defaults import build_default_charts
from fanstats.schema.loader import catalog_from_dict
from fanstats.schema.models import (
    ChartConfiguration,
    ChartElement,
    ChartType,
    DataBlock,
    GridSettings,
    ReportTemplate,
    Variable,
    VariableType,
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

def _chart(chart_id, chart_type, *formulas, **kw):
    return ChartConfiguration(chart_id=chart_id, title=chart_id, type=chart_type,
                              elements=tuple(ChartElement(f) for f in formulas), **kw)


def _categories(result):
    return [i.category for i in result.issues]


@pytest.fixture
def validator():
    return CatalogValidator(build_default_registry())


# ---------------------------------------------------------------------------
# Result model
# ---------------------------------------------------------------------------

class TestQAResult:
    def test_empty_passes(self):
        result = QAResult()
        assert result.passed
        assert result.summary() == "QA PASS: 0 error(s), 0 warning(s)"

    def test_counts(self):
        result = QAResult(issues=[
            Issue("error", "chart", "a", "", "arity", "bad"),
            Issue("warning", "chart", "b", "element 1", "variable_type", "meh"),
        ])
        assert not result.passed
        assert result.error_count == 1
        assert result.warning_count == 1
        assert "[ERROR] chart a: bad" in result.report()
        assert "[WARNING] chart b / element 1: meh" in result.report()

    def test_to_dict(self):
        result = QAResult(issues=[Issue("error", "chart", "a", "", "arity", "bad")])
        d = result.to_dict()
        assert d["passed"] is False
        assert d["issues"][0]["category"] == "arity"


# ---------------------------------------------------------------------------
# Chart checks
# ---------------------------------------------------------------------------

class TestChartChecks:
    def test_default_catalog_passes(self, validator):
        result = validator.validate(build_default_charts())
        assert result.passed, result.report()
        assert result.warning_count == 0, result.report()

    def test_arity(self, validator):
        result = validator.validate([_chart("p", ChartType.PIE, "stats.female")])
        assert "arity" in _categories(result)
        assert not result.passed

    def test_formula_error(self, validator):
        result = validator.validate([_chart("k", ChartType.KPI, "stats.female +")])
        assert _categories(result) == ["formula"]

    def test_unknown_variable(self, validator):
        result = validator.validate([_chart("k", ChartType.KPI, "stats.aliens")])
        assert _categories(result) == ["unknown_variable"]
        assert result.issues[0].detail == "element 1"

    def test_duplicate_chart_ids(self, validator):
        charts = [_chart("k", ChartType.KPI, "stats.female"),
                  _chart("k", ChartType.KPI, "stats.male")]
        assert "duplicate_chart" in _categories(validator.validate(charts))

    def test_text_chart_with_numeric_variable(self, validator):
        result = validator.validate([_chart("t", ChartType.TEXT, "stats.female")])
        assert result.passed
        assert _categories(result) == ["variable_type"]

    def test_kpi_with_text_variable(self, validator):
        result = validator.validate([_chart("k", ChartType.KPI, "stats.reportText1")])
        assert result.warnings[0].category == "variable_type"

    def test_unsupported_aspect_ratio(self, validator):
        chart = _chart("i", ChartType.IMAGE, "stats.reportImage1", aspect_ratio="4:3")
        assert _categories(validator.validate([chart])) == ["aspect_ratio"]


# ---------------------------------------------------------------------------
# Template checks
# ---------------------------------------------------------------------------

class TestTemplateChecks:
    def test_unknown_chart(self, validator):
        template = ReportTemplate(id="t", name="T",
                                  data_blocks=(DataBlock(id="b1", chart_id="nope"),))
        result = validator.validate(build_default_charts(), [template])
        assert _categories(result) == ["unknown_chart"]
        assert result.issues[0].detail == "block b1"

    def test_grid_bounds(self, validator):
        template = ReportTemplate(id="t", name="T",
                                  grid_settings=GridSettings(desktop_units=9))
        assert "grid" in _categories(validator.validate([], [template]))

    def test_duplicate_blocks(self, validator):
        template = ReportTemplate(id="t", name="T", data_blocks=(
            DataBlock(id="b", chart_id="total-images"),
            DataBlock(id="b", chart_id="total-images"),
        ))
        result = validator.validate(build_default_charts(), [template])
        assert "duplicate_block" in _categories(result)

    def test_width_clamp_warning(self, validator):
        template = ReportTemplate(id="t", name="T", data_blocks=(
            DataBlock(id="b", chart_id="merchandise", width=4),))
        result = validator.validate(build_default_charts(), [template])
        assert _categories(result) == ["width_clamped"]
        assert result.passed

    def test_inactive_chart_warning(self, validator):
        chart = _chart("off", ChartType.KPI, "stats.female", is_active=False)
        template = ReportTemplate(id="t", name="T", data_blocks=(DataBlock(id="b", chart_id="off"),))
        assert _categories(validator.validate([chart], [template])) == ["inactive_chart"]

    def test_value_chart_fits_block(self, validator):
        template = ReportTemplate(id="t", name="T", data_blocks=(
            DataBlock(id="b", chart_id="merch-value"),))
        result = validator.validate(build_default_charts(), [template])
        assert "capacity" not in _categories(result)


# ---------------------------------------------------------------------------
# Registry checks / convenience
# ---------------------------------------------------------------------------

class TestRegistryChecks:
    def test_derived_with_unknown_input(self):
        registry = build_default_registry([
            Variable(name="ghostRate", label="Ghost", type=VariableType.PERCENTAGE,
                     category="X", derived=True, formula="percentage(ghosts, remoteImages)",
                     is_custom=True),
        ])
        result = CatalogValidator(registry).validate([])
        assert _categories(result) == ["unknown_variable"]
        assert result.issues[0].kind == "variable"

    def test_validate_catalog(self):
        catalog = catalog_from_dict({
            "templates": [{"id": "t", "dataBlocks": [{"id": "b", "chartId": "missing"}]}],
        })
        result = validate_catalog(catalog)
        assert not result.passed
