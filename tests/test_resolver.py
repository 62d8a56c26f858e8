"""Tests for template resolution."""

import pytest

from fanstats.processor.resolver import ResolutionLevel, TemplateResolver
from fanstats.schema.defaults import FALLBACK_TEMPLATE_ID, build_fallback_template
from fanstats.schema.models import (
    ChartType,
    DataBlock,
    PartnerReference,
    ProjectReference,
    ReportTemplate,
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

def _template(template_id):
    return ReportTemplate(id=template_id, name=template_id.title(),
                          data_blocks=(DataBlock(id="b1", chart_id="total-images"),))


@pytest.fixture
def templates():
    return {t: _template(t) for t in ("project-tpl", "partner-tpl", "default-tpl")}


@pytest.fixture
def partners():
    return {
        "club": PartnerReference(id="club", name="Club", template_id="partner-tpl"),
        "bare": PartnerReference(id="bare", name="Bare Partner"),
        "broken": PartnerReference(id="broken", name="Broken", template_id="gone"),
    }


@pytest.fixture
def projects():
    return {
        "own": ProjectReference(id="own", name="Own Template", template_id="project-tpl",
                                partner_id="club"),
        "inherit": ProjectReference(id="inherit", name="Inherits", partner_id="club"),
        "lonely": ProjectReference(id="lonely", name="No Attachments"),
        "bare-partner": ProjectReference(id="bare-partner", name="Bare", partner_id="bare"),
        "dangling": ProjectReference(id="dangling", name="Dangling", template_id="gone",
                                     partner_id="club"),
        "broken-partner": ProjectReference(id="broken-partner", name="BP", partner_id="broken"),
    }


@pytest.fixture
def resolver(templates, projects, partners):
    return TemplateResolver(templates, projects, partners, default_template_id="default-tpl")


# ---------------------------------------------------------------------------
# Resolution order
# ---------------------------------------------------------------------------

class TestResolve:
    def test_project_level(self, resolver):
        resolved = resolver.resolve("own")
        assert resolved.resolved_from is ResolutionLevel.PROJECT
        assert resolved.template.id == "project-tpl"
        assert resolved.source == "Own Template"
        assert resolved.notice() is None
        assert not resolved.is_fallback

    def test_partner_level(self, resolver):
        resolved = resolver.resolve("inherit")
        assert resolved.resolved_from is ResolutionLevel.PARTNER
        assert resolved.template.id == "partner-tpl"
        assert resolved.source == "Club"
        assert "Club" in resolved.notice()

    def test_default_level(self, resolver):
        resolved = resolver.resolve("lonely")
        assert resolved.resolved_from is ResolutionLevel.DEFAULT
        assert resolved.template.id == "default-tpl"
        assert resolved.is_fallback

    def test_partner_without_template_uses_default(self, resolver):
        assert resolver.resolve("bare-partner").resolved_from is ResolutionLevel.DEFAULT

    def test_hardcoded_when_nothing_configured(self, projects):
        resolver = TemplateResolver({}, projects, {})
        resolved = resolver.resolve("lonely")
        assert resolved.resolved_from is ResolutionLevel.HARDCODED
        assert resolved.template.id == FALLBACK_TEMPLATE_ID
        assert resolved.template.data_blocks[0].chart_id == "total-images"
        assert "fallback" in resolved.notice()

    def test_only_partner_template(self, partners):
        projects = {"p": ProjectReference(id="p", name="P", partner_id="club")}
        resolver = TemplateResolver({"partner-tpl": _template("partner-tpl")}, projects, partners)
        assert resolver.resolve("p").resolved_from is ResolutionLevel.PARTNER

    def test_unknown_project_falls_through(self, resolver):
        assert resolver.resolve("nope").resolved_from is ResolutionLevel.DEFAULT

    def test_dangling_project_template_skipped(self, resolver):
        resolved = resolver.resolve("dangling")
        assert resolved.resolved_from is ResolutionLevel.PARTNER

    def test_dangling_partner_template_skipped(self, resolver):
        assert resolver.resolve("broken-partner").resolved_from is ResolutionLevel.DEFAULT

    def test_dangling_default_uses_hardcoded(self, projects):
        resolver = TemplateResolver({}, projects, {}, default_template_id="gone")
        assert resolver.resolve("lonely").resolved_from is ResolutionLevel.HARDCODED

    def test_never_none(self):
        resolver = TemplateResolver({})
        assert resolver.resolve("anything").template is not None

    def test_injected_fallback(self):
        custom = ReportTemplate(id="mine", name="Mine")
        resolver = TemplateResolver({}, fallback=custom)
        assert resolver.resolve("x").template is custom

    def test_does_not_mutate_inputs(self, resolver, templates):
        before = dict(templates)
        resolver.resolve("own")
        resolver.resolve("lonely")
        assert templates == before

    def test_to_dict(self, resolver):
        d = resolver.resolve("inherit").to_dict()
        assert d["resolvedFrom"] == "partner"
        assert d["template"]["id"] == "partner-tpl"


class TestResolveForPartner:
    def test_partner_template(self, resolver):
        assert resolver.resolve_for_partner("club").template.id == "partner-tpl"

    def test_partner_without_template(self, resolver):
        assert resolver.resolve_for_partner("bare").resolved_from is ResolutionLevel.DEFAULT

    def test_unknown_partner(self):
        assert TemplateResolver({}).resolve_for_partner("x").resolved_from is ResolutionLevel.HARDCODED


class TestFallbackTemplate:
    def test_single_kpi_block(self):
        template = build_fallback_template()
        assert len(template.data_blocks) == 1
        assert template.version

    def test_fallback_chart_is_kpi(self):
        from fanstats.schema.defaults import FALLBACK_CHART_ID, build_default_charts

        chart = {c.chart_id: c for c in build_default_charts()}[FALLBACK_CHART_ID]
        assert chart.type is ChartType.KPI
