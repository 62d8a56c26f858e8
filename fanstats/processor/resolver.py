"""Template resolver - pick the report template for a project or partner.

Resolution order, first match wins:

1. the template attached to the project,
2. the template attached to the project's partner,
3. the global default template,
4. the built-in fallback template (one KPI block).

A level whose template id points at nothing is skipped with a warning and
resolution continues downward, so ``resolve`` always returns a template.
The level that answered is reported on the result; callers surface
:meth:`ResolvedTemplate.notice` when it is not the project's own template.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

from fanstats.schema.defaults import build_fallback_template
from fanstats.schema.models import PartnerReference, ProjectReference, ReportTemplate

logger = logging.getLogger(__name__)

SYSTEM_DEFAULT_SOURCE = "system-default"
HARDCODED_SOURCE = "built-in fallback"


class ResolutionLevel(Enum):
    PROJECT = "project"
    PARTNER = "partner"
    DEFAULT = "default"
    HARDCODED = "hardcoded"


@dataclass(frozen=True)
class ResolvedTemplate:
    """A template plus the level of the hierarchy that supplied it."""
    template: ReportTemplate
    resolved_from: ResolutionLevel
    source: str                          # Project / partner name, or a system label

    @property
    def is_fallback(self) -> bool:
        return self.resolved_from in (ResolutionLevel.DEFAULT, ResolutionLevel.HARDCODED)

    def notice(self) -> str | None:
        """Message for the "using fallback template" banner, if one is due."""
        if self.resolved_from is ResolutionLevel.PROJECT:
            return None
        if self.resolved_from is ResolutionLevel.PARTNER:
            return f"Using template {self.template.name!r} inherited from partner {self.source!r}"
        if self.resolved_from is ResolutionLevel.DEFAULT:
            return f"Using default template {self.template.name!r}"
        return "Using fallback template: no report template is configured"

    def to_dict(self) -> dict:
        return {
            "template": self.template.to_dict(),
            "resolvedFrom": self.resolved_from.value,
            "source": self.source,
        }


class TemplateResolver:
    """Read-only lookup over already-loaded templates, projects and partners.

    Args:
        templates: Template id to template.
        projects: Project id to project reference.
        partners: Partner id to partner reference.
        default_template_id: Id of the global default template, if any.
        fallback: Terminal template; defaults to the built-in one.
    """

    def __init__(
        self,
        templates: Mapping[str, ReportTemplate],
        projects: Mapping[str, ProjectReference] | None = None,
        partners: Mapping[str, PartnerReference] | None = None,
        default_template_id: str | None = None,
        fallback: ReportTemplate | None = None,
    ):
        self.templates = templates
        self.projects = projects or {}
        self.partners = partners or {}
        self.default_template_id = default_template_id
        self.fallback = fallback if fallback is not None else build_fallback_template()

    def _lookup(self, template_id: str | None, owner: str) -> ReportTemplate | None:
        if not template_id:
            return None
        template = self.templates.get(template_id)
        if template is None:
            logger.warning("%s references missing template %r; falling through",
                           owner, template_id)
        return template

    def resolve(self, project_id: str) -> ResolvedTemplate:
        """Resolve the template for a project.  Never returns ``None``."""
        project = self.projects.get(project_id)
        if project is None:
            logger.warning("Unknown project %r; resolving without attachments", project_id)
        else:
            template = self._lookup(project.template_id, f"Project {project.id!r}")
            if template is not None:
                return ResolvedTemplate(template, ResolutionLevel.PROJECT, project.name)
            if project.partner_id:
                partner = self.partners.get(project.partner_id)
                if partner is None:
                    logger.warning("Project %r references missing partner %r",
                                   project.id, project.partner_id)
                else:
                    resolved = self._from_partner(partner)
                    if resolved is not None:
                        return resolved
        return self._default()

    def resolve_for_partner(self, partner_id: str) -> ResolvedTemplate:
        """Resolve the template for a partner's own report page."""
        partner = self.partners.get(partner_id)
        if partner is None:
            logger.warning("Unknown partner %r; resolving without attachments", partner_id)
        else:
            resolved = self._from_partner(partner)
            if resolved is not None:
                return resolved
        return self._default()

    def _from_partner(self, partner: PartnerReference) -> ResolvedTemplate | None:
        template = self._lookup(partner.template_id, f"Partner {partner.id!r}")
        if template is None:
            return None
        return ResolvedTemplate(template, ResolutionLevel.PARTNER, partner.name)

    def _default(self) -> ResolvedTemplate:
        template = self._lookup(self.default_template_id, "Default template setting")
        if template is not None:
            return ResolvedTemplate(template, ResolutionLevel.DEFAULT, SYSTEM_DEFAULT_SOURCE)
        logger.debug("No template configured; using built-in fallback %s v%s",
                     self.fallback.id, self.fallback.version)
        return ResolvedTemplate(self.fallback, ResolutionLevel.HARDCODED, HARDCODED_SOURCE)
