"""Catalogue schema package - typed models for variables, charts and templates.

Provides the contract between the registry, the calculator and the layout:

- models.py: Core dataclasses (Variable, ChartConfiguration, ReportTemplate, etc.)
- formatting.py: Value formatting functions (number, currency, percentage)
- defaults.py: Built-in variables, stock charts and the fallback template
- loader.py: YAML catalogue serialization/deserialization
"""

from .defaults import (
    FALLBACK_CHART_ID,
    FALLBACK_TEMPLATE_ID,
    build_category_text_variables,
    build_default_charts,
    build_fallback_template,
    builtin_variables,
)
from .formatting import (
    format_currency,
    format_integer,
    format_number,
    format_percentage,
    format_value,
    format_with,
)
from .models import (
    NA,
    UNAVAILABLE,
    ChartCalculationResult,
    ChartConfiguration,
    ChartElement,
    ChartType,
    DataBlock,
    ElementFormat,
    GridSettings,
    ImagePayload,
    KpiPayload,
    PartnerReference,
    ProjectReference,
    ReportTemplate,
    Segment,
    SegmentPayload,
    TablePayload,
    TextPayload,
    ValueType,
    Variable,
    VariableFlags,
    VariableType,
)

__all__ = [
    # Models
    "NA",
    "UNAVAILABLE",
    "ChartCalculationResult",
    "ChartConfiguration",
    "ChartElement",
    "ChartType",
    "DataBlock",
    "ElementFormat",
    "GridSettings",
    "ImagePayload",
    "KpiPayload",
    "PartnerReference",
    "ProjectReference",
    "ReportTemplate",
    "Segment",
    "SegmentPayload",
    "TablePayload",
    "TextPayload",
    "ValueType",
    "Variable",
    "VariableFlags",
    "VariableType",
    # Built-in catalogue
    "FALLBACK_CHART_ID",
    "FALLBACK_TEMPLATE_ID",
    "build_category_text_variables",
    "build_default_charts",
    "build_fallback_template",
    "builtin_variables",
    # Formatting
    "format_currency",
    "format_integer",
    "format_number",
    "format_percentage",
    "format_value",
    "format_with",
]
