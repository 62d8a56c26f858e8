"""Calculation core: registry, formulas, charts, template resolution, ingestion."""

from .calculator import (
    ChartCalculator,
    calculation_summary,
    expand_value_chart,
    validate_chart_with_stats,
)
from .formula import evaluate, parse, referenced_variables, resolve_text, validate_formula
from .ingestion import (
    clean_columns,
    detect_encoding,
    load_statistics,
    normalize_record,
    parse_numeric,
    read_csv_auto,
    read_statistics_table,
)
from .registry import RegistrySnapshot, VariableRegistry, build_default_registry
from .resolver import ResolutionLevel, ResolvedTemplate, TemplateResolver
