"""CLI entry point for fanstats.

Orchestrates the full pipeline: catalogue loading, statistics ingestion,
template resolution, chart calculation and layout, and catalogue QA.

Usage::

    # Build the report for one project (JSON on stdout)
    fanstats report \\
        --catalog catalog.yaml \\
        --stats data/stats.csv \\
        --project cup-final

    # The builder (editing) view, rendered as text
    fanstats report --catalog catalog.yaml --stats stats.yaml \\
        --project cup-final --editor --format text

    # Preview every chart against synthetic statistics
    fanstats preview --catalog catalog.yaml

    # Validate a catalogue (exit code 1 on errors)
    fanstats validate --catalog catalog.yaml

    # Inspect variables, charts and template resolution
    fanstats inspect --catalog catalog.yaml --variables --project cup-final
"""

import argparse
import json
import logging
import sys
from pathlib import Path

import yaml

from fanstats.errors import FanstatsError
from fanstats.generator.report_builder import ReportBuilder
from fanstats.processor.ingestion import load_statistics
from fanstats.qa.validator import validate_catalog
from fanstats.schema.formatting import format_value
from fanstats.schema.loader import catalog_from_dict, load_catalog
from fanstats.schema.models import (
    NA,
    ImagePayload,
    KpiPayload,
    SegmentPayload,
    TablePayload,
    TextPayload,
)


# ---------------------------------------------------------------------------
# Catalogue loading
# ---------------------------------------------------------------------------

def _load_catalog(args):
    """Load a Catalog from --catalog, or the built-in catalogue."""
    if getattr(args, "catalog", None):
        path = Path(args.catalog)
        if not path.exists():
            _error(f"Catalog file not found: {path}")
        try:
            return load_catalog(path)
        except (FanstatsError, yaml.YAMLError) as exc:
            _error(f"Invalid catalog {path}: {exc}")
    return catalog_from_dict(None)


def _load_stats(args, catalog):
    path = Path(args.stats)
    if not path.exists():
        _error(f"Statistics file not found: {path}")
    _info(f"Ingesting statistics from {path}")
    try:
        return load_statistics(path, args.project, catalog.registry)
    except FanstatsError as exc:
        _error(str(exc))
    except (yaml.YAMLError, ValueError, UnicodeDecodeError) as exc:
        # json.JSONDecodeError and pandas' ParserError are ValueErrors
        _error(f"Invalid statistics file {path}: {exc}")


# ---------------------------------------------------------------------------
# Text rendering
# ---------------------------------------------------------------------------

def _render_result(result) -> list[str]:
    """Plain-text lines for one ChartCalculationResult."""
    title = f"{result.emoji} {result.title}" if result.emoji else result.title
    lines = [f"{title} [{result.type.value}]"]
    payload = result.payload
    if isinstance(payload, KpiPayload):
        lines.append(f"    {format_value(payload.value, payload.value_type, payload.formatting)}")
    elif isinstance(payload, SegmentPayload):
        if payload.insufficient_data:
            lines.append("    (insufficient data)")
        for seg in payload.segments:
            value = NA if seg.unavailable else format_value(seg.value)
            lines.append(f"    {seg.label}: {value} ({seg.percentage:.1f}%)")
        if payload.show_total:
            lines.append(f"    {payload.total_label or 'Total'}: {format_value(payload.total)}")
    elif isinstance(payload, TextPayload):
        lines.append(f"    {payload.content}")
    elif isinstance(payload, TablePayload):
        lines.extend(f"    {row}" for row in payload.markdown.splitlines())
    elif isinstance(payload, ImagePayload):
        lines.append(f"    {payload.url} ({payload.aspect_ratio})")
    return lines


def _emit(data, args, lines):
    if args.format == "json":
        print(json.dumps(data, indent=2, ensure_ascii=False))
    else:
        print("\n".join(lines))


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_report(args):
    """Build a project report (or its builder view)."""
    catalog = _load_catalog(args)
    stats = _load_stats(args, catalog)
    builder = ReportBuilder.from_catalog(catalog)

    if args.editor:
        view = builder.build_editor_view(args.project, stats)
        resolved = view.resolved
        lines = []
        for entry in view.entries:
            if entry.result is None:
                lines.append(f"{entry.block.id}: ERROR {entry.error}")
                continue
            lines.extend(_render_result(entry.result))
            if entry.editable_variables:
                lines.append(f"    edit: {', '.join(entry.editable_variables)}")
        data = view.to_dict()
    else:
        report = builder.build(args.project, stats)
        resolved = report.resolved
        lines = []
        for block in report.blocks:
            if block.result is None:
                lines.append(f"{block.block.id}: ERROR {block.error}")
            else:
                lines.extend(_render_result(block.result))
        data = report.to_dict()
        for block in report.errors:
            _warn(f"Block {block.block.id}: {block.error}")

    _info(f"Template: {resolved.template.name} (from {resolved.resolved_from.value}: "
          f"{resolved.source})")
    notice = resolved.notice()
    if notice:
        _warn(notice)
    _emit(data, args, lines)


def cmd_preview(args):
    """Calculate every chart against synthetic statistics."""
    catalog = _load_catalog(args)
    builder = ReportBuilder.from_catalog(catalog)
    entries = builder.build_preview()

    lines = []
    failed = 0
    for entry in entries:
        if entry.error:
            failed += 1
            lines.append(f"{entry.chart.chart_id}: ERROR {entry.error}")
            continue
        for result in entry.results:
            lines.extend(_render_result(result))
    _info(f"Previewed {len(entries)} chart(s), {failed} failed")
    _emit([e.to_dict() for e in entries], args, lines)


def cmd_validate(args):
    """Validate a catalogue's charts and templates."""
    catalog = _load_catalog(args)
    _info(f"Validating {len(catalog.charts)} chart(s), {len(catalog.templates)} template(s)")
    qa_result = validate_catalog(catalog)

    if args.format == "json":
        print(json.dumps(qa_result.to_dict(), indent=2, ensure_ascii=False))
    else:
        print(qa_result.report())
    sys.exit(0 if qa_result.passed else 1)


def cmd_inspect(args):
    """Show catalogue information."""
    catalog = _load_catalog(args)
    registry = catalog.registry

    print(f"Variables:   {len(registry)} ({len(registry.list(derived=True))} derived, "
          f"{len(registry.list(custom=True))} custom)")
    print(f"Charts:      {len(catalog.charts)}")
    print(f"Templates:   {len(catalog.templates)}")
    print(f"Projects:    {len(catalog.projects)}")
    print(f"Partners:    {len(catalog.partners)}")
    print(f"Default:     {catalog.default_template_id or '(none)'}")

    if args.variables:
        print()
        for category in registry.categories():
            print(f"  {category}")
            for v in registry.list(category=category):
                derived = f" = {v.formula}" if v.derived else ""
                print(f"       {v.name} ({v.type.value}){derived}")

    if args.charts:
        print()
        for chart in sorted(catalog.charts.values(), key=lambda c: c.order):
            active = "" if chart.is_active else " (inactive)"
            print(f"  [{chart.order:2d}] {chart.chart_id}"
                  f" - {chart.type.value}{active}"
                  f" - {len(chart.elements)} element(s)")

    if args.project:
        builder = ReportBuilder.from_catalog(catalog)
        resolved = builder.resolver.resolve(args.project)
        print()
        print(f"Project {args.project}: template {resolved.template.id!r}"
              f" from {resolved.resolved_from.value} ({resolved.source})")
        for block in resolved.template.ordered_blocks():
            print(f"  {block.id} -> {block.chart_id}")


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------

def _info(msg):
    print(f"  {msg}", file=sys.stderr)


def _warn(msg):
    print(f"  WARNING: {msg}", file=sys.stderr)


def _error(msg):
    print(f"  ERROR: {msg}", file=sys.stderr)
    sys.exit(1)


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------

def build_parser():
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="fanstats",
        description="Calculate fan engagement charts and reports from event statistics.",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        default=False,
        help="Enable debug logging.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # ---- report ----
    rep = subparsers.add_parser(
        "report",
        help="Build the report for one project.",
    )
    _add_catalog_args(rep)
    rep.add_argument(
        "--stats",
        required=True,
        help="Statistics file (.csv/.tsv table, or .yaml/.json record).",
    )
    rep.add_argument(
        "--project",
        required=True,
        help="Project id to resolve and calculate.",
    )
    rep.add_argument(
        "--editor",
        action="store_true",
        default=False,
        help="Build the builder (editing) view instead of the report.",
    )
    _add_format_args(rep)
    rep.set_defaults(func=cmd_report)

    # ---- preview ----
    prev = subparsers.add_parser(
        "preview",
        help="Preview every chart against synthetic statistics.",
    )
    _add_catalog_args(prev)
    _add_format_args(prev)
    prev.set_defaults(func=cmd_preview)

    # ---- validate ----
    val = subparsers.add_parser(
        "validate",
        help="Validate chart configurations and report templates.",
    )
    _add_catalog_args(val)
    val.add_argument(
        "--format",
        choices=["text", "json"],
        default="text",
        help="Output format (default: text).",
    )
    val.set_defaults(func=cmd_validate)

    # ---- inspect ----
    insp = subparsers.add_parser(
        "inspect",
        help="Show catalogue contents and template resolution.",
    )
    _add_catalog_args(insp)
    insp.add_argument(
        "--variables",
        action="store_true",
        default=False,
        help="List variables by category.",
    )
    insp.add_argument(
        "--charts",
        action="store_true",
        default=False,
        help="List chart configurations.",
    )
    insp.add_argument(
        "--project",
        help="Show which template this project resolves to.",
    )
    insp.set_defaults(func=cmd_inspect)

    return parser


def _add_catalog_args(parser):
    """Add --catalog arg to a subparser."""
    parser.add_argument(
        "--catalog",
        help="Path to a YAML catalogue file (default: built-in catalogue only).",
    )


def _add_format_args(parser):
    parser.add_argument(
        "--format",
        choices=["json", "text"],
        default="json",
        help="Output format (default: json).",
    )


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main(argv=None):
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    args.func(args)


if __name__ == "__main__":
    main()
