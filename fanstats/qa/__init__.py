"""QA validation package for the chart catalogue.

Validates chart configurations and report templates before they reach a
report: element counts, formulas, unknown variables, dangling chart
references, grid bounds and block capacity.
"""

from .validator import (
    CatalogValidator,
    Issue,
    QAResult,
    validate_catalog,
)

__all__ = [
    "CatalogValidator",
    "Issue",
    "QAResult",
    "validate_catalog",
]
