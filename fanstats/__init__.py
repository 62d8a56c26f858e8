"""Fan engagement statistics - chart and report calculation pipeline.

Turns a project's statistics record into calculated chart results placed on
a responsive report template:

- schema: typed models, the built-in catalogue, YAML catalogue loading
- processor: variable registry, formula evaluator, chart calculator,
  template resolver, statistics ingestion
- generator: grid layout and the report / builder / preview pipeline
- qa: catalogue validation
"""

from fanstats.errors import ConfigurationError, FanstatsError, ValidationError, VariableNotFound
from fanstats.schema.models import NA, UNAVAILABLE

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "FanstatsError",
    "NA",
    "UNAVAILABLE",
    "ValidationError",
    "VariableNotFound",
]
