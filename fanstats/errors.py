"""Exception types raised by the calculation pipeline.

Only definition problems raise.  Missing data never does: a formula that
cannot resolve a variable evaluates to the ``UNAVAILABLE`` marker (see
``fanstats.schema.models``) so one broken chart cannot abort a batch.
"""


class FanstatsError(Exception):
    """Base class for all pipeline errors."""


class ValidationError(FanstatsError, ValueError):
    """A variable, chart or template definition was rejected at load time.

    ``token`` names the offending token (a variable name, a formula
    fragment) when one can be pinpointed.
    """

    def __init__(self, message: str, token: str | None = None):
        super().__init__(message)
        self.token = token


class ConfigurationError(FanstatsError):
    """Structural misuse of otherwise valid definitions.

    Examples: calculating an unexpanded ``value`` chart, or a template block
    pointing at a chart id that does not exist.
    """


class VariableNotFound(FanstatsError, KeyError):
    """Lookup of a variable name that is not registered."""

    def __init__(self, name: str):
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"Unknown variable: {self.name!r}"
