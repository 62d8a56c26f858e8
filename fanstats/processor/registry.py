"""Variable registry - the canonical catalogue of named statistics variables.

Holds built-in stat fields, derived formulas and custom user-defined fields in
insertion order.  Registration validates every definition up front so that a
bad name or an unparseable derived formula fails at load time, not in the
middle of a report.

Usage::

    from fanstats.processor.registry import build_default_registry

    registry = build_default_registry()
    registry.resolve("stats.remoteImages").label   # "Remote Images"
    registry.list(category="Demographics")
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable, Iterable
from types import MappingProxyType
from typing import Any

from fanstats.errors import ValidationError, VariableNotFound
from fanstats.processor.formula import NAME_PATTERN, parse
from fanstats.schema.models import Variable, VariableType

logger = logging.getLogger(__name__)


def _strip_namespace(name: str) -> str:
    return name[6:] if name.startswith("stats.") else name


def validate_variable(variable: Variable) -> None:
    """Raise ``ValidationError`` if a variable definition is malformed."""
    if not NAME_PATTERN.match(variable.name or ""):
        raise ValidationError(
            f"Invalid variable name {variable.name!r}: must match [A-Za-z][A-Za-z0-9_]*",
            token=variable.name,
        )
    if not (variable.label or "").strip():
        raise ValidationError(f"Variable {variable.name!r} has no label", token=variable.name)
    if not (variable.category or "").strip():
        raise ValidationError(f"Variable {variable.name!r} has no category", token=variable.name)
    if variable.derived:
        if not (variable.formula or "").strip():
            raise ValidationError(
                f"Derived variable {variable.name!r} has no formula", token=variable.name
            )
        # Raises ValidationError naming the offending token
        parse(variable.formula)
    elif variable.formula:
        raise ValidationError(
            f"Variable {variable.name!r} has a formula but is not derived", token=variable.name
        )


class VariableRegistry:
    """Ordered, validated collection of :class:`Variable` definitions."""

    def __init__(self, variables: Iterable[Variable] = ()):
        self._variables: dict[str, Variable] = {}
        for variable in variables:
            self.register(variable)

    @classmethod
    def with_builtins(cls) -> "VariableRegistry":
        from fanstats.schema.defaults import builtin_variables

        return cls(builtin_variables())

    # -- lookup -------------------------------------------------------------

    def get(self, name: str) -> Variable | None:
        """Return the variable or ``None``.  Accepts ``stats.<name>``."""
        return self._variables.get(_strip_namespace(name))

    def resolve(self, name: str) -> Variable:
        """Return the variable, raising ``VariableNotFound`` if unknown."""
        variable = self.get(name)
        if variable is None:
            raise VariableNotFound(_strip_namespace(name))
        return variable

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.get(name) is not None

    def __len__(self) -> int:
        return len(self._variables)

    def __iter__(self):
        return iter(list(self._variables.values()))

    def list(
        self,
        category: str | None = None,
        type: VariableType | None = None,
        derived: bool | None = None,
        custom: bool | None = None,
        predicate: Callable[[Variable], bool] | None = None,
    ) -> list[Variable]:
        """Snapshot of the variables matching every given filter, in insertion order."""
        out = []
        for v in self._variables.values():
            if category is not None and v.category != category:
                continue
            if type is not None and v.type is not type:
                continue
            if derived is not None and v.derived != derived:
                continue
            if custom is not None and v.is_custom != custom:
                continue
            if predicate is not None and not predicate(v):
                continue
            out.append(v)
        return out

    def categories(self) -> list[str]:
        return list(dict.fromkeys(v.category for v in self._variables.values()))

    def names(self) -> list[str]:
        return list(self._variables)

    # -- mutation -----------------------------------------------------------

    def register(self, variable: Variable) -> Variable:
        """Add a variable, or update the metadata of an existing custom one.

        Raises:
            ValidationError: If the definition is malformed, or the name
                belongs to a built-in variable.
        """
        validate_variable(variable)
        existing = self._variables.get(variable.name)
        if existing is not None:
            if not existing.is_custom:
                raise ValidationError(
                    f"Variable {variable.name!r} is built-in and cannot be redefined",
                    token=variable.name,
                )
            # Custom duplicates keep their name and custom status
            variable = dataclasses.replace(variable, is_custom=True)
            logger.debug("Updating custom variable %r", variable.name)
        self._variables[variable.name] = variable
        return variable

    def rename(self, old: str, new: str) -> Variable:
        """Rename a custom variable, keeping its position in the registry."""
        variable = self.resolve(old)
        if not variable.is_custom:
            raise ValidationError(
                f"Variable {variable.name!r} is built-in; renaming would orphan stored data",
                token=variable.name,
            )
        if not NAME_PATTERN.match(new or ""):
            raise ValidationError(f"Invalid variable name {new!r}", token=new)
        if new in self._variables:
            raise ValidationError(f"Variable {new!r} already exists", token=new)
        renamed = dataclasses.replace(variable, name=new)
        self._variables = {
            (new if k == variable.name else k): (renamed if k == variable.name else v)
            for k, v in self._variables.items()
        }
        return renamed

    def unregister(self, name: str) -> Variable:
        """Remove a custom variable."""
        variable = self.resolve(name)
        if not variable.is_custom:
            raise ValidationError(
                f"Variable {variable.name!r} is built-in and cannot be removed",
                token=variable.name,
            )
        del self._variables[variable.name]
        return variable

    # -- derived views ------------------------------------------------------

    def snapshot(self) -> "RegistrySnapshot":
        """Read-only copy to hold for the duration of a batch calculation."""
        return RegistrySnapshot(self._variables)

    def new_statistics_record(self) -> dict[str, Any]:
        """A fresh record with every stored numeric field defaulted to 0."""
        return {
            v.name: 0
            for v in self._variables.values()
            if not v.derived and v.type is not VariableType.TEXT
        }

    def to_list(self) -> list[dict]:
        return [v.to_dict() for v in self._variables.values()]


class RegistrySnapshot(VariableRegistry):
    """Immutable registry view; mutation raises ``TypeError``."""

    def __init__(self, variables: dict[str, Variable]):
        self._variables = MappingProxyType(dict(variables))

    def register(self, variable: Variable) -> Variable:
        raise TypeError("Registry snapshot is read-only")

    def rename(self, old: str, new: str) -> Variable:
        raise TypeError("Registry snapshot is read-only")

    def unregister(self, name: str) -> Variable:
        raise TypeError("Registry snapshot is read-only")

    def snapshot(self) -> "RegistrySnapshot":
        return self


def build_default_registry(extra: Iterable[Variable] = ()) -> VariableRegistry:
    """Registry pre-loaded with the built-in catalogue plus ``extra``."""
    registry = VariableRegistry.with_builtins()
    for variable in extra:
        registry.register(variable)
    return registry
