"""Custom exception hierarchy for unit dependency analysis."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any


class UnitDepsError(Exception):
    """Base class for all user-facing failures raised by this package."""
    pass


class ConfigurationError(UnitDepsError):
    """Raised when there is an issue with configuration parsing or structure."""
    pass


class MalformedOutputError(UnitDepsError):
    """Raised when the dependency tool prints something other than one ``file: deps`` line."""

    def __init__(self, file: Any, lines: Sequence[str]):
        self.file = file
        self.lines = list(lines)
        quoted = "\n".join(f"> {line}" for line in self.lines)
        super().__init__(f"dependency tool returned unexpected output for {file}:\n{quoted}")


class InvertedDependencyError(UnitDepsError):
    """Raised when a unit depends on the library interface unit."""

    def __init__(self, unit: str, dir: Any, lib_interface: str):
        self.unit = unit
        self.dir = dir
        self.lib_interface = lib_interface
        super().__init__(
            f"Unit {unit} in directory {dir} depends on {lib_interface}.\n"
            f"This doesn't make sense to me.\n"
            f"\n"
            f"{lib_interface} is the main unit of the library and is the only unit exposed \n"
            f"outside of the library. Consequently, it should be the one depending \n"
            f"on all the other units in the library."
        )


class UnresolvedDependencyError(UnitDepsError):
    """Raised in strict mode when tool output names units outside the scope."""

    def __init__(self, unit: str, names: Sequence[str]):
        self.unit = unit
        self.names = list(names)
        super().__init__(f"unit {unit} references unknown units: {', '.join(self.names)}")


class DependencyCycleError(UnitDepsError):
    """Raised when units of a scope depend on each other in a loop.

    ``cycle`` lists unit names so that each one depends on the next; the
    last entry repeats the first.
    """

    def __init__(self, dir: Any, cycle: Sequence[str]):
        self.dir = dir
        self.cycle = list(cycle)
        chain = "\n".join(f"-> {name}" for name in self.cycle)
        super().__init__(f"dependency cycle between units in {dir}:\n{chain}")


class BuildCycleError(UnitDepsError):
    """Raised when forcing a deferred computation would wait on itself."""

    def __init__(self, labels: Sequence[str], tags: Sequence[Any] | None = None):
        self.labels = list(labels)
        self.tags = list(tags) if tags is not None else [None] * len(self.labels)
        chain = "\n".join(f"-> {label}" for label in self.labels)
        super().__init__(f"dependency cycle between build actions:\n{chain}")


class ToolError(UnitDepsError):
    """Raised when the dependency extraction tool cannot be run or exits non-zero."""
    pass


class ArtifactError(UnitDepsError):
    """Raised when an artifact is read but nothing exists or produces it."""
    pass


class InternalConsistencyError(RuntimeError):
    """Raised when a caller breaks an invariant of this package.

    Not a user error: it signals a bug in the code driving the graph.
    ``context`` holds the structured diagnostic data.
    """

    def __init__(self, where: str, context: Mapping[str, Any]):
        self.where = where
        self.context = dict(context)
        details = "\n".join(f"  {k}: {v!r}" for k, v in self.context.items())
        super().__init__(f"internal error in {where}\n{details}")
