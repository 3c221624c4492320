"""Parsing and validation of dependency tool output."""

from __future__ import annotations

import os
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path

from .exceptions import InvertedDependencyError, MalformedOutputError, UnresolvedDependencyError
from .unit import Scope, Unit

__all__ = ["parse_unit_names", "parse_deps"]


def parse_unit_names(words: Iterable[str], *, unit: Unit, units: Mapping[str, Unit]) -> list[Unit]:
    """Resolve ``words`` against ``units``.

    The unit's own name and names outside ``units`` are dropped.
    """
    deps = []
    for w in words:
        if w == unit.name:
            continue
        m = units.get(w)
        if m is not None:
            deps.append(m)
    return deps


def parse_deps(scope: Scope, *, file: Path, unit: Unit, lines: Sequence[str]) -> list[Unit]:
    """Turn the raw tool output for ``file`` into the direct dependencies of ``unit``.

    Parameters
    ----------
    scope : Scope
        The unit set ``unit`` belongs to.
    file : Path
        Source file the tool was run on.
    unit : Unit
        Unit owning ``file``.
    lines : Sequence[str]
        Tool output; must be exactly one ``<basename>: <names>`` line.

    Returns
    -------
    list[Unit]
        Dependencies in output order, preceded by the alias unit if the
        scope has one.
    """
    if len(lines) != 1:
        raise MalformedOutputError(file, lines)
    line = lines[0]
    head, sep, tail = line.partition(":")
    if not sep or os.path.basename(head) != Path(file).name:
        raise MalformedOutputError(file, lines)

    words = tail.split()
    deps = parse_unit_names(words, unit=unit, units=scope.units)

    if scope.config.strict:
        unknown = [w for w in words if w != unit.name and w not in scope.units]
        if unknown:
            raise UnresolvedDependencyError(unit.name, unknown)

    lib = scope.lib_interface_unit
    if (
        lib is not None
        and unit.name != lib.name
        and not scope.is_alias(unit)
        and any(d.name == lib.name for d in deps)
    ):
        raise InvertedDependencyError(unit.name, scope.dir, lib.name)

    if scope.alias_unit is not None:
        return [scope.alias_unit] + deps
    return deps
