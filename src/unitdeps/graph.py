"""Dependency graphs over a unit set and their topological closure."""
from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Mapping, Sequence, Set
from dataclasses import dataclass, field
from graphlib import CycleError, TopologicalSorter
from pathlib import Path
from typing import TYPE_CHECKING

from .build import Build
from .exceptions import BuildCycleError, DependencyCycleError, InternalConsistencyError
from .logger import logger
from .resolver import deps_of as resolve_deps
from .unit import Kind, Scope, Unit

if TYPE_CHECKING:
    from .engine import Engine

__all__ = [
    "DepGraph",
    "DepGraphs",
    "top_closure",
    "rules",
    "rules_for_auxiliary_unit",
]


def top_closure(
    units: Sequence[Unit],
    deps: Callable[[Unit], Iterable[Unit]],
    *,
    dir: Path | str = ".",
) -> list[Unit]:
    """Order ``units`` so that each comes after its dependencies among ``units``.

    Units without a relative constraint keep their input order. Raises
    :class:`DependencyCycleError` whose chain lists units each depending on
    the next.
    """
    by_name: dict[str, Unit] = {}
    duplicates = []
    for u in units:
        if u.name in by_name:
            duplicates.append(u.name)
        by_name[u.name] = u
    if duplicates:
        raise InternalConsistencyError(
            "top_closure", {"dir": str(dir), "duplicates": duplicates}
        )
    ts: TopologicalSorter[str] = TopologicalSorter()
    for name in by_name:
        ts.add(name)
    for u in by_name.values():
        ts.add(u.name, *(d.name for d in deps(u) if d.name in by_name))
    try:
        order = list(ts.static_order())
    except CycleError as e:
        # graphlib lists each node before the ones depending on it
        cycle = list(reversed(e.args[1]))
        raise DependencyCycleError(dir, cycle) from None
    return [by_name[name] for name in order]


def _unit_cycle(tags: Sequence[object]) -> list[str] | None:
    """Unit names along a build cycle, from the tags of its merge actions."""
    names: list[str] = []
    for t in tags:
        if isinstance(t, str) and (not names or names[-1] != t):
            names.append(t)
    if len(names) < 2:
        return None
    if names[0] != names[-1]:
        names.append(names[0])
    return names


@dataclass
class DepGraph:
    """Deferred direct dependencies of every unit in one directory."""

    dir: Path
    per_unit: Mapping[str, Build]
    engine: "Engine | None" = None
    _memo: dict[tuple[str, tuple[str, ...]], Build] = field(default_factory=dict, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def deps_of(self, unit: Unit) -> Build:
        try:
            return self.per_unit[unit.name]
        except KeyError:
            raise InternalConsistencyError(
                "DepGraph.deps_of",
                {
                    "dir": str(self.dir),
                    "units": sorted(self.per_unit),
                    "unit": unit.name,
                },
            ) from None

    def _force_all(self) -> dict[str, list[Unit]]:
        names = list(self.per_unit)
        builds = [self.per_unit[n] for n in names]
        if self.engine is not None:
            values = self.engine.gather(builds)
        else:
            values = Build.all(builds, f"deps in {self.dir}").force()
        return dict(zip(names, values))

    def top_closed(self, units: Sequence[Unit]) -> Build:
        """Return a build yielding ``units`` in a safe processing order."""
        units = list(units)
        for u in units:
            self.deps_of(u)

        def closure() -> list[Unit]:
            try:
                per_unit = self._force_all()
            except BuildCycleError as e:
                cycle = _unit_cycle(e.tags)
                if cycle is None:
                    raise
                raise DependencyCycleError(self.dir, cycle) from e
            order = top_closure(units, lambda m: per_unit[m.name], dir=self.dir)
            logger.debug("build order in {}: {}", self.dir, [u.name for u in order])
            return order

        return Build(closure, f"top closure in {self.dir}")

    def top_closed_implementations(self, units: Sequence[Unit]) -> Build:
        """Like :meth:`top_closed`, restricted to units with an implementation."""
        impls = [u for u in units if u.has_impl]
        key = ("top sorted implementations", tuple(u.name for u in impls))
        with self._lock:
            b = self._memo.get(key)
            if b is None:
                b = self.top_closed(impls).map(
                    lambda order: [u for u in order if u.has_impl],
                    "top sorted implementations",
                )
                self._memo[key] = b
        return b

    @classmethod
    def dummy(cls, unit: Unit) -> "DepGraph":
        """Graph holding ``unit`` alone, with no dependencies."""
        return cls(Path("."), {unit.name: Build.pure([], f"deps of {unit.name}")})


@dataclass
class DepGraphs:
    """The interface and implementation graphs of one unit set."""

    intf: DepGraph
    impl: DepGraph

    def __getitem__(self, kind: Kind) -> DepGraph:
        return self.intf if kind is Kind.INTF else self.impl

    @classmethod
    def dummy(cls, unit: Unit) -> "DepGraphs":
        return cls(DepGraph.dummy(unit), DepGraph.dummy(unit))


def rules_generic(
    scope: Scope,
    units: Mapping[str, Unit],
    *,
    already_used: Set[str] = frozenset(),
) -> DepGraphs:
    def graph(kind: Kind) -> DepGraph:
        per_unit = {
            name: resolve_deps(scope, u, kind, already_used=already_used)
            for name, u in units.items()
        }
        return DepGraph(scope.dir, per_unit, scope.engine)

    return DepGraphs(*(graph(kind) for kind in Kind.both()))


def rules(scope: Scope, *, already_used: Set[str] = frozenset()) -> DepGraphs:
    """Register dependency rules for every unit of ``scope``."""
    return rules_generic(scope, scope.units, already_used=already_used)


def rules_for_auxiliary_unit(scope: Scope, unit: Unit) -> DepGraphs:
    """Graphs for ``unit`` alone, resolved against the whole of ``scope``."""
    return rules_generic(scope, {unit.name: unit})
