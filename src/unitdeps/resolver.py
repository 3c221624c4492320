"""Per-unit dependency resolution through the external tool."""

from __future__ import annotations

from collections.abc import Set
from functools import partial
from pathlib import Path

from .build import Build
from .logger import logger
from .parse import parse_deps, parse_unit_names
from .unit import Kind, Scope, Unit

__all__ = ["deps_of", "raw_output_path", "resolved_path"]


def _extend(path: Path, suffix: str) -> Path:
    return path.with_name(path.name + suffix)


def raw_output_path(scope: Scope, file: Path) -> Path:
    return _extend(file, scope.config.suffix("raw"))


def resolved_path(scope: Scope, file: Path) -> Path:
    return _extend(file, scope.config.suffix("resolved"))


def _dependency_artifacts(scope: Scope, deps: list[Unit]) -> list[Path]:
    # each dependency is summarised by its interface when it has one
    paths = []
    for m in deps:
        if scope.is_alias(m):
            continue
        file = scope.file(m, Kind.INTF) or scope.file(m, Kind.IMPL)
        if file is not None:
            paths.append(resolved_path(scope, file))
    return paths


def deps_of(
    scope: Scope,
    unit: Unit,
    kind: Kind,
    *,
    already_used: Set[str] = frozenset(),
) -> Build:
    """Return a build yielding the in-scope dependencies of ``unit`` for ``kind``.

    Registers, unless ``unit`` is in ``already_used``, the rules running the
    tool on the unit's source into ``<file>.d`` and merging the parsed result
    into ``<file>.all-deps``. Reading ``<file>.all-deps`` is memoized by path,
    so every caller shares one build.
    """
    if scope.is_alias(unit):
        return Build.pure([], f"deps of alias {unit.name}")
    file = scope.file(unit, kind)
    if file is None:
        return Build.pure([], f"deps of {unit.name} ({kind.value}): none")

    engine = scope.engine
    all_deps_file = resolved_path(scope, file)
    raw_output = raw_output_path(scope, file)

    if unit.name not in already_used:
        argv = scope.config.tool_command() + [scope.config.flag(kind.value), str(file)]
        engine.add_rule(raw_output, engine.run(argv, stdout_to=raw_output, deps=[file]))

        def resolve(lines: list[str]) -> tuple[list[Path], list[str]]:
            deps = parse_deps(scope, file=file, unit=unit, lines=lines)
            logger.debug("{} ({}) depends on {}", unit.name, kind.value, [d.name for d in deps])
            return _dependency_artifacts(scope, deps), [d.name for d in deps]

        parsed = engine.lines_of(raw_output).map(resolve, f"parse {raw_output}")
        engine.add_rule(all_deps_file, engine.merge_files(parsed, target=all_deps_file, tag=unit.name))

    return engine.memoize(
        str(all_deps_file),
        lambda: engine.lines_of(all_deps_file).map(
            partial(parse_unit_names, unit=unit, units=scope.units),
            f"deps of {unit.name} ({kind.value})",
        ),
    )
