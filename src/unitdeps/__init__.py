from .build import Build
from .config import Config
from .engine import Engine, configure, get_engine, reset
from .exceptions import (
    ArtifactError,
    BuildCycleError,
    ConfigurationError,
    DependencyCycleError,
    InternalConsistencyError,
    InvertedDependencyError,
    MalformedOutputError,
    ToolError,
    UnitDepsError,
    UnresolvedDependencyError,
)
from .graph import DepGraph, DepGraphs, rules, rules_for_auxiliary_unit, top_closure
from .logger import logger, console
from .parse import parse_deps, parse_unit_names
from .resolver import deps_of
from .unit import Kind, Scope, Unit

__all__ = [
    "Build",
    "Config",
    "Engine",
    "configure",
    "get_engine",
    "reset",
    "Kind",
    "Unit",
    "Scope",
    "DepGraph",
    "DepGraphs",
    "top_closure",
    "rules",
    "rules_for_auxiliary_unit",
    "deps_of",
    "parse_deps",
    "parse_unit_names",
    "UnitDepsError",
    "ConfigurationError",
    "MalformedOutputError",
    "InvertedDependencyError",
    "UnresolvedDependencyError",
    "DependencyCycleError",
    "BuildCycleError",
    "ToolError",
    "ArtifactError",
    "InternalConsistencyError",
    "logger",
    "console",
]
