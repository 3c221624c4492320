"""Compilation units and the scope they are analysed in."""

from __future__ import annotations

import enum
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .config import Config
    from .engine import Engine

__all__ = ["Kind", "Unit", "Scope"]


class Kind(enum.Enum):
    """Which part of a unit is analysed."""

    INTF = "intf"
    IMPL = "impl"

    @classmethod
    def both(cls) -> tuple["Kind", "Kind"]:
        return (cls.INTF, cls.IMPL)


@dataclass(frozen=True)
class Unit:
    """One compilation unit.

    ``intf`` and ``impl`` are file names relative to the scope directory;
    at least one of them must be present.
    """

    name: str
    intf: str | None = None
    impl: str | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("unit name must not be empty")
        if self.intf is None and self.impl is None:
            raise ValueError(f"unit {self.name} has neither an interface nor an implementation")

    def file(self, kind: Kind) -> str | None:
        return self.intf if kind is Kind.INTF else self.impl

    @property
    def has_intf(self) -> bool:
        return self.intf is not None

    @property
    def has_impl(self) -> bool:
        return self.impl is not None


@dataclass
class Scope:
    """Everything an analysis needs to know about one unit set.

    Passed explicitly to every operation: the directory the units live
    in, the name lookup table, the optional alias and library interface
    units, the engine actions are registered with and the config.
    """

    dir: Path
    units: Mapping[str, Unit]
    engine: "Engine"
    alias_unit: Unit | None = None
    lib_interface_unit: Unit | None = None
    config: "Config" = field(default=None)  # type: ignore[assignment]

    def __post_init__(self) -> None:
        self.dir = Path(self.dir)
        self.units = dict(self.units)
        for role, u in (("alias", self.alias_unit), ("library interface", self.lib_interface_unit)):
            if u is not None and self.units.get(u.name) != u:
                raise ValueError(f"{role} unit {u.name} is not part of the units in {self.dir}")
        if self.config is None:
            self.config = self.engine.config

    @classmethod
    def of_units(cls, dir: Path | str, units: Iterable[Unit], engine: "Engine", **kwargs) -> "Scope":
        table: dict[str, Unit] = {}
        for u in units:
            if u.name in table:
                raise ValueError(f"unit {u.name} is defined twice in {dir}")
            table[u.name] = u
        return cls(Path(dir), table, engine, **kwargs)

    def is_alias(self, unit: Unit) -> bool:
        return self.alias_unit is not None and self.alias_unit.name == unit.name

    def file(self, unit: Unit, kind: Kind) -> Path | None:
        name = unit.file(kind)
        return None if name is None else self.dir / name

    def find(self, name: str) -> Unit | None:
        return self.units.get(name)
