# ruff: noqa: E402
import sys
from pathlib import Path

# ensure src is on PYTHONPATH
src_path = Path(__file__).resolve().parents[1] / "src"
sys.path.insert(0, str(src_path))

import pytest
from unitdeps import Engine, Scope, Unit


class FakeTool:
    """Stands in for the dependency tool: echoes the names written in a source file."""

    def __init__(self):
        self.calls = []

    def __call__(self, argv):
        self.calls.append(list(argv))
        src = Path(argv[-1])
        return f"{src.name}: {src.read_text().strip()}\n"

    def runs_for(self, name):
        return sum(1 for argv in self.calls if Path(argv[-1]).name == name)


@pytest.fixture
def tool():
    return FakeTool()


@pytest.fixture
def engine(tool):
    return Engine({"workers": 1}, runner=tool)


def units_from_sources(names):
    """Group ``x.mli`` / ``x.ml`` file names into units named ``x``."""
    parts = {}
    for fname in names:
        stem, ext = fname.rsplit(".", 1)
        parts.setdefault(stem, {})["intf" if ext == "mli" else "impl"] = fname
    return [Unit(stem, **p) for stem, p in parts.items()]


@pytest.fixture
def make_scope(tmp_path, engine):
    def _make(sources, *, alias=None, lib_interface=None, engine=engine):
        for fname, text in sources.items():
            (tmp_path / fname).write_text(text)
        units = units_from_sources(sources)
        table = {u.name: u for u in units}
        return Scope.of_units(
            tmp_path,
            units,
            engine,
            alias_unit=table.get(alias),
            lib_interface_unit=table.get(lib_interface),
        )

    return _make
