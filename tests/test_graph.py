import random
from pathlib import Path

import pytest
from unitdeps import (
    Build,
    BuildCycleError,
    DepGraph,
    DepGraphs,
    DependencyCycleError,
    InternalConsistencyError,
    Kind,
    Unit,
    rules,
    rules_for_auxiliary_unit,
    top_closure,
)


def make_units(*names):
    return {n: Unit(n, impl=f"{n}.ml") for n in names}


def graph_of(units, edges, dir="/src/lib"):
    per_unit = {n: Build.pure([units[d] for d in edges.get(n, [])]) for n in units}
    return DepGraph(Path(dir), per_unit)


def names(units):
    return [u.name for u in units]


def assert_deps_first(order, deps):
    pos = {u.name: i for i, u in enumerate(order)}
    for u in order:
        for d in deps(u):
            if d.name in pos:
                assert pos[d.name] < pos[u.name], f"{d.name} must precede {u.name}"


def test_top_closure_orders_dependencies_first():
    units = make_units("a", "b", "c", "d")
    edges = {"a": ["b", "c"], "b": ["c"], "d": ["a"]}
    g = graph_of(units, edges)

    order = g.top_closed(list(units.values())).force()
    assert names(order) == ["c", "b", "a", "d"]


def test_top_closure_keeps_input_order_when_unconstrained():
    units = make_units("c", "a", "b")
    g = graph_of(units, {})
    assert names(g.top_closed([units["c"], units["a"], units["b"]]).force()) == ["c", "a", "b"]

    g = graph_of(units, {"a": ["b"]})
    assert names(g.top_closed([units["a"], units["b"], units["c"]]).force()) == ["b", "c", "a"]


@pytest.mark.parametrize("seed", range(5))
def test_top_closure_random_dags(seed):
    rng = random.Random(seed)
    units = make_units(*(f"u{i}" for i in range(30)))
    ordered = list(units.values())
    edges = {
        u.name: [ordered[j].name for j in range(i) if rng.random() < 0.2]
        for i, u in enumerate(ordered)
    }
    subset = [u for u in ordered if rng.random() < 0.7]
    rng.shuffle(subset)

    g = graph_of(units, edges)
    order = g.top_closed(subset).force()

    assert sorted(names(order)) == sorted(names(subset))
    assert_deps_first(order, lambda u: [units[d] for d in edges[u.name]])
    assert names(g.top_closed(subset).force()) == names(order)


def test_transitive_order_within_subset():
    units = make_units("a", "b", "c")
    deps = {"a": [units["b"], units["c"]], "b": [units["c"]], "c": []}
    order = top_closure([units["a"], units["c"], units["b"]], lambda u: deps[u.name])
    assert names(order) == ["c", "b", "a"]


def test_dependencies_outside_subset_are_ignored():
    units = make_units("a", "b", "c")
    g = graph_of(units, {"a": ["b"], "b": ["c"], "c": ["a"]})
    assert names(g.top_closed([units["a"], units["b"]]).force()) == ["b", "a"]


def test_cycle_reported():
    units = make_units("a", "b", "c", "d")
    edges = {"a": ["b"], "b": ["c"], "c": ["a"], "d": ["a"]}
    g = graph_of(units, edges, dir="/src/cyclic")

    with pytest.raises(DependencyCycleError) as exc:
        g.top_closed(list(units.values())).force()

    cycle = exc.value.cycle
    assert cycle[0] == cycle[-1]
    assert set(cycle) == {"a", "b", "c"}
    for x, y in zip(cycle, cycle[1:]):
        assert y in edges[x]
    msg = str(exc.value)
    assert "/src/cyclic" in msg
    for n in cycle:
        assert f"-> {n}" in msg


def test_self_cycle_reported():
    units = make_units("a")
    with pytest.raises(DependencyCycleError) as exc:
        top_closure([units["a"]], lambda u: [u])
    assert exc.value.cycle == ["a", "a"]


def test_deps_of_unknown_unit():
    units = make_units("a", "b")
    g = graph_of(units, {})
    with pytest.raises(InternalConsistencyError) as exc:
        g.deps_of(Unit("z", impl="z.ml"))
    assert exc.value.context == {"dir": "/src/lib", "units": ["a", "b"], "unit": "z"}
    with pytest.raises(InternalConsistencyError):
        g.top_closed([Unit("z", impl="z.ml")])


def test_top_closed_implementations():
    a = Unit("a", impl="a.ml")
    b = Unit("b", intf="b.mli")
    c = Unit("c", intf="c.mli", impl="c.ml")
    g = DepGraph(
        Path("/src/lib"),
        {"a": Build.pure([b, c]), "b": Build.pure([]), "c": Build.pure([b])},
    )

    first = g.top_closed_implementations([a, b, c])
    assert names(first.force()) == ["c", "a"]
    assert g.top_closed_implementations([a, b, c]) is first
    assert g.top_closed_implementations([c]) is not first


def test_lazy_until_forced():
    calls = []
    a = Unit("a", impl="a.ml")

    def deps():
        calls.append("a")
        return []

    g = DepGraph(Path("."), {"a": Build(deps)})
    closed = g.top_closed([a])
    assert calls == []
    assert names(closed.force()) == ["a"]
    closed.force()
    assert calls == ["a"]


def test_dummy_graphs():
    a = Unit("a", intf="a.mli")
    graphs = DepGraphs.dummy(a)
    for kind in Kind.both():
        assert graphs[kind].deps_of(a).force() == []
        assert names(graphs[kind].top_closed([a]).force()) == ["a"]


def test_rules_end_to_end(make_scope):
    scope = make_scope({
        "main.ml": "util parser",
        "parser.mli": "ast",
        "parser.ml": "ast util",
        "ast.mli": "",
        "util.ml": "",
    }, lib_interface="main")
    graphs = rules(scope)
    units = list(scope.units.values())

    order = graphs.impl.top_closed(units).force()
    assert names(order) == ["ast", "util", "parser", "main"]
    impls = graphs.impl.top_closed_implementations(units).force()
    assert names(impls) == ["util", "parser", "main"]
    assert names(graphs.intf.top_closed(units).force()) == ["main", "ast", "util", "parser"]


def test_rules_end_to_end_parallel(make_scope, tool):
    from unitdeps import Engine

    engine = Engine({"workers": 4}, runner=tool)
    scope = make_scope({f"m{i}.ml": " ".join(f"m{j}" for j in range(i)) for i in range(8)}, engine=engine)
    order = rules(scope).impl.top_closed(list(scope.units.values())).force()
    assert names(order) == [f"m{i}" for i in range(8)]
    assert engine.tool_runs == 8


def cycle_edges_hold(cycle, edges):
    return cycle[0] == cycle[-1] and all(y in edges[x] for x, y in zip(cycle, cycle[1:]))


def test_cyclic_sources(make_scope, tmp_path):
    edges = {"a": ["b"], "b": ["c"], "c": ["a"]}
    scope = make_scope({f"{n}.ml": " ".join(d) for n, d in edges.items()})
    graphs = rules(scope)

    with pytest.raises(DependencyCycleError) as exc:
        graphs.impl.top_closed(list(scope.units.values())).force()

    assert exc.value.cycle == ["a", "b", "c", "a"]
    assert isinstance(exc.value.__cause__, BuildCycleError)
    msg = str(exc.value)
    assert str(tmp_path) in msg
    assert "-> a\n-> b\n-> c\n-> a" in msg


def test_cyclic_sources_parallel(make_scope, tool):
    from unitdeps import Engine

    edges = {"a": ["b"], "b": ["c"], "c": ["d"], "d": ["b"], "e": []}
    engine = Engine({"workers": 4}, runner=tool)
    scope = make_scope({f"{n}.ml": " ".join(d) for n, d in edges.items()}, engine=engine)

    with pytest.raises(DependencyCycleError) as exc:
        rules(scope).impl.top_closed(list(scope.units.values())).force()

    cycle = exc.value.cycle
    assert set(cycle) == {"b", "c", "d"}
    assert cycle_edges_hold(cycle, edges)


def test_duplicate_units_rejected():
    units = make_units("a", "b")
    with pytest.raises(InternalConsistencyError) as exc:
        top_closure([units["b"], units["a"], units["b"]], lambda u: [])
    assert exc.value.context["duplicates"] == ["b"]


def test_auxiliary_unit(make_scope, tmp_path):
    scope = make_scope({"a.ml": "b", "b.ml": ""})
    rules(scope)
    (tmp_path / "aux.ml").write_text("a aux Stdlib")
    aux = Unit("aux", impl="aux.ml")

    graphs = rules_for_auxiliary_unit(scope, aux)
    assert list(graphs.impl.per_unit) == ["aux"]
    assert names(graphs.impl.deps_of(aux).force()) == ["a", "b"]
    assert graphs.intf.deps_of(aux).force() == []
