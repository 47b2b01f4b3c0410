"""
Tests for execution planning: selection, level scheduling and rendering.
"""

import random

import pytest

from manifold.core.dependencies import discover
from manifold.core.model import MaterializeConfig, Model
from manifold.core.plan import ExecutionPlan, build_levels, create_plan, select_models
from manifold.exceptions import CycleError, TargetNotFoundError

COLLECTION = MaterializeConfig.collection()


def random_dag(seed: int, size: int = 25) -> list[Model]:
    """Random acyclic project: each model reads from an earlier one and may embed others."""
    rng = random.Random(seed)
    models: list[Model] = []
    for i in range(size):
        source = rng.choice(models) if models and rng.random() < 0.7 else f"raw_{i}"
        embedded = rng.sample(models, k=min(len(models), rng.randint(0, 2)))
        pipeline = [{"$lookup": {"from": m, "as": f"j{n}"}} for n, m in enumerate(embedded) if not m.is_ephemeral]
        materialize = rng.choice([COLLECTION, MaterializeConfig.view(), MaterializeConfig.collection("upsert")])
        models.append(Model(name=f"m{i:02d}", source=source, pipeline=pipeline, materialize=materialize))
    return models


class TestPlanShapes:
    """Test the canonical plan shapes."""

    def test_linear_chain(self):
        a = Model(name="A", source="raw", materialize=COLLECTION)
        b = Model(name="B", source=a, materialize=COLLECTION)
        c = Model(name="C", source=b, materialize=COLLECTION)
        assert create_plan(discover([c])).stages == [["A"], ["B"], ["C"]]

    def test_fan_out(self):
        a = Model(name="A", source="raw", materialize=COLLECTION)
        b = Model(name="B", source=a, materialize=COLLECTION)
        c = Model(name="C", source=a, materialize=COLLECTION)
        plan = create_plan(discover([b, c]))
        assert plan.stages[0] == ["A"]
        assert sorted(plan.stages[1]) == ["B", "C"]
        assert plan.total_models == 3


class TestPlanProperties:
    """Test invariants over random acyclic projects."""

    @pytest.mark.parametrize("seed", range(20))
    def test_every_model_exactly_once(self, seed):
        graph = discover(random_dag(seed))
        plan = create_plan(graph)
        names = plan.model_names
        assert sorted(names) == sorted(graph.models)
        assert len(names) == len(set(names))

    @pytest.mark.parametrize("seed", range(20))
    def test_dependencies_in_earlier_levels(self, seed):
        graph = discover(random_dag(seed))
        plan = create_plan(graph)
        for name in plan.model_names:
            for dep in graph.get_dependencies(name):
                assert plan.level_of(dep) < plan.level_of(name)

    @pytest.mark.parametrize("seed", range(5))
    def test_idempotent(self, seed):
        graph = discover(random_dag(seed))
        assert create_plan(graph).stages == create_plan(graph).stages

    @pytest.mark.parametrize("seed", range(10))
    def test_targeted_plan_is_dependency_closed(self, seed):
        models = random_dag(seed)
        graph = discover(models)
        target = models[-1].name
        plan = create_plan(graph, targets=[target])
        planned = set(plan.model_names)
        assert target in planned
        for name in planned:
            assert set(graph.get_dependencies(name)) <= planned


class TestSelection:
    """Test run-mode selection."""

    @pytest.fixture
    def graph(self):
        a = Model(name="a", source="raw", materialize=COLLECTION)
        b = Model(name="b", source=a, materialize=COLLECTION)
        c = Model(name="c", source=b, materialize=COLLECTION)
        other = Model(name="other", source="raw2", materialize=COLLECTION)
        return discover([c, other])

    def test_full(self, graph):
        assert select_models(graph) == ["c", "other", "b", "a"]

    def test_targets_include_dependencies(self, graph):
        assert sorted(select_models(graph, targets=["b"])) == ["a", "b"]

    def test_unknown_target(self, graph):
        with pytest.raises(TargetNotFoundError) as exc_info:
            select_models(graph, targets=["nope"])
        assert exc_info.value.target == "nope"

    def test_exclude(self, graph):
        assert sorted(select_models(graph, exclude=["other"])) == ["a", "b", "c"]

    def test_exclude_with_targets_stops_walk(self, graph):
        """Test an excluded model's own dependencies are not pulled in."""
        assert select_models(graph, targets=["c"], exclude=["b"]) == ["c"]

    def test_excluded_target_selects_nothing(self, graph):
        assert select_models(graph, targets=["c"], exclude=["c"]) == []
        assert create_plan(graph, targets=["c"], exclude=["c"]).stages == []

    def test_dependency_shared_with_other_target_still_selected(self, graph):
        assert sorted(select_models(graph, targets=["c", "a"], exclude=["b"])) == ["a", "c"]

    def test_unknown_exclude_is_warned(self, graph, caplog):
        with caplog.at_level("WARNING", logger="manifold"):
            select_models(graph, exclude=["ghost"])
        assert "ghost" in caplog.text

    def test_exclusion_plan(self, graph):
        plan = create_plan(graph, targets=["c"], exclude=["b"])
        assert plan.stages == [["c"]]


class TestBuildLevels:
    """Test level peeling."""

    def test_external_dependencies_are_satisfied(self):
        assert build_levels({"x": ("outside",)}) == [["x"]]

    def test_stuck_set_raises(self):
        with pytest.raises(CycleError) as exc_info:
            build_levels({"a": ("b",), "b": ("a",), "c": ()})
        assert exc_info.value.cycle == ["a", "b"]

    def test_empty(self):
        assert build_levels({}) == []


class TestRendering:
    """Test plan rendering."""

    def test_to_string(self):
        plan = ExecutionPlan(stages=[["a"], ["b", "c"]])
        assert plan.to_string() == "Stage 1: a\nStage 2: b, c"
        assert str(plan) == plan.to_string()

    def test_empty_plan(self):
        assert ExecutionPlan(stages=[]).to_string() == "(empty plan)"

    def test_to_diagram(self):
        a = Model(name="a", source="raw", materialize=MaterializeConfig.view())
        b = Model(name="b", source=a, materialize=COLLECTION)
        c = Model(name="c", source=b)
        d = Model(name="d", source=c, materialize=COLLECTION)
        diagram = create_plan(discover([d]), targets=["d"]).to_diagram()
        lines = diagram.splitlines()
        assert lines[0] == "graph TD"
        assert '    c["c (ephemeral)"]' in lines
        assert '    a["a (view)"]' in lines
        assert "    a --> b" in lines
        assert "    c --> d" in lines

    def test_level_of_unknown(self):
        with pytest.raises(KeyError):
            ExecutionPlan(stages=[["a"]]).level_of("b")
