"""Tests for the dependency scheduler."""

import pytest

from layerci.dag import JobGraph, build_plan, topo_levels
from layerci.errors import ConfigurationError, SchedulingError
from layerci.model import Job, PipelineSpec


def _job(name, needs=(), stage=None, declare_needs=None):
    return Job(
        name=name,
        image="alpine",
        script=("true",),
        stage=stage,
        needs=frozenset(needs),
        has_needs=bool(needs) if declare_needs is None else declare_needs,
    )


def _spec(*jobs, stages=("build",)):
    return PipelineSpec(jobs=tuple(jobs), stages=stages)


def test_no_needs_is_single_layer():
    plan = build_plan(_spec(_job("c"), _job("a"), _job("b")))
    assert plan.names() == [["a", "b", "c"]]
    assert plan.mode == "dependency"


def test_linear_chain():
    plan = build_plan(_spec(_job("C", ["B"]), _job("B", ["A"]), _job("A")))
    assert plan.names() == [["A"], ["B"], ["C"]]


def test_diamond():
    plan = build_plan(
        _spec(
            _job("D", ["C", "B"]),
            _job("C", ["A"]),
            _job("B", ["A"]),
            _job("A"),
        )
    )
    assert plan.names() == [["A"], ["B", "C"], ["D"]]


def test_uneven_depths_schedule_as_early_as_possible():
    plan = build_plan(
        _spec(
            _job("setup"),
            _job("lint", ["setup"]),
            _job("unit", ["setup"]),
            _job("package", ["lint", "unit"]),
            _job("docs"),
            _job("e2e", ["package", "docs"]),
        )
    )
    assert plan.names() == [["docs", "setup"], ["lint", "unit"], ["package"], ["e2e"]]


def test_two_node_cycle_names_both_jobs():
    with pytest.raises(SchedulingError, match="cycle") as exc:
        build_plan(_spec(_job("A", ["B"]), _job("B", ["A"])))
    assert exc.value.jobs == ["A", "B"]
    assert "A -> B -> A" in str(exc.value)


def test_self_dependency_is_a_cycle():
    with pytest.raises(SchedulingError, match="A -> A") as exc:
        build_plan(_spec(_job("A", ["A"])))
    assert exc.value.jobs == ["A"]


def test_cycle_reports_blocked_jobs_separately():
    with pytest.raises(SchedulingError) as exc:
        build_plan(
            _spec(
                _job("ok"),
                _job("x", ["y", "ok"]),
                _job("y", ["z"]),
                _job("z", ["x"]),
                _job("after", ["z"]),
            )
        )
    assert exc.value.jobs == ["x", "y", "z"]
    assert "Blocked downstream: ['after']" in str(exc.value)


def test_missing_dependency():
    with pytest.raises(SchedulingError, match="needs missing job") as exc:
        build_plan(_spec(_job("A"), _job("B", ["nope"])))
    assert exc.value.jobs == ["B"]


def test_missing_dependency_reported_before_cycle():
    with pytest.raises(SchedulingError, match="missing"):
        build_plan(_spec(_job("A", ["B"]), _job("B", ["A", "ghost"])))


def test_empty_pipeline_gives_empty_plan():
    assert len(build_plan(_spec())) == 0
    assert len(build_plan(PipelineSpec())) == 0


def test_duplicate_names_rejected():
    with pytest.raises(ConfigurationError, match="Duplicate job names"):
        JobGraph([_job("a"), _job("a")])


def test_undeclared_stage_rejected():
    with pytest.raises(ConfigurationError, match="not declared"):
        build_plan(_spec(_job("a", stage="deploy"), stages=("build", "test")))


def test_stage_labels_do_not_order_jobs():
    plan = build_plan(
        _spec(
            _job("late", stage="test"),
            _job("early", stage="build"),
            stages=("build", "test"),
        )
    )
    assert plan.names() == [["early", "late"]]


def test_flat_mode_single_layer():
    plan = build_plan(PipelineSpec(jobs=(_job("b"), _job("a"))))
    assert plan.mode == "flat"
    assert plan.names() == [["a", "b"]]


@pytest.mark.parametrize(
    "job",
    [
        _job("a", stage="build"),
        _job("a", ["b"]),
        _job("a", declare_needs=True),
    ],
)
def test_flat_mode_rejects_ordering_attributes(job):
    with pytest.raises(ConfigurationError, match="no 'stages' list"):
        build_plan(PipelineSpec(jobs=(job, _job("b"))))


def test_scheduling_does_not_mutate_graph():
    graph = JobGraph([_job("a"), _job("b", ["a"])])
    before = graph.remaining()
    assert topo_levels(graph) == [["a"], ["b"]]
    assert topo_levels(graph) == [["a"], ["b"]]
    assert graph.remaining() == before
    assert graph.get("b").needs == frozenset({"a"})


def test_dependents():
    graph = JobGraph([_job("a"), _job("b", ["a"]), _job("c", ["a"])])
    assert graph.dependents("a") == ["b", "c"]
    assert graph.dependents("c") == []


def test_replanning_is_deterministic():
    spec = _spec(_job("D", ["B", "C"]), _job("B", ["A"]), _job("C", ["A"]), _job("A"))
    first = build_plan(spec)
    second = build_plan(spec)
    assert first == second
    assert first is not second
