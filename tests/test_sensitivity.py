"""
Tests for the Monte Carlo sensitivity engine and hotspot ranking.
"""

from __future__ import annotations

import math

import numpy as np
import pytest

from lca_engine.errors import ScenarioCancelled, SensitivityInstability
from lca_engine.schemas.stage import DependencyContext, StageId
from lca_engine.stages.cancellation import CancellationToken
from lca_engine.stages.definitions import get_definition
from lca_engine.stages.sensitivity import SensitivityEngine, box_muller, stage_metric_function

from conftest import input_set


def linear(values):
    return {"y": 3.0 * values["x"]}


def test_box_muller_is_standard_normal():
    rng = np.random.default_rng(7)
    draws = np.array([box_muller(rng) for _ in range(5000)])
    assert abs(draws.mean()) < 0.05
    assert abs(draws.std() - 1.0) < 0.05


class ScriptedRandom:
    """Stand-in generator that replays fixed uniforms."""

    def __init__(self, values):
        self.values = list(values)

    def random(self):
        return self.values.pop(0)


def test_box_muller_redraws_exact_zero_uniforms():
    rng = ScriptedRandom([0.0, 0.25, 0.0, 0.5])

    draw = box_muller(rng)

    assert math.isfinite(draw)
    assert draw == pytest.approx(math.sqrt(-2.0 * math.log(0.25)) * math.cos(math.pi))
    assert rng.values == []


def test_hotspots_rank_influential_inputs_first():
    """y = a*x ranks x above an unrelated z, whose score is ~0."""
    engine = SensitivityEngine(trials=100, seed=1, max_workers=4)
    report = engine.estimate(linear, {"x": 10.0, "z": 5.0}, primary_metric="y")

    assert [h.parameter for h in report.hotspots] == ["x", "z"]
    assert report.hotspots[0].impact_score == pytest.approx(3.0 * 10.0 * 0.05)
    assert report.hotspots[1].impact_score == pytest.approx(0.0, abs=1e-12)


def test_hotspot_ties_sort_by_name():
    engine = SensitivityEngine(trials=10, seed=1)
    report = engine.estimate(lambda v: {"y": v["b"] + v["a"]}, {"b": 1.0, "a": 1.0}, primary_metric="y")
    assert [h.parameter for h in report.hotspots] == ["a", "b"]


def test_distribution_brackets_the_mean():
    engine = SensitivityEngine(trials=400, seed=3)
    report = engine.estimate(linear, {"x": 10.0})

    dist = report.distributions["y"]
    assert dist.lower95 <= dist.mean <= dist.upper95
    assert dist.mean == pytest.approx(30.0, rel=0.02)
    assert report.primary_metric == "y"
    assert report.failed_trials == 0


def test_all_zero_inputs_give_finite_near_zero_distributions():
    engine = SensitivityEngine(trials=200, seed=5)
    report = engine.estimate(lambda v: {"y": v["x"] * 2.0, "w": v["x"] + v["z"]}, {"x": 0.0, "z": 0.0})

    for dist in report.distributions.values():
        for value in (dist.mean, dist.lower95, dist.upper95):
            assert math.isfinite(value)
        assert dist.mean == pytest.approx(0.0, abs=1e-5)


def test_results_are_reproducible_across_worker_counts():
    """Per-trial generators make results independent of thread scheduling."""
    inputs = {"x": 10.0, "z": 2.0}
    single = SensitivityEngine(trials=150, seed=11, max_workers=1).estimate(linear, inputs)
    pooled = SensitivityEngine(trials=150, seed=11, max_workers=8).estimate(linear, inputs)
    assert single == pooled


def test_different_seeds_give_different_samples():
    a = SensitivityEngine(trials=50, seed=1).estimate(linear, {"x": 10.0})
    b = SensitivityEngine(trials=50, seed=2).estimate(linear, {"x": 10.0})
    assert a.distributions["y"].mean != b.distributions["y"].mean


def test_non_numeric_inputs_pass_through_unperturbed():
    seen = []

    def calc(values):
        seen.append(values["label"])
        return {"y": values["x"]}

    SensitivityEngine(trials=20, seed=1).estimate(calc, {"x": 1.0, "label": "copper"})
    assert set(seen) == {"copper"}


def test_failed_trials_are_excluded_and_reported():
    def sometimes_fails(values):
        if values["x"] > 10.5:
            raise ZeroDivisionError("unstable")
        return {"y": values["x"]}

    report = SensitivityEngine(trials=200, seed=2).estimate(sometimes_fails, {"x": 10.0})

    assert 0 < report.failed_trials < 100
    assert report.distributions["y"].upper95 <= 10.5
    assert any("failed" in warning for warning in report.warnings)


def test_non_finite_metrics_count_as_failures():
    def nan_above(values):
        return {"y": float("nan") if values["x"] > 10.0 else values["x"]}

    report = SensitivityEngine(trials=200, seed=4).estimate(nan_above, {"x": 9.8})
    assert report.failed_trials > 0
    assert math.isfinite(report.distributions["y"].mean)


def test_majority_failures_raise_instability():
    def mostly_fails(values):
        if values["x"] > 9.0:
            raise ValueError("bad region")
        return {"y": values["x"]}

    with pytest.raises(SensitivityInstability) as excinfo:
        SensitivityEngine(trials=100, seed=1).estimate(mostly_fails, {"x": 10.0})
    assert excinfo.value.failed > 50
    assert excinfo.value.total == 100


def test_failed_baseline_takes_metrics_from_first_successful_trial():
    """Only the exact baseline point fails; the perturbed trials still report."""
    def fails_at_baseline(values):
        if values["x"] == 10.0:
            raise ValueError("singular at baseline")
        return {"y": values["x"], "label": "n/a"}

    report = SensitivityEngine(trials=60, seed=3).estimate(fails_at_baseline, {"x": 10.0})

    assert list(report.distributions) == ["y"]
    assert report.primary_metric == "y"
    assert report.failed_trials == 0
    assert any("Baseline evaluation failed" in warning for warning in report.warnings)


def test_every_evaluation_failing_raises_instability():
    def always_fails(values):
        raise ArithmeticError("no solution")

    with pytest.raises(SensitivityInstability) as excinfo:
        SensitivityEngine(trials=20, seed=1).estimate(always_fails, {"x": 1.0})
    assert excinfo.value.failed == 20
    assert excinfo.value.total == 20


def test_failed_hotspot_evaluation_is_omitted_with_warning():
    def calc(values):
        if values["z"] > 1.04:
            raise ValueError("edge")
        return {"y": values["x"] + values["z"]}

    report = SensitivityEngine(trials=50, seed=1).estimate(calc, {"x": 1.0, "z": 1.0}, primary_metric="y")

    assert [h.parameter for h in report.hotspots] == ["x"]
    assert any("z" in warning for warning in report.warnings)


def test_cancellation_between_trials_raises():
    token = CancellationToken()
    calls = []

    def calc(values):
        calls.append(1)
        if len(calls) == 5:
            token.cancel()
        return {"y": values["x"]}

    with pytest.raises(ScenarioCancelled):
        SensitivityEngine(trials=500, seed=1, max_workers=1).estimate(calc, {"x": 1.0}, cancel_token=token)
    assert len(calls) < 500


def test_method_note_and_frames():
    report = SensitivityEngine(trials=20, seed=1).estimate(linear, {"x": 1.0, "z": 1.0}, primary_metric="y")

    assert "one-at-a-time" in report.method_note
    hotspots = report.hotspots_frame()
    assert list(hotspots.columns) == ["rank", "parameter", "impact_score"]
    assert list(hotspots["rank"]) == [1, 2]
    assert list(report.distributions_frame()["metric"]) == ["y"]


def test_stage_metric_function_drives_real_calculator():
    """The adapter perturbs a stage's resolved inputs through its calculator."""
    inputs = input_set(StageId.MINING)
    metric_fn = stage_metric_function(StageId.MINING, inputs, DependencyContext(), 1.0)
    primary = get_definition(StageId.MINING).primary_metric

    report = SensitivityEngine(trials=100, seed=42).estimate(
        metric_fn, inputs.numeric_values(), primary_metric=primary
    )

    assert primary in report.distributions
    assert "AirPollutantEmissionsKilogramsPerFunctionalUnitForMining.SulfurDioxide" in report.distributions
    ranked = [h.parameter for h in report.hotspots]
    # Ore grade drives the ore requirement and therefore every footprint
    assert ranked[0] == "OreGradePercent"
    assert {h.parameter for h in report.hotspots} == set(inputs.numeric_values())
