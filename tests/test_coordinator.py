"""
Tests for stage dependency coordination and the chain runner.
"""

from __future__ import annotations

import pytest

from lca_engine.schemas.stage import DependencyContext, StageId
from lca_engine.stages.coordinator import (
    STAGE_ORDER,
    InMemoryStageStore,
    build_context,
    chain_summary,
    compute_stage,
    is_mining_stale,
    resolve_downstream_recoveries,
    run_chain,
)
from lca_engine.stages.factors import DEFAULT_RECOVERIES
from lca_engine.stages.recovery_policy import RecoveryMode

from conftest import STAGE_INPUTS, input_set


def _all_inputs():
    return {stage: input_set(stage) for stage in STAGE_INPUTS}


def test_stage_order_is_fixed():
    assert STAGE_ORDER == [
        StageId.MINING,
        StageId.CONCENTRATION,
        StageId.SMELTING,
        StageId.FABRICATION,
        StageId.USE_PHASE,
        StageId.END_OF_LIFE,
    ]


def test_empty_context_uses_default_recoveries():
    recoveries, mode = resolve_downstream_recoveries(DependencyContext())
    assert mode is RecoveryMode.DEFAULT
    assert recoveries == DEFAULT_RECOVERIES
    assert recoveries.combined == pytest.approx(0.85 * 0.95)


def test_build_context_only_contains_dependencies():
    """Contexts are fresh snapshots of the stages a calculator reads."""
    results = run_chain(_all_inputs(), 1.0)
    store = InMemoryStageStore(results)

    assert set(build_context(StageId.MINING, store)) == {StageId.CONCENTRATION, StageId.SMELTING}
    assert set(build_context(StageId.SMELTING, store)) == {StageId.CONCENTRATION}
    assert len(build_context(StageId.FABRICATION, store)) == 0


def test_build_context_skips_stages_missing_from_the_lookup():
    results = run_chain(_all_inputs(), 1.0)
    concentration = results[StageId.CONCENTRATION]
    store = InMemoryStageStore({StageId.CONCENTRATION: concentration})

    context = build_context(StageId.MINING, store)

    assert dict(context) == dict(DependencyContext.from_results([concentration]))
    assert StageId.SMELTING not in context


def test_run_chain_reconciles_mining_once():
    """With reconcile, Mining ends up using the computed downstream recoveries."""
    results = run_chain(_all_inputs(), 1.0, reconcile=True)

    assert list(results) == STAGE_ORDER
    mining = results[StageId.MINING]
    assert mining.metadata["downstreamRecoveriesAvailable"] is True
    assert mining.derived["OreRequiredTonnesPerFunctionalUnit"] == pytest.approx(1.0 / (0.02 * 0.88 * 0.96))
    assert not is_mining_stale(mining, build_context(StageId.MINING, InMemoryStageStore(results)))

    # Concentration was recomputed from the reconciled ore requirement
    concentration = results[StageId.CONCENTRATION]
    assert concentration.metadata["oreRequiredFromMining"] == pytest.approx(
        mining.derived["OreRequiredTonnesPerFunctionalUnit"]
    )


def test_run_chain_without_reconcile_keeps_default_mining():
    results = run_chain(_all_inputs(), 1.0, reconcile=False)
    mining = results[StageId.MINING]

    assert mining.metadata["downstreamRecoveriesAvailable"] is False
    assert mining.derived["OreRequiredTonnesPerFunctionalUnit"] == pytest.approx(1.0 / (0.02 * 0.85 * 0.95))
    assert is_mining_stale(mining, build_context(StageId.MINING, InMemoryStageStore(results)))


def test_reconciled_chain_is_idempotent():
    """Recomputing Mining against a reconciled chain changes nothing."""
    results = run_chain(_all_inputs(), 1.0)
    store = InMemoryStageStore(results)

    again = compute_stage(StageId.MINING, input_set(StageId.MINING), build_context(StageId.MINING, store), 1.0)
    assert again == results[StageId.MINING]


def test_partial_chain_runs_independent_stages():
    inputs = {StageId.FABRICATION: input_set(StageId.FABRICATION), StageId.END_OF_LIFE: input_set(StageId.END_OF_LIFE)}
    results = run_chain(inputs, 1.0)
    assert list(results) == [StageId.FABRICATION, StageId.END_OF_LIFE]


def test_in_memory_store_accepts_stage_names():
    results = run_chain({StageId.USE_PHASE: input_set(StageId.USE_PHASE)}, 1.0)
    store = InMemoryStageStore(results)
    assert store.get_stage_result("Use Phase") is results[StageId.USE_PHASE]
    assert store.get_stage_result(StageId.MINING) is None


def test_chain_summary_has_total_row():
    results = run_chain(_all_inputs(), 1.0)
    df = chain_summary(results)

    assert list(df.columns) == ["stage", "carbon_kgco2e", "energy_mj", "water_m3"]
    assert list(df["stage"]) == [stage.value for stage in STAGE_ORDER] + ["total"]
    body = df[df["stage"] != "total"]
    total = df[df["stage"] == "total"].iloc[0]
    assert total["carbon_kgco2e"] == pytest.approx(body["carbon_kgco2e"].sum())
    assert (body["carbon_kgco2e"] >= 0).all()
