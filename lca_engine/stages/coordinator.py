"""
Stage dependency coordination.

The chain order is fixed. Concentration needs Mining, Smelting needs
Concentration, and Mining itself consumes the downstream recoveries of
Concentration and Smelting when they exist (see ``recovery_policy``). The
coupling is resolved by the recovery policy plus at most one explicit
recomputation, never by iteration.
"""

from __future__ import annotations

from typing import Dict, List, Mapping, Optional

import pandas as pd

from lca_engine.schemas.stage import (
    DependencyContext,
    StageId,
    StageInputSet,
    StageResult,
    StageResultLookup,
)
from lca_engine.stages.calculators import get_calculator
from lca_engine.stages.recovery_policy import (
    RecoveryMode,
    is_mining_stale,
    resolve_downstream_recoveries,
)
from lca_engine.utils.logging_utils import get_logger

logger = get_logger(__name__)

STAGE_ORDER: List[StageId] = [
    StageId.MINING,
    StageId.CONCENTRATION,
    StageId.SMELTING,
    StageId.FABRICATION,
    StageId.USE_PHASE,
    StageId.END_OF_LIFE,
]

# Stages whose results a stage's calculator reads
DEPENDENCIES: Dict[StageId, List[StageId]] = {
    StageId.MINING: [StageId.CONCENTRATION, StageId.SMELTING],
    StageId.CONCENTRATION: [StageId.MINING],
    StageId.SMELTING: [StageId.CONCENTRATION],
    StageId.FABRICATION: [],
    StageId.USE_PHASE: [],
    StageId.END_OF_LIFE: [],
}

COUPLED_STAGES = (StageId.MINING, StageId.CONCENTRATION, StageId.SMELTING)


class InMemoryStageStore(StageResultLookup):
    """Dict-backed lookup, used by the chain runner, the CLI and tests."""

    def __init__(self, results: Optional[Mapping[StageId, StageResult]] = None):
        self._results: Dict[StageId, StageResult] = dict(results or {})

    def get_stage_result(self, stage: StageId) -> Optional[StageResult]:
        return self._results.get(StageId.parse(stage))

    def put(self, result: StageResult) -> None:
        self._results[result.stage] = result

    def snapshot(self) -> Dict[StageId, StageResult]:
        return dict(self._results)


def build_context(stage: StageId, lookup: StageResultLookup) -> DependencyContext:
    """Fresh read-only snapshot of the results ``stage`` depends on."""
    stage = StageId.parse(stage)
    return DependencyContext.from_lookup(lookup, DEPENDENCIES[stage])


def compute_stage(
    stage: StageId,
    inputs: StageInputSet,
    context: DependencyContext,
    functional_unit_mass: float,
) -> StageResult:
    stage = StageId.parse(stage)
    result = get_calculator(stage)(inputs, context, functional_unit_mass)
    logger.info(f"{stage.label}: computed {len(result.outputs)} outputs")
    return result


def run_chain(
    inputs_by_stage: Mapping[StageId, StageInputSet],
    functional_unit_mass: float,
    reconcile: bool = True,
) -> Dict[StageId, StageResult]:
    """
    Compute the supplied stages in chain order.

    Mining first runs with default recoveries because Concentration and
    Smelting depend on it. With ``reconcile`` the Mining -> Concentration ->
    Smelting sub-chain is recomputed exactly once after actual recoveries
    exist, so the returned Mining result uses them.

    Args:
        inputs_by_stage: resolved inputs keyed by stage (any subset of stages)
        functional_unit_mass: functional unit mass in tonnes
        reconcile: perform the single recomputation pass

    Returns:
        Stage results keyed by stage, in chain order
    """
    inputs = {StageId.parse(stage): value for stage, value in inputs_by_stage.items()}
    store = InMemoryStageStore()

    for stage in STAGE_ORDER:
        if stage not in inputs:
            continue
        store.put(compute_stage(stage, inputs[stage], build_context(stage, store), functional_unit_mass))

    mining = store.get_stage_result(StageId.MINING)
    if reconcile and mining is not None and is_mining_stale(mining, build_context(StageId.MINING, store)):
        logger.info("Downstream recoveries now available; recomputing Mining, Concentration and Smelting once")
        for stage in COUPLED_STAGES:
            if stage in inputs:
                store.put(compute_stage(stage, inputs[stage], build_context(stage, store), functional_unit_mass))

    snapshot = store.snapshot()
    return {stage: snapshot[stage] for stage in STAGE_ORDER if stage in snapshot}


# Headline indicator of each kind per stage; None where a stage does not report it
_SUMMARY_KEYS: Dict[StageId, Dict[str, Optional[str]]] = {
    StageId.MINING: {
        "carbon_kgco2e": "CarbonFootprintKilogramsCarbonDioxideEquivalentPerFunctionalUnitForMining",
        "energy_mj": "EnergyFootprintMegajoulesPerFunctionalUnitForMining",
        "water_m3": "WaterFootprintCubicMetersPerFunctionalUnitForMining",
    },
    StageId.CONCENTRATION: {
        "carbon_kgco2e": "CarbonFootprintKilogramsCarbonDioxideEquivalentPerFunctionalUnitForConcentration",
        "energy_mj": "EnergyFootprintMegajoulesPerFunctionalUnitForConcentration",
        "water_m3": "WaterFootprintCubicMetersPerFunctionalUnitForConcentration",
    },
    StageId.SMELTING: {
        "carbon_kgco2e": "CarbonFootprintKilogramsCarbonDioxideEquivalentPerFunctionalUnitForSmelting",
        "energy_mj": "EnergyFootprintMegajoulesPerFunctionalUnitForSmelting",
        "water_m3": None,
    },
    StageId.FABRICATION: {
        "carbon_kgco2e": "CarbonFootprintKilogramsCarbonDioxideEquivalentPerFunctionalUnitForFabrication",
        "energy_mj": "EnergyFootprintMegajoulesPerFunctionalUnitForFabrication",
        "water_m3": "WaterFootprintCubicMetersPerFunctionalUnitForFabrication",
    },
    StageId.USE_PHASE: {
        "carbon_kgco2e": None,
        "energy_mj": "EnergyFootprintMegajoulesPerFunctionalUnitForUsePhase",
        "water_m3": None,
    },
    StageId.END_OF_LIFE: {
        "carbon_kgco2e": "CarbonFootprintKilogramsCarbonDioxideEquivalentPerFunctionalUnitForEndOfLife",
        "energy_mj": None,
        "water_m3": None,
    },
}

_USE_PHASE_CARBON = (
    "OperationalCarbonFootprintKilogramsCarbonDioxideEquivalentPerFunctionalUnitOverLifetime",
    "MaintenanceCarbonFootprintKilogramsCarbonDioxideEquivalentPerFunctionalUnitOverLifetime",
)


def chain_summary(results: Mapping[StageId, StageResult]) -> pd.DataFrame:
    """Headline carbon, energy and water footprints per stage, plus a total row."""
    rows = []
    for stage in STAGE_ORDER:
        result = results.get(stage)
        if result is None:
            continue
        row = {"stage": stage.value}
        for column, key in _SUMMARY_KEYS[stage].items():
            row[column] = float(result.outputs[key]) if key else 0.0
        if stage is StageId.USE_PHASE:
            row["carbon_kgco2e"] = sum(float(result.outputs[key]) for key in _USE_PHASE_CARBON)
        rows.append(row)

    df = pd.DataFrame(rows, columns=["stage", "carbon_kgco2e", "energy_mj", "water_m3"])
    if not df.empty:
        totals = df[["carbon_kgco2e", "energy_mj", "water_m3"]].sum()
        total_row = pd.DataFrame([{"stage": "total", **totals.to_dict()}], columns=df.columns)
        df = pd.concat([df, total_row], ignore_index=True)
    return df


__all__ = [
    "STAGE_ORDER",
    "DEPENDENCIES",
    "InMemoryStageStore",
    "RecoveryMode",
    "build_context",
    "compute_stage",
    "chain_summary",
    "is_mining_stale",
    "resolve_downstream_recoveries",
    "run_chain",
]
