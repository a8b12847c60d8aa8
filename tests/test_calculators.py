"""
Tests for the six stage calculators.
"""

from __future__ import annotations

import math

import pytest

from lca_engine.errors import DependencyUnavailable, ValidationError
from lca_engine.schemas.stage import DependencyContext, StageId, StageInputSet
from lca_engine.stages.calculators import CALCULATORS, get_calculator
from lca_engine.stages.factors import DEFAULT_FACTORS as F

from conftest import STAGE_INPUTS, input_set


def _compute(stage: StageId, context: DependencyContext = None, fu: float = 1.0, **overrides):
    return get_calculator(stage)(input_set(stage, **overrides), context or DependencyContext(), fu)


def _chain_context():
    mining = _compute(StageId.MINING)
    concentration = _compute(StageId.CONCENTRATION, DependencyContext.from_results([mining]))
    smelting = _compute(StageId.SMELTING, DependencyContext.from_results([concentration]))
    return mining, concentration, smelting


def test_mining_example_with_default_recoveries():
    """FU=1 t, grade 2% and no downstream results gives ~61.9 t of ore."""
    result = _compute(StageId.MINING)

    ore = result.derived["OreRequiredTonnesPerFunctionalUnit"]
    assert ore == pytest.approx(1.0 / (0.02 * 0.85 * 0.95))
    assert round(ore, 1) == 61.9
    assert result.outputs["OreRequiredTonnesPerFunctionalUnit"] == ore
    assert result.metadata["downstreamRecoveriesAvailable"] is False
    assert result.metadata["recoveryMode"] == "default"
    assert "default" in result.metadata["log"]


def test_mining_footprints_follow_emission_factors():
    """Carbon, energy and water scale with the ore requirement."""
    result = _compute(StageId.MINING)
    ore = result.derived["OreRequiredTonnesPerFunctionalUnit"]

    diesel = 3.5 * ore
    electricity = 25.0 * ore
    reagents = 5.0 * ore
    tkm = 15.0 * ore
    expected_carbon = (
        diesel * F.diesel_co2_per_liter
        + electricity * F.electricity_co2_per_kwh
        + reagents * F.reagent_co2_per_kg
        + tkm * F.transport_co2_per_tkm
    )
    outputs = result.outputs
    assert outputs["CarbonFootprintKilogramsCarbonDioxideEquivalentPerFunctionalUnitForMining"] == pytest.approx(expected_carbon)
    assert outputs["EnergyFootprintMegajoulesPerFunctionalUnitForMining"] == pytest.approx(
        electricity * 3.6 + diesel * 38.6
    )
    assert outputs["WaterFootprintCubicMetersPerFunctionalUnitForMining"] == pytest.approx(2.8 * ore)

    pollutants = outputs["AirPollutantEmissionsKilogramsPerFunctionalUnitForMining"]
    assert set(pollutants) == {"SulfurDioxide", "NitrogenOxides", "ParticulateMatter"}
    assert all(value > 0 for value in pollutants.values())


def test_mining_uses_actual_recoveries_when_downstream_exists():
    """Concentration and Smelting results replace the default recoveries."""
    _, concentration, smelting = _chain_context()
    context = DependencyContext.from_results([concentration, smelting])

    result = _compute(StageId.MINING, context)

    assert result.metadata["downstreamRecoveriesAvailable"] is True
    assert result.metadata["recoveryMode"] == "actual"
    assert result.metadata["recoveriesUsed"] == {"concentration": 0.88, "smelting": 0.96}
    assert result.derived["OreRequiredTonnesPerFunctionalUnit"] == pytest.approx(1.0 / (0.02 * 0.88 * 0.96))


def test_mining_with_only_one_downstream_result_uses_defaults():
    _, concentration, _ = _chain_context()
    result = _compute(StageId.MINING, DependencyContext.from_results([concentration]))
    assert result.metadata["recoveryMode"] == "default"


def test_concentration_requires_mining():
    """Concentration without a Mining result is a dependency error, not a guess."""
    with pytest.raises(DependencyUnavailable) as excinfo:
        _compute(StageId.CONCENTRATION)
    assert excinfo.value.upstream == "mining"


def test_smelting_requires_concentration():
    with pytest.raises(DependencyUnavailable):
        _compute(StageId.SMELTING)


def test_concentration_mass_balance():
    mining, concentration, _ = _chain_context()
    ore = mining.derived["OreRequiredTonnesPerFunctionalUnit"]

    concentrate = concentration.derived["ConcentrateMassTonnesPerFunctionalUnit"]
    assert concentrate == pytest.approx(ore / 31.0)
    assert concentration.outputs["TailingsMassTonnesPerFunctionalUnit"] == pytest.approx(concentrate * 30.0)
    assert concentration.derived["RecoveryFractionFromConcentration"] == pytest.approx(0.88)
    # 80% of process water is recycled
    assert concentration.outputs["WaterFootprintCubicMetersPerFunctionalUnitForConcentration"] == pytest.approx(
        6.0 * concentrate * 0.2
    )


def test_smelting_carbon_and_abatement():
    _, concentration, smelting = _chain_context()
    metal = concentration.derived["ConcentrateMassTonnesPerFunctionalUnit"] * 0.96

    assert smelting.derived["MetalMassTonnesPerFunctionalUnit"] == pytest.approx(metal)
    expected_carbon = 3500.0 * metal * 0.82 + 150.0 * metal * F.coke_co2_per_kg + 80.0 * metal * 1.2
    assert smelting.outputs[
        "CarbonFootprintKilogramsCarbonDioxideEquivalentPerFunctionalUnitForSmelting"
    ] == pytest.approx(expected_carbon)

    unabated = get_calculator(StageId.SMELTING)(
        input_set(StageId.SMELTING, EmissionControlEfficiencyPercent=0.0),
        DependencyContext.from_results([concentration]),
        1.0,
    )
    key = "AirPollutantEmissionsKilogramsPerFunctionalUnitForSmelting"
    assert smelting.outputs[key]["SulfurDioxide"] == pytest.approx(unabated.outputs[key]["SulfurDioxide"] * 0.1)
    assert smelting.metadata["totalRecoveryFromOre"] == pytest.approx(0.88 * 0.96)


def test_fabrication_outputs():
    result = _compute(StageId.FABRICATION, fu=2.0)
    energy = 800.0 * 2.0
    expected_carbon = energy * 0.6 * 0.82 + 20.0 * 2.0 * 1.2

    outputs = result.outputs
    assert outputs["CarbonFootprintKilogramsCarbonDioxideEquivalentPerFunctionalUnitForFabrication"] == pytest.approx(expected_carbon)
    assert outputs["EnergyFootprintMegajoulesPerFunctionalUnitForFabrication"] == pytest.approx(energy * 3.6)
    assert outputs["RecycledContentPercent"] == 30.0
    assert outputs["YieldEfficiencyPercent"] == 95.0


def test_use_phase_lifetime_and_carbon():
    result = _compute(StageId.USE_PHASE)
    outputs = result.outputs

    assert outputs["LifetimeEfficiencyYearsPerFunctionalUnit"] == pytest.approx(24.5)
    assert outputs[
        "OperationalCarbonFootprintKilogramsCarbonDioxideEquivalentPerFunctionalUnitOverLifetime"
    ] == pytest.approx(10.0 * 25 * 0.82)
    assert outputs[
        "MaintenanceCarbonFootprintKilogramsCarbonDioxideEquivalentPerFunctionalUnitOverLifetime"
    ] == pytest.approx(100.0 * 25 * 0.82 + 5.0 * 25 * 1.2)
    assert outputs["ReuseFactorPercent"] == 60.0


def test_end_of_life_mass_balance():
    result = _compute(StageId.END_OF_LIFE)
    outputs = result.outputs

    assert outputs["EndOfLifeRecyclingRatePercent"] == pytest.approx(72.0)
    assert outputs["RecycledMassTonnesPerFunctionalUnit"] == pytest.approx(0.72)
    assert outputs["LandfilledMassTonnesPerFunctionalUnit"] == pytest.approx(0.1)
    assert outputs["ScrapUtilizationFraction"] == pytest.approx(0.72)
    assert outputs[
        "CarbonFootprintKilogramsCarbonDioxideEquivalentPerFunctionalUnitForEndOfLife"
    ] == pytest.approx(1200.0 * 0.72 * 0.82 + 0.72 * 100.0 * 0.062)
    assert result.metadata["massBalance"]["uncollectedMass"] == pytest.approx(0.2)


@pytest.mark.parametrize("stage", [StageId.FABRICATION, StageId.USE_PHASE, StageId.END_OF_LIFE])
def test_independent_stages_ignore_context(stage):
    """Downstream stages only use the functional unit mass."""
    mining, concentration, smelting = _chain_context()
    full = DependencyContext.from_results([mining, concentration, smelting])
    assert _compute(stage, full) == _compute(stage)


@pytest.mark.parametrize("stage", list(StageId))
def test_calculators_are_deterministic(stage):
    """Identical inputs and context always give identical results."""
    mining, concentration, smelting = _chain_context()
    context = DependencyContext.from_results([mining, concentration, smelting])
    first = _compute(stage, context)
    second = _compute(stage, context)
    assert first == second
    assert all(
        math.isfinite(value)
        for value in first.flat_outputs().values()
    )


def test_registry_covers_every_stage():
    assert set(CALCULATORS) == set(StageId)
    assert set(STAGE_INPUTS) == set(StageId)


def test_missing_mandatory_input_raises_validation_error():
    inputs = StageInputSet.from_values(StageId.MINING, {"OreGradePercent": 2.0})
    with pytest.raises(ValidationError):
        get_calculator(StageId.MINING)(inputs, DependencyContext(), 1.0)
