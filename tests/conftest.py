"""Shared stage inputs for the engine tests."""

from __future__ import annotations

import pytest

from lca_engine.schemas.stage import ProjectContext, StageId, StageInputSet

MINING_INPUTS = {
    "OreGradePercent": 2.0,
    "DieselUseLitersPerTonneOre": 3.5,
    "ElectricityUseKilowattHoursPerTonneOre": 25.0,
    "ReagentsKilogramsPerTonneOre": 5.0,
    "WaterWithdrawalCubicMetersPerTonneOre": 2.8,
    "TransportDistanceKilometersToConcentrator": 15.0,
}

CONCENTRATION_INPUTS = {
    "RecoveryYieldPercent": 88.0,
    "GrindingEnergyKilowattHoursPerTonneConcentrate": 20.0,
    "TailingsVolumeTonnesPerTonneConcentrate": 30.0,
    "ConcentrationReagentsKilogramsPerTonneConcentrate": 15.0,
    "ConcentrationWaterCubicMetersPerTonneConcentrate": 6.0,
    "WaterRecycleRatePercent": 80.0,
}

SMELTING_INPUTS = {
    "SmeltEnergyKilowattHoursPerTonneMetal": 3500.0,
    "SmeltRecoveryPercent": 96.0,
    "CokeUseKilogramsPerTonneMetal": 150.0,
    "FuelSharePercent": 45.0,
    "FluxesKilogramsPerTonneMetal": 80.0,
    "EmissionControlEfficiencyPercent": 90.0,
}

FABRICATION_INPUTS = {
    "FabricationEnergyKilowattHoursPerTonneProduct": 800.0,
    "ScrapInputPercent": 30.0,
    "YieldLossPercent": 5.0,
    "FabricationElectricityRenewableSharePercent": 40.0,
    "AncillaryMaterialsKilogramsPerTonneProduct": 20.0,
    "FabricationWaterCubicMetersPerTonneProduct": 2.5,
}

USE_PHASE_INPUTS = {
    "ProductLifetimeYears": 25.0,
    "OperationalEnergyKilowattHoursPerYearPerFunctionalUnit": 10.0,
    "FailureRatePercent": 2.0,
    "MaintenanceEnergyKilowattHoursPerYearPerFunctionalUnit": 100.0,
    "MaintenanceMaterialsKilogramsPerYearPerFunctionalUnit": 5.0,
    "ReusePotentialPercent": 60.0,
}

END_OF_LIFE_INPUTS = {
    "CollectionRatePercent": 80.0,
    "RecyclingEfficiencyPercent": 90.0,
    "RecyclingEnergyKilowattHoursPerTonneRecycled": 1200.0,
    "TransportDistanceKilometersToRecycler": 100.0,
    "DowncyclingFractionPercent": 20.0,
    "LandfillSharePercent": 10.0,
}

STAGE_INPUTS = {
    StageId.MINING: MINING_INPUTS,
    StageId.CONCENTRATION: CONCENTRATION_INPUTS,
    StageId.SMELTING: SMELTING_INPUTS,
    StageId.FABRICATION: FABRICATION_INPUTS,
    StageId.USE_PHASE: USE_PHASE_INPUTS,
    StageId.END_OF_LIFE: END_OF_LIFE_INPUTS,
}


def input_set(stage: StageId, **overrides) -> StageInputSet:
    values = {**STAGE_INPUTS[stage], **overrides}
    return StageInputSet.from_values(stage, values)


@pytest.fixture
def project() -> ProjectContext:
    return ProjectContext(project_name="test", metal_type="Copper", functional_unit_mass_tonnes=1.0)
