"""
Stage calculators: one pure function per production-chain stage.

Each calculator maps ``(StageInputSet, DependencyContext, functional_unit_mass)``
to a :class:`StageResult`. Calculators perform no I/O and read no global
mutable state, so identical arguments always give identical results.

Units: percent inputs are converted to fractions, and per-tonne intensities are
scaled to the functional unit through a mass multiplier (ore mass for Mining,
concentrate mass for Concentration, metal mass for Smelting, product mass for
the downstream stages).
"""

from __future__ import annotations

from typing import Callable, Dict, Iterable, Tuple

from lca_engine.errors import DependencyUnavailable
from lca_engine.schemas.stage import DependencyContext, StageId, StageInputSet, StageResult
from lca_engine.stages.factors import DEFAULT_FACTORS, PollutantFactors
from lca_engine.stages.recovery_policy import RecoveryMode, recovery_log, resolve_downstream_recoveries

StageCalculator = Callable[[StageInputSet, DependencyContext, float], StageResult]

F = DEFAULT_FACTORS


def _pollutants(activities: Iterable[Tuple[float, PollutantFactors]], abatement: float = 0.0) -> Dict[str, float]:
    """Sum SO2/NOx/PM over (activity amount, factors) pairs, scaled by (1 - abatement)."""
    so2 = nox = pm = 0.0
    for amount, factors in activities:
        so2 += amount * factors.sulfur_dioxide
        nox += amount * factors.nitrogen_oxides
        pm += amount * factors.particulate_matter
    keep = 1.0 - abatement
    return {
        "SulfurDioxide": so2 * keep,
        "NitrogenOxides": nox * keep,
        "ParticulateMatter": pm * keep,
    }


def _require(context: DependencyContext, stage: StageId, upstream: StageId, keys: Tuple[str, ...]) -> Dict[str, float]:
    if upstream not in context:
        raise DependencyUnavailable(stage.value, upstream.value, list(keys))
    values = {}
    missing = []
    for key in keys:
        value = context.derived_value(upstream, key)
        if value is None:
            missing.append(key)
        else:
            values[key] = value
    if missing:
        raise DependencyUnavailable(stage.value, upstream.value, missing)
    return values


def calculate_mining(inputs: StageInputSet, context: DependencyContext, functional_unit_mass: float) -> StageResult:
    recoveries, mode = resolve_downstream_recoveries(context)

    ore_grade = inputs.number("OreGradePercent") / 100.0
    ore_required = functional_unit_mass / (ore_grade * recoveries.combined)

    diesel = inputs.number("DieselUseLitersPerTonneOre") * ore_required
    electricity = inputs.number("ElectricityUseKilowattHoursPerTonneOre") * ore_required
    reagents = inputs.number("ReagentsKilogramsPerTonneOre", 0.0) * ore_required
    water = inputs.number("WaterWithdrawalCubicMetersPerTonneOre", 0.0) * ore_required
    transport = ore_required * inputs.number("TransportDistanceKilometersToConcentrator", 0.0)

    derived = {
        "OreGradeFraction": ore_grade,
        "CombinedDownstreamRecoveryFraction": recoveries.combined,
        "OreRequiredTonnesPerFunctionalUnit": ore_required,
        "DieselUseLitersPerFunctionalUnit": diesel,
        "ElectricityUseKilowattHoursPerFunctionalUnit": electricity,
        "ReagentsKilogramsPerFunctionalUnit": reagents,
        "WaterWithdrawalCubicMetersPerFunctionalUnit": water,
        "TransportTonnesKilometersPerFunctionalUnit": transport,
    }

    carbon = (
        diesel * F.diesel_co2_per_liter
        + electricity * F.electricity_co2_per_kwh
        + reagents * F.reagent_co2_per_kg
        + transport * F.transport_co2_per_tkm
    )
    energy = electricity * F.electricity_mj_per_kwh + diesel * F.diesel_mj_per_liter

    outputs = {
        "CarbonFootprintKilogramsCarbonDioxideEquivalentPerFunctionalUnitForMining": carbon,
        "EnergyFootprintMegajoulesPerFunctionalUnitForMining": energy,
        "WaterFootprintCubicMetersPerFunctionalUnitForMining": water,
        "AirPollutantEmissionsKilogramsPerFunctionalUnitForMining": _pollutants([
            (diesel, F.diesel_pollutants),
            (electricity, F.electricity_pollutants),
            (reagents, F.reagent_pollutants),
            (transport, F.transport_pollutants),
        ]),
        "OreRequiredTonnesPerFunctionalUnit": ore_required,
    }
    metadata = {
        "downstreamRecoveriesAvailable": mode is RecoveryMode.ACTUAL,
        "recoveryMode": mode.value,
        "recoveriesUsed": {"concentration": recoveries.concentration, "smelting": recoveries.smelting},
        "log": recovery_log(mode, recoveries),
        "functionalUnitUsed": functional_unit_mass,
    }
    return StageResult(StageId.MINING, derived, outputs, metadata)


def calculate_concentration(inputs: StageInputSet, context: DependencyContext, functional_unit_mass: float) -> StageResult:
    upstream = _require(context, StageId.CONCENTRATION, StageId.MINING, ("OreRequiredTonnesPerFunctionalUnit",))
    ore_required = upstream["OreRequiredTonnesPerFunctionalUnit"]

    recovery = inputs.number("RecoveryYieldPercent") / 100.0
    tailings_ratio = inputs.number("TailingsVolumeTonnesPerTonneConcentrate")
    concentrate_mass = ore_required / (tailings_ratio + 1.0)
    grinding = inputs.number("GrindingEnergyKilowattHoursPerTonneConcentrate") * concentrate_mass
    reagents = inputs.number("ConcentrationReagentsKilogramsPerTonneConcentrate", 0.0) * concentrate_mass
    recycle = inputs.number("WaterRecycleRatePercent", 0.0) / 100.0
    water_net = inputs.number("ConcentrationWaterCubicMetersPerTonneConcentrate", 0.0) * concentrate_mass * (1.0 - recycle)
    tailings_mass = concentrate_mass * tailings_ratio

    derived = {
        "RecoveryFractionFromConcentration": recovery,
        "ConcentrateMassTonnesPerFunctionalUnit": concentrate_mass,
        "GrindingEnergyKilowattHoursPerFunctionalUnit": grinding,
        "ConcentrationReagentsKilogramsPerFunctionalUnit": reagents,
        "ConcentrationWaterCubicMetersPerFunctionalUnitNet": water_net,
        "TailingsMassTonnesPerFunctionalUnit": tailings_mass,
    }
    outputs = {
        "CarbonFootprintKilogramsCarbonDioxideEquivalentPerFunctionalUnitForConcentration": (
            grinding * F.electricity_co2_per_kwh + reagents * F.reagent_co2_per_kg
        ),
        "EnergyFootprintMegajoulesPerFunctionalUnitForConcentration": grinding * F.electricity_mj_per_kwh,
        "WaterFootprintCubicMetersPerFunctionalUnitForConcentration": water_net,
        "TailingsMassTonnesPerFunctionalUnit": tailings_mass,
        "StageRecoveryFractionFromOreToConcentrate": recovery,
    }
    metadata = {
        "upstreamDataAvailable": True,
        "log": "Mining stage data found. Concentration calculations completed.",
        "oreRequiredFromMining": ore_required,
    }
    return StageResult(StageId.CONCENTRATION, derived, outputs, metadata)


def calculate_smelting(inputs: StageInputSet, context: DependencyContext, functional_unit_mass: float) -> StageResult:
    upstream = _require(
        context,
        StageId.SMELTING,
        StageId.CONCENTRATION,
        ("ConcentrateMassTonnesPerFunctionalUnit", "RecoveryFractionFromConcentration"),
    )
    concentrate_mass = upstream["ConcentrateMassTonnesPerFunctionalUnit"]
    concentration_recovery = upstream["RecoveryFractionFromConcentration"]

    recovery = inputs.number("SmeltRecoveryPercent") / 100.0
    metal_mass = concentrate_mass * recovery
    smelt_energy = inputs.number("SmeltEnergyKilowattHoursPerTonneMetal") * metal_mass
    coke = inputs.number("CokeUseKilogramsPerTonneMetal") * metal_mass
    fluxes = inputs.number("FluxesKilogramsPerTonneMetal", 0.0) * metal_mass
    abatement = inputs.number("EmissionControlEfficiencyPercent", 0.0) / 100.0

    derived = {
        "SmeltRecoveryFraction": recovery,
        "MetalMassTonnesPerFunctionalUnit": metal_mass,
        "SmeltEnergyKilowattHoursPerFunctionalUnit": smelt_energy,
        "CokeUseKilogramsPerFunctionalUnit": coke,
        "FluxesKilogramsPerFunctionalUnit": fluxes,
        "EmissionControlFraction": abatement,
    }
    carbon = (
        smelt_energy * F.electricity_co2_per_kwh
        + coke * F.coke_co2_per_kg
        + fluxes * F.reagent_co2_per_kg
    )
    energy = smelt_energy * F.electricity_mj_per_kwh + coke * F.coke_mj_per_kg
    outputs = {
        "CarbonFootprintKilogramsCarbonDioxideEquivalentPerFunctionalUnitForSmelting": carbon,
        "EnergyFootprintMegajoulesPerFunctionalUnitForSmelting": energy,
        "StageRecoveryFractionForSmelting": recovery,
        "AirPollutantEmissionsKilogramsPerFunctionalUnitForSmelting": _pollutants(
            [
                (smelt_energy, F.electricity_pollutants),
                (coke, F.reagent_pollutants),
                (fluxes, F.reagent_pollutants),
            ],
            abatement=abatement,
        ),
    }
    metadata = {
        "upstreamDataAvailable": True,
        "log": "Concentration stage data found. Smelting calculations completed.",
        "concentrateMassFromUpstream": concentrate_mass,
        "metalMassProduced": metal_mass,
        "totalRecoveryFromOre": concentration_recovery * recovery,
        "fuelSharePercent": inputs.number("FuelSharePercent", 0.0),
    }
    return StageResult(StageId.SMELTING, derived, outputs, metadata)


def calculate_fabrication(inputs: StageInputSet, context: DependencyContext, functional_unit_mass: float) -> StageResult:
    energy_kwh = inputs.number("FabricationEnergyKilowattHoursPerTonneProduct") * functional_unit_mass
    renewable_percent = inputs.number("FabricationElectricityRenewableSharePercent", 0.0)
    non_renewable = (100.0 - renewable_percent) / 100.0
    ancillary = inputs.number("AncillaryMaterialsKilogramsPerTonneProduct", 0.0) * functional_unit_mass
    water = inputs.number("FabricationWaterCubicMetersPerTonneProduct", 0.0) * functional_unit_mass
    scrap_percent = inputs.number("ScrapInputPercent")
    yield_loss_percent = inputs.number("YieldLossPercent")

    derived = {
        "FabricationEnergyKilowattHoursPerFunctionalUnit": energy_kwh,
        "FabricationElectricityNonRenewableShareFraction": non_renewable,
        "AncillaryMaterialsKilogramsPerFunctionalUnit": ancillary,
        "FabricationWaterCubicMetersPerFunctionalUnit": water,
        "ScrapInputFraction": scrap_percent / 100.0,
        "YieldEfficiencyFraction": (100.0 - yield_loss_percent) / 100.0,
    }
    outputs = {
        "CarbonFootprintKilogramsCarbonDioxideEquivalentPerFunctionalUnitForFabrication": (
            energy_kwh * non_renewable * F.electricity_co2_per_kwh + ancillary * F.reagent_co2_per_kg
        ),
        "EnergyFootprintMegajoulesPerFunctionalUnitForFabrication": energy_kwh * F.electricity_mj_per_kwh,
        "RecycledContentPercent": scrap_percent,
        "WaterFootprintCubicMetersPerFunctionalUnitForFabrication": water,
        "YieldEfficiencyPercent": 100.0 - yield_loss_percent,
    }
    metadata = {
        "independentStage": True,
        "log": "Fabrication calculations completed. This stage is independent of upstream processes.",
        "functionalUnitUsed": functional_unit_mass,
        "renewableEnergyShare": renewable_percent,
        "circularityIndicators": {
            "scrapInputFraction": derived["ScrapInputFraction"],
            "yieldEfficiency": derived["YieldEfficiencyFraction"],
            "recycledContent": scrap_percent,
        },
    }
    return StageResult(StageId.FABRICATION, derived, outputs, metadata)


def calculate_use_phase(inputs: StageInputSet, context: DependencyContext, functional_unit_mass: float) -> StageResult:
    lifetime = inputs.number("ProductLifetimeYears")
    failure = inputs.number("FailureRatePercent") / 100.0
    reuse_percent = inputs.number("ReusePotentialPercent", 0.0)
    effective_lifetime = lifetime * (1.0 - failure)
    operational_kwh = inputs.number("OperationalEnergyKilowattHoursPerYearPerFunctionalUnit") * lifetime
    maintenance_kwh = inputs.number("MaintenanceEnergyKilowattHoursPerYearPerFunctionalUnit", 0.0) * lifetime
    maintenance_kg = inputs.number("MaintenanceMaterialsKilogramsPerYearPerFunctionalUnit", 0.0) * lifetime

    derived = {
        "FailureFraction": failure,
        "ReusePotentialFraction": reuse_percent / 100.0,
        "EffectiveServiceLifetimeYearsPerFunctionalUnit": effective_lifetime,
        "TotalOperationalEnergyKilowattHoursOverLifetimePerFunctionalUnit": operational_kwh,
        "TotalMaintenanceEnergyKilowattHoursOverLifetimePerFunctionalUnit": maintenance_kwh,
        "TotalMaintenanceMaterialsKilogramsOverLifetimePerFunctionalUnit": maintenance_kg,
    }
    operational_carbon = operational_kwh * F.electricity_co2_per_kwh
    maintenance_carbon = maintenance_kwh * F.electricity_co2_per_kwh + maintenance_kg * F.reagent_co2_per_kg
    outputs = {
        "LifetimeEfficiencyYearsPerFunctionalUnit": effective_lifetime,
        "OperationalCarbonFootprintKilogramsCarbonDioxideEquivalentPerFunctionalUnitOverLifetime": operational_carbon,
        "MaintenanceCarbonFootprintKilogramsCarbonDioxideEquivalentPerFunctionalUnitOverLifetime": maintenance_carbon,
        "EnergyFootprintMegajoulesPerFunctionalUnitForUsePhase": (operational_kwh + maintenance_kwh) * F.electricity_mj_per_kwh,
        "ReuseFactorPercent": reuse_percent,
    }
    metadata = {
        "independentStage": True,
        "log": "Use phase calculations completed. This stage is independent of upstream processes.",
        "functionalUnitUsed": functional_unit_mass,
        "lifetimeAnalysis": {
            "nominalLifetime": lifetime,
            "effectiveLifetime": effective_lifetime,
            "failureImpact": failure,
        },
        "circularityIndicators": {
            "reusePotential": derived["ReusePotentialFraction"],
            "lifetimeEfficiency": effective_lifetime / lifetime,
        },
    }
    return StageResult(StageId.USE_PHASE, derived, outputs, metadata)


def calculate_end_of_life(inputs: StageInputSet, context: DependencyContext, functional_unit_mass: float) -> StageResult:
    collection_percent = inputs.number("CollectionRatePercent")
    efficiency_percent = inputs.number("RecyclingEfficiencyPercent")
    collection = collection_percent / 100.0
    efficiency = efficiency_percent / 100.0
    downcycling = inputs.number("DowncyclingFractionPercent", 0.0) / 100.0
    landfill = inputs.number("LandfillSharePercent", 0.0) / 100.0

    recovered = functional_unit_mass * collection * efficiency
    downcycled = recovered * downcycling
    landfilled = functional_unit_mass * landfill
    transport = recovered * inputs.number("TransportDistanceKilometersToRecycler", 0.0)
    recycling_kwh = inputs.number("RecyclingEnergyKilowattHoursPerTonneRecycled") * recovered

    derived = {
        "CollectionFraction": collection,
        "RecyclingEfficiencyFraction": efficiency,
        "DowncyclingFraction": downcycling,
        "LandfillFraction": landfill,
        "RecoveredMassTonnesPerFunctionalUnit": recovered,
        "DowncycledMassTonnesPerFunctionalUnit": downcycled,
        "LandfilledMassTonnesPerFunctionalUnit": landfilled,
        "TransportTonnesKilometersPerFunctionalUnitToRecycler": transport,
        "RecyclingEnergyKilowattHoursPerFunctionalUnit": recycling_kwh,
    }
    scrap_utilization = recovered / functional_unit_mass
    outputs = {
        "EndOfLifeRecyclingRatePercent": collection_percent * efficiency_percent / 100.0,
        "RecycledMassTonnesPerFunctionalUnit": recovered,
        "LandfilledMassTonnesPerFunctionalUnit": landfilled,
        "CarbonFootprintKilogramsCarbonDioxideEquivalentPerFunctionalUnitForEndOfLife": (
            recycling_kwh * F.electricity_co2_per_kwh + transport * F.transport_co2_per_tkm
        ),
        "ScrapUtilizationFraction": scrap_utilization,
    }
    metadata = {
        "independentStage": True,
        "log": "End-of-life calculations completed. This stage is independent of upstream processes.",
        "functionalUnitUsed": functional_unit_mass,
        "massBalance": {
            "totalMass": functional_unit_mass,
            "collectedMass": functional_unit_mass * collection,
            "recoveredMass": recovered,
            "downcycledMass": downcycled,
            "landfilledMass": landfilled,
            "uncollectedMass": functional_unit_mass * (1.0 - collection),
        },
        "circularityIndicators": {
            "collectionRate": collection,
            "recyclingEfficiency": efficiency,
            "scrapUtilization": scrap_utilization,
            "landfillDiversion": 1.0 - landfill,
        },
    }
    return StageResult(StageId.END_OF_LIFE, derived, outputs, metadata)


CALCULATORS: Dict[StageId, StageCalculator] = {
    StageId.MINING: calculate_mining,
    StageId.CONCENTRATION: calculate_concentration,
    StageId.SMELTING: calculate_smelting,
    StageId.FABRICATION: calculate_fabrication,
    StageId.USE_PHASE: calculate_use_phase,
    StageId.END_OF_LIFE: calculate_end_of_life,
}


def get_calculator(stage: StageId) -> StageCalculator:
    return CALCULATORS[StageId.parse(stage)]
