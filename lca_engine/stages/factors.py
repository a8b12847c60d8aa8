"""
Emission factors, default recoveries and per-metal reference values.

All constants are industry-average assumptions. They are defined once here and
imported by the calculators, the dependency policy and the mock estimator.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional


@dataclass(frozen=True)
class PollutantFactors:
    """Air pollutant emission factors for one activity (kg pollutant per activity unit)."""
    sulfur_dioxide: float
    nitrogen_oxides: float
    particulate_matter: float


@dataclass(frozen=True)
class EmissionFactors:
    # Carbon (kg CO2-eq per unit)
    diesel_co2_per_liter: float = 2.68
    electricity_co2_per_kwh: float = 0.82
    reagent_co2_per_kg: float = 1.2
    transport_co2_per_tkm: float = 0.062
    coke_co2_per_kg: float = 3.2

    # Energy (MJ per unit)
    electricity_mj_per_kwh: float = 3.6
    diesel_mj_per_liter: float = 38.6
    coke_mj_per_kg: float = 28.2

    # Air pollutants (kg per unit)
    diesel_pollutants: PollutantFactors = PollutantFactors(0.0054, 0.0312, 0.0024)
    electricity_pollutants: PollutantFactors = PollutantFactors(0.0012, 0.0008, 0.0003)
    reagent_pollutants: PollutantFactors = PollutantFactors(0.008, 0.005, 0.002)
    transport_pollutants: PollutantFactors = PollutantFactors(0.00015, 0.00089, 0.00012)


DEFAULT_FACTORS = EmissionFactors()


@dataclass(frozen=True)
class RecoveryPair:
    """Concentration and smelting recovery fractions (0-1]."""
    concentration: float
    smelting: float

    @property
    def combined(self) -> float:
        return self.concentration * self.smelting


# Industry-default recoveries used when downstream stages are not yet computed
DEFAULT_RECOVERIES = RecoveryPair(concentration=0.85, smelting=0.95)


# Typical values of the optional fields, per metal. Used by the offline estimator.
REFERENCE_VALUES: Dict[str, Dict[str, float]] = {
    "Aluminium": {
        "ReagentsKilogramsPerTonneOre": 8.0,
        "WaterWithdrawalCubicMetersPerTonneOre": 3.5,
        "TransportDistanceKilometersToConcentrator": 25.0,
        "ConcentrationReagentsKilogramsPerTonneConcentrate": 25.0,
        "ConcentrationWaterCubicMetersPerTonneConcentrate": 8.0,
        "WaterRecycleRatePercent": 85.0,
        "FuelSharePercent": 60.0,
        "FluxesKilogramsPerTonneMetal": 120.0,
        "EmissionControlEfficiencyPercent": 88.0,
        "FabricationElectricityRenewableSharePercent": 45.0,
        "AncillaryMaterialsKilogramsPerTonneProduct": 25.0,
        "FabricationWaterCubicMetersPerTonneProduct": 3.5,
        "MaintenanceEnergyKilowattHoursPerYearPerFunctionalUnit": 150.0,
        "MaintenanceMaterialsKilogramsPerYearPerFunctionalUnit": 8.0,
        "ReusePotentialPercent": 75.0,
        "TransportDistanceKilometersToRecycler": 150.0,
        "DowncyclingFractionPercent": 15.0,
        "LandfillSharePercent": 8.0,
    },
    "Copper": {
        "ReagentsKilogramsPerTonneOre": 5.0,
        "WaterWithdrawalCubicMetersPerTonneOre": 2.8,
        "TransportDistanceKilometersToConcentrator": 15.0,
        "ConcentrationReagentsKilogramsPerTonneConcentrate": 15.0,
        "ConcentrationWaterCubicMetersPerTonneConcentrate": 6.0,
        "WaterRecycleRatePercent": 80.0,
        "FuelSharePercent": 45.0,
        "FluxesKilogramsPerTonneMetal": 80.0,
        "EmissionControlEfficiencyPercent": 85.0,
        "FabricationElectricityRenewableSharePercent": 35.0,
        "AncillaryMaterialsKilogramsPerTonneProduct": 20.0,
        "FabricationWaterCubicMetersPerTonneProduct": 2.8,
        "MaintenanceEnergyKilowattHoursPerYearPerFunctionalUnit": 120.0,
        "MaintenanceMaterialsKilogramsPerYearPerFunctionalUnit": 6.0,
        "ReusePotentialPercent": 65.0,
        "TransportDistanceKilometersToRecycler": 120.0,
        "DowncyclingFractionPercent": 20.0,
        "LandfillSharePercent": 12.0,
    },
    "CriticalMinerals": {
        "ReagentsKilogramsPerTonneOre": 12.0,
        "WaterWithdrawalCubicMetersPerTonneOre": 4.2,
        "TransportDistanceKilometersToConcentrator": 50.0,
        "ConcentrationReagentsKilogramsPerTonneConcentrate": 35.0,
        "ConcentrationWaterCubicMetersPerTonneConcentrate": 12.0,
        "WaterRecycleRatePercent": 75.0,
        "FuelSharePercent": 70.0,
        "FluxesKilogramsPerTonneMetal": 150.0,
        "EmissionControlEfficiencyPercent": 80.0,
        "FabricationElectricityRenewableSharePercent": 30.0,
        "AncillaryMaterialsKilogramsPerTonneProduct": 35.0,
        "FabricationWaterCubicMetersPerTonneProduct": 4.5,
        "MaintenanceEnergyKilowattHoursPerYearPerFunctionalUnit": 200.0,
        "MaintenanceMaterialsKilogramsPerYearPerFunctionalUnit": 12.0,
        "ReusePotentialPercent": 55.0,
        "TransportDistanceKilometersToRecycler": 250.0,
        "DowncyclingFractionPercent": 35.0,
        "LandfillSharePercent": 25.0,
    },
}


def reference_value(field: str, metal_type: str = "Copper") -> Optional[float]:
    """Reference value for a field, falling back to the Copper table for unknown metals."""
    table = REFERENCE_VALUES.get(metal_type, REFERENCE_VALUES["Copper"])
    if field in table:
        return table[field]
    return REFERENCE_VALUES["Copper"].get(field)
