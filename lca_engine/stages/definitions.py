"""
Per-stage field contracts: mandatory and optional inputs with documented ranges.

Mandatory fields must always come from the caller. Optional fields may be
estimated or filled by fallback rules during provenance resolution.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from lca_engine.errors import ValidationError
from lca_engine.schemas.stage import StageId
from lca_engine.utils.numbers import coerce_number, is_blank


@dataclass(frozen=True)
class FieldSpec:
    name: str
    minimum: float = 0.0
    maximum: Optional[float] = None
    exclusive_minimum: bool = False
    # Upper bound for accepting an externally estimated value
    plausible_maximum: Optional[float] = None

    def check(self, value: float) -> Optional[str]:
        """Return a problem description, or None when the value is in range."""
        if not math.isfinite(value):
            return f"{self.name} must be a finite number"
        if self.exclusive_minimum and value <= self.minimum:
            return f"{self.name} must be greater than {self.minimum:g}"
        if not self.exclusive_minimum and value < self.minimum:
            return f"{self.name} must be at least {self.minimum:g}"
        if self.maximum is not None and value > self.maximum:
            return f"{self.name} must be at most {self.maximum:g}"
        return None

    def accepts_estimate(self, value: float) -> bool:
        if self.check(value) is not None:
            return False
        return self.plausible_maximum is None or value <= self.plausible_maximum


def _percent(name: str, positive: bool = False) -> FieldSpec:
    return FieldSpec(name, 0.0, 100.0, exclusive_minimum=positive)


@dataclass(frozen=True)
class StageDefinition:
    stage: StageId
    mandatory: Tuple[FieldSpec, ...]
    optional: Tuple[FieldSpec, ...]
    primary_metric: str
    upstream: Tuple[StageId, ...] = ()

    @property
    def mandatory_fields(self) -> List[str]:
        return [spec.name for spec in self.mandatory]

    @property
    def optional_fields(self) -> List[str]:
        return [spec.name for spec in self.optional]

    @property
    def expected_fields(self) -> List[str]:
        return self.mandatory_fields + self.optional_fields

    def spec(self, name: str) -> Optional[FieldSpec]:
        for spec in self.mandatory + self.optional:
            if spec.name == name:
                return spec
        return None


STAGE_DEFINITIONS: Dict[StageId, StageDefinition] = {
    StageId.MINING: StageDefinition(
        stage=StageId.MINING,
        mandatory=(
            _percent("OreGradePercent", positive=True),
            FieldSpec("DieselUseLitersPerTonneOre"),
            FieldSpec("ElectricityUseKilowattHoursPerTonneOre"),
        ),
        optional=(
            FieldSpec("ReagentsKilogramsPerTonneOre", plausible_maximum=100.0),
            FieldSpec("WaterWithdrawalCubicMetersPerTonneOre", plausible_maximum=50.0),
            FieldSpec("TransportDistanceKilometersToConcentrator", plausible_maximum=1000.0),
        ),
        primary_metric="CarbonFootprintKilogramsCarbonDioxideEquivalentPerFunctionalUnitForMining",
    ),
    StageId.CONCENTRATION: StageDefinition(
        stage=StageId.CONCENTRATION,
        mandatory=(
            _percent("RecoveryYieldPercent", positive=True),
            FieldSpec("GrindingEnergyKilowattHoursPerTonneConcentrate"),
            FieldSpec("TailingsVolumeTonnesPerTonneConcentrate"),
        ),
        optional=(
            FieldSpec("ConcentrationReagentsKilogramsPerTonneConcentrate", plausible_maximum=200.0),
            FieldSpec("ConcentrationWaterCubicMetersPerTonneConcentrate", plausible_maximum=100.0),
            _percent("WaterRecycleRatePercent"),
        ),
        primary_metric="CarbonFootprintKilogramsCarbonDioxideEquivalentPerFunctionalUnitForConcentration",
        upstream=(StageId.MINING,),
    ),
    StageId.SMELTING: StageDefinition(
        stage=StageId.SMELTING,
        mandatory=(
            FieldSpec("SmeltEnergyKilowattHoursPerTonneMetal"),
            _percent("SmeltRecoveryPercent", positive=True),
            FieldSpec("CokeUseKilogramsPerTonneMetal"),
        ),
        optional=(
            _percent("FuelSharePercent"),
            FieldSpec("FluxesKilogramsPerTonneMetal", plausible_maximum=500.0),
            _percent("EmissionControlEfficiencyPercent"),
        ),
        primary_metric="CarbonFootprintKilogramsCarbonDioxideEquivalentPerFunctionalUnitForSmelting",
        upstream=(StageId.CONCENTRATION,),
    ),
    StageId.FABRICATION: StageDefinition(
        stage=StageId.FABRICATION,
        mandatory=(
            FieldSpec("FabricationEnergyKilowattHoursPerTonneProduct"),
            _percent("ScrapInputPercent"),
            _percent("YieldLossPercent"),
        ),
        optional=(
            _percent("FabricationElectricityRenewableSharePercent"),
            FieldSpec("AncillaryMaterialsKilogramsPerTonneProduct", plausible_maximum=1000.0),
            FieldSpec("FabricationWaterCubicMetersPerTonneProduct", plausible_maximum=100.0),
        ),
        primary_metric="CarbonFootprintKilogramsCarbonDioxideEquivalentPerFunctionalUnitForFabrication",
    ),
    StageId.USE_PHASE: StageDefinition(
        stage=StageId.USE_PHASE,
        mandatory=(
            FieldSpec("ProductLifetimeYears", exclusive_minimum=True),
            FieldSpec("OperationalEnergyKilowattHoursPerYearPerFunctionalUnit"),
            _percent("FailureRatePercent"),
        ),
        optional=(
            FieldSpec("MaintenanceEnergyKilowattHoursPerYearPerFunctionalUnit", plausible_maximum=10000.0),
            FieldSpec("MaintenanceMaterialsKilogramsPerYearPerFunctionalUnit", plausible_maximum=1000.0),
            _percent("ReusePotentialPercent"),
        ),
        primary_metric="OperationalCarbonFootprintKilogramsCarbonDioxideEquivalentPerFunctionalUnitOverLifetime",
    ),
    StageId.END_OF_LIFE: StageDefinition(
        stage=StageId.END_OF_LIFE,
        mandatory=(
            _percent("CollectionRatePercent"),
            _percent("RecyclingEfficiencyPercent"),
            FieldSpec("RecyclingEnergyKilowattHoursPerTonneRecycled"),
        ),
        optional=(
            FieldSpec("TransportDistanceKilometersToRecycler", plausible_maximum=2000.0),
            _percent("DowncyclingFractionPercent"),
            _percent("LandfillSharePercent"),
        ),
        primary_metric="CarbonFootprintKilogramsCarbonDioxideEquivalentPerFunctionalUnitForEndOfLife",
    ),
}


def get_definition(stage: StageId) -> StageDefinition:
    return STAGE_DEFINITIONS[StageId.parse(stage)]


def validate_user_inputs(stage: StageId, user_inputs: Mapping[str, Any]) -> None:
    """
    Check caller-supplied values against the stage contract.

    Every mandatory field must be present and numeric; every supplied value
    (mandatory or optional) must lie in its documented range. All problems are
    collected into a single ValidationError.
    """
    definition = get_definition(stage)
    problems: List[str] = []

    for spec in definition.mandatory:
        if is_blank(user_inputs.get(spec.name)):
            problems.append(f"{spec.name} is required")

    for spec in definition.mandatory + definition.optional:
        raw = user_inputs.get(spec.name)
        if is_blank(raw):
            continue
        number = coerce_number(raw)
        if number is None:
            problems.append(f"{spec.name} must be numeric, got {raw!r}")
            continue
        problem = spec.check(number)
        if problem:
            problems.append(problem)

    if problems:
        raise ValidationError(definition.stage.value, problems)
