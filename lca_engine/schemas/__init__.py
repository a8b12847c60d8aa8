"""Typed records shared by the resolver, calculators and sensitivity engine."""

from .provenance import FieldValue, Provenance, ResolutionResult
from .stage import (
    DependencyContext,
    ProjectContext,
    StageId,
    StageInputSet,
    StageResult,
    StageResultLookup,
)
from .report import Hotspot, MetricDistribution, SensitivityReport
from .scenario import ChainScenario, WhatIfScenario, load_chain_scenario, load_scenario

__all__ = [
    "FieldValue",
    "Provenance",
    "ResolutionResult",
    "DependencyContext",
    "ProjectContext",
    "StageId",
    "StageInputSet",
    "StageResult",
    "StageResultLookup",
    "Hotspot",
    "MetricDistribution",
    "SensitivityReport",
    "ChainScenario",
    "WhatIfScenario",
    "load_chain_scenario",
    "load_scenario",
]
