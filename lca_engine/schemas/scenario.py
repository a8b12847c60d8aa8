"""Schema validation for what-if and chain scenario files."""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from lca_engine.schemas.stage import ProjectContext, StageId


def _stage_keys(value: Dict[str, Any]) -> Dict[str, Any]:
    return {StageId.parse(key).value: inputs or {} for key, inputs in (value or {}).items()}


class WhatIfScenario(BaseModel):
    """One what-if evaluation of a single stage."""

    name: str = Field(..., description="Scenario name")
    project: ProjectContext = Field(default_factory=ProjectContext)
    stage: str = Field(..., description="Stage to evaluate")
    inputs: Dict[str, Any] = Field(default_factory=dict, description="User-supplied stage inputs")
    upstream: Dict[str, Dict[str, Any]] = Field(
        default_factory=dict,
        description="Inputs of stages to compute first (e.g. Mining before Concentration)",
    )
    run_sensitivity: bool = Field(default=True)
    trials: Optional[int] = Field(default=None, ge=1)
    provider: Optional[str] = Field(default=None, description="Estimation provider (mock|openai|none)")

    @field_validator("stage")
    @classmethod
    def known_stage(cls, v: str) -> str:
        return StageId.parse(v).value

    @field_validator("upstream")
    @classmethod
    def known_upstream_stages(cls, v: Dict[str, Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
        return _stage_keys(v)


class ChainScenario(BaseModel):
    """Inputs for every stage of a full chain run."""

    name: str = Field(..., description="Scenario name")
    project: ProjectContext = Field(default_factory=ProjectContext)
    stages: Dict[str, Dict[str, Any]] = Field(..., description="User-supplied inputs per stage")
    reconcile: bool = Field(default=True, description="Recompute Mining once downstream recoveries exist")
    provider: Optional[str] = Field(default=None, description="Estimation provider (mock|openai|none)")

    @field_validator("stages")
    @classmethod
    def known_stages(cls, v: Dict[str, Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
        if not v:
            raise ValueError("at least one stage is required")
        return _stage_keys(v)


def _load_yaml(path: str) -> Dict[str, Any]:
    scenario_path = Path(path)
    if not scenario_path.exists():
        raise FileNotFoundError(f"Scenario file not found: {path}")
    with open(scenario_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    data.setdefault("name", scenario_path.stem)
    return data


def load_scenario(path: str) -> WhatIfScenario:
    """Load and validate a what-if scenario from a YAML file."""
    return WhatIfScenario(**_load_yaml(path))


def load_chain_scenario(path: str) -> ChainScenario:
    """Load and validate a chain scenario from a YAML file."""
    return ChainScenario(**_load_yaml(path))
