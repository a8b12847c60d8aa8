"""
Scenario assembly: validate, resolve provenance, compute, and run sensitivity
for one stage evaluation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

from lca_engine.errors import (
    DependencyUnavailable,
    ScenarioCancelled,
    SensitivityInstability,
    ValidationError,
)
from lca_engine.llm.providers import BaseEstimator
from lca_engine.schemas.report import SensitivityReport
from lca_engine.schemas.stage import (
    ProjectContext,
    StageId,
    StageInputSet,
    StageResult,
    StageResultLookup,
)
from lca_engine.stages.cancellation import CancellationToken
from lca_engine.stages.coordinator import build_context, compute_stage
from lca_engine.stages.definitions import get_definition, validate_user_inputs
from lca_engine.stages.provenance import resolve
from lca_engine.stages.sensitivity import SensitivityEngine, stage_metric_function
from lca_engine.utils.logging_utils import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RunOptions:
    run_sensitivity: bool = True
    trials: Optional[int] = None


@dataclass
class ScenarioResult:
    """Everything produced by one stage evaluation."""
    stage: StageId
    resolved_inputs: StageInputSet
    stage_result: StageResult
    sensitivity: Optional[SensitivityReport] = None
    warnings: List[str] = field(default_factory=list)

    def to_record(self) -> Dict[str, Any]:
        """Flat record in the shape callers persist as a what-if scenario."""
        fields = self.resolved_inputs
        return {
            "stage": self.stage.value,
            "inputs": fields.values_map(),
            "provenance": {name: fv.source.value for name, fv in fields.items()},
            "confidences": {name: fv.confidence for name, fv in fields.items()},
            "reasoning": {name: fv.reasoning for name, fv in fields.items()},
            "outputs": self.stage_result.to_dict()["outputs"],
            "derived": dict(self.stage_result.derived),
            "metadata": dict(self.stage_result.metadata),
            "sensitivity": self.sensitivity.model_dump() if self.sensitivity is not None else None,
            "warnings": list(self.warnings),
        }


class ScenarioAssembler:
    """
    Orchestrates a single what-if evaluation for one stage.

    Persistence stays with the caller: upstream results are read through the
    injected lookup and the returned ScenarioResult is never stored here.
    """

    def __init__(
        self,
        estimator: Optional[BaseEstimator],
        lookup: StageResultLookup,
        engine: Optional[SensitivityEngine] = None,
    ):
        self.estimator = estimator
        self.lookup = lookup
        self.engine = engine or SensitivityEngine()

    def run(
        self,
        project: ProjectContext,
        stage: Union[StageId, str],
        user_inputs: Mapping[str, Any],
        options: Optional[RunOptions] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ScenarioResult:
        options = options or RunOptions()
        try:
            stage_id = StageId.parse(stage)
        except ValueError as exc:
            logger.error(str(exc))
            raise ValidationError(str(stage), [str(exc)]) from exc

        try:
            return self._run(project, stage_id, user_inputs, options, cancel_token)
        except (ValidationError, DependencyUnavailable, ScenarioCancelled) as exc:
            logger.error(f"{stage_id.label} evaluation aborted: {exc}")
            raise

    def _run(
        self,
        project: ProjectContext,
        stage: StageId,
        user_inputs: Mapping[str, Any],
        options: RunOptions,
        cancel_token: Optional[CancellationToken],
    ) -> ScenarioResult:
        definition = get_definition(stage)
        validate_user_inputs(stage, user_inputs)

        resolution = resolve(
            definition.expected_fields,
            user_inputs,
            self.estimator,
            project=project,
            stage=stage,
            cancel_token=cancel_token,
        )
        warnings = list(resolution.warnings)
        inputs = StageInputSet(stage, resolution.fields)

        context = build_context(stage, self.lookup)
        fu_mass = project.functional_unit_mass_tonnes
        result = compute_stage(stage, inputs, context, fu_mass)
        if stage is StageId.MINING and not result.metadata.get("downstreamRecoveriesAvailable", False):
            warnings.append(result.metadata["log"])

        sensitivity: Optional[SensitivityReport] = None
        if options.run_sensitivity:
            metric_fn = stage_metric_function(stage, inputs, context, fu_mass)
            try:
                sensitivity = self.engine.estimate(
                    metric_fn,
                    inputs.numeric_values(),
                    trials=options.trials,
                    primary_metric=definition.primary_metric,
                    cancel_token=cancel_token,
                )
                warnings.extend(sensitivity.warnings)
            except SensitivityInstability as exc:
                warnings.append(str(exc))

        for warning in warnings:
            logger.warning(f"{stage.label}: {warning}")
        return ScenarioResult(
            stage=stage,
            resolved_inputs=inputs,
            stage_result=result,
            sensitivity=sensitivity,
            warnings=warnings,
        )
