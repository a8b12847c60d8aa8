"""
Provenance resolution: merge user inputs, external estimates and fallback rules.

Every expected field of a stage ends up with exactly one FieldValue tagged
``user``, ``estimated`` or ``fallback``. Estimation problems never escape as
exceptions; they are reported as warnings and the affected fields fall back.
"""

from __future__ import annotations

import math
import queue
import re
import threading
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import ValidationError as PydanticValidationError

from lca_engine.config import Config
from lca_engine.llm.providers import BaseEstimator, EstimationResponse
from lca_engine.schemas.provenance import FieldValue, Provenance, ResolutionResult, USER_CONFIDENCE
from lca_engine.schemas.stage import ProjectContext, StageId
from lca_engine.stages.cancellation import CancellationToken
from lca_engine.stages.definitions import get_definition
from lca_engine.utils.logging_utils import get_logger
from lca_engine.utils.numbers import coerce_number, is_blank

logger = get_logger(__name__)

DEFAULT_ESTIMATE_CONFIDENCE = 60.0
MAX_ESTIMATE_CONFIDENCE = 95.0

# (pattern, value, confidence); first match wins
FALLBACK_RULES: Tuple[Tuple[re.Pattern, float, float], ...] = (
    (re.compile(r"percent|rate|share", re.IGNORECASE), 50.0, 60.0),
    (re.compile(r"mass|kilogram|tonne|unit|count", re.IGNORECASE), 1.0, 60.0),
)
FALLBACK_DEFAULT: Tuple[float, float] = (0.0, 50.0)


def fallback_value(field_name: str) -> Tuple[float, float]:
    """Rule-based (value, confidence) for a field no other source could fill."""
    for pattern, value, confidence in FALLBACK_RULES:
        if pattern.search(field_name):
            return value, confidence
    return FALLBACK_DEFAULT


def _fallback_field(name: str, reasoning: str) -> FieldValue:
    value, confidence = fallback_value(name)
    return FieldValue(
        name=name,
        value=value,
        source=Provenance.FALLBACK,
        confidence=confidence,
        reasoning=reasoning,
    )


def _estimate_confidence(raw: Optional[float]) -> float:
    if raw is None or not math.isfinite(raw):
        return DEFAULT_ESTIMATE_CONFIDENCE
    confidence = min(100.0, max(0.0, float(raw)))
    # Estimates never claim the certainty reserved for user input
    if confidence == USER_CONFIDENCE:
        return MAX_ESTIMATE_CONFIDENCE
    return confidence


def _call_estimator(
    estimator: BaseEstimator,
    project: ProjectContext,
    stage: StageId,
    known: Mapping[str, float],
    missing: Sequence[str],
    timeout: float,
) -> Any:
    replies: queue.Queue = queue.Queue(maxsize=1)

    def work() -> None:
        try:
            replies.put((estimator.estimate(project, stage, dict(known), list(missing)), None))
        except Exception as exc:
            replies.put((None, exc))

    # Daemon worker: a hung provider call is abandoned and never holds up interpreter exit
    worker = threading.Thread(target=work, name=f"estimation-{stage.value}", daemon=True)
    worker.start()
    try:
        payload, error = replies.get(timeout=timeout)
    except queue.Empty:
        raise TimeoutError(f"estimator {estimator.name} did not answer within {timeout:g}s") from None
    if error is not None:
        raise error
    return payload


def _as_response(payload: Any) -> EstimationResponse:
    if isinstance(payload, EstimationResponse):
        return payload
    if isinstance(payload, Mapping):
        entries = payload.get("fields", payload.get("predictions", {}))
        if not isinstance(entries, Mapping):
            raise TypeError(f"estimation entries must be a mapping, got {type(entries).__name__}")
        return EstimationResponse.from_entries(entries)
    raise TypeError(f"unexpected estimation response type {type(payload).__name__}")


def resolve(
    expected_fields: Sequence[str],
    user_inputs: Mapping[str, Any],
    estimator: Optional[BaseEstimator],
    *,
    project: ProjectContext,
    stage: StageId,
    cancel_token: Optional[CancellationToken] = None,
    timeout: Optional[float] = None,
    enabled: Optional[bool] = None,
) -> ResolutionResult:
    """
    Resolve every expected field of a stage to a provenance-tagged value.

    Args:
        expected_fields: mandatory and optional field names of the stage
        user_inputs: caller-supplied values; blank values count as missing
        estimator: estimation capability, or None when unavailable
        project: project metadata passed to the estimator
        stage: stage being resolved
        cancel_token: checked before the estimator is called
        timeout: estimator timeout in seconds (defaults to Config)
        enabled: global estimation switch (defaults to Config)

    Returns:
        ResolutionResult with one FieldValue per expected field
    """
    stage = StageId.parse(stage)
    timeout = Config.ESTIMATION_TIMEOUT_SECONDS if timeout is None else timeout
    enabled = Config.ESTIMATION_ENABLED if enabled is None else enabled
    definition = get_definition(stage)

    fields: Dict[str, FieldValue] = {}
    warnings: List[str] = []

    expected = list(dict.fromkeys(expected_fields))
    unknown = sorted(set(user_inputs) - set(expected))
    if unknown:
        warnings.append(f"Ignoring unknown fields for {stage.label}: {', '.join(unknown)}")

    missing: List[str] = []
    for name in expected:
        raw = user_inputs.get(name)
        if is_blank(raw):
            missing.append(name)
            continue
        number = coerce_number(raw)
        fields[name] = FieldValue(
            name=name,
            value=number if number is not None else str(raw),
            source=Provenance.USER,
            confidence=USER_CONFIDENCE,
            reasoning="provided by user",
        )

    if not missing:
        return ResolutionResult(fields=_ordered(fields, expected), warnings=warnings)

    if cancel_token is not None:
        cancel_token.raise_if_cancelled("before estimation")

    known = {name: float(fv.value) for name, fv in fields.items() if fv.is_numeric}
    response: Optional[EstimationResponse] = None
    failure_reason = "default-fallback"

    if estimator is None:
        warnings.append("Estimation capability unavailable; missing fields use fallback values")
    elif not (enabled and estimator.enabled):
        warnings.append("Estimation disabled by configuration (AI_PREDICTION_ENABLED=false)")
    else:
        try:
            response = _as_response(
                _call_estimator(estimator, project, stage, known, missing, timeout)
            )
        except TimeoutError:
            failure_reason = "estimation-timeout"
            warnings.append(f"Estimation timed out after {timeout:g}s; missing fields use fallback values")
        except (PydanticValidationError, TypeError) as exc:
            failure_reason = "estimation-malformed-response"
            warnings.append(f"Estimation response was malformed ({exc.__class__.__name__}); "
                            "missing fields use fallback values")
        except Exception as exc:
            failure_reason = "estimation-failed"
            warnings.append(f"Estimation failed: {exc}")

    unaddressed: List[str] = []
    for name in missing:
        if response is not None and name in response.discarded:
            warnings.append(f"Discarded malformed estimate for {name}; using fallback")
            fields[name] = _fallback_field(name, "estimate-malformed")
            continue
        entry = response.fields.get(name) if response is not None else None
        if entry is None:
            if response is not None:
                unaddressed.append(name)
            fields[name] = _fallback_field(name, failure_reason if response is None else "not-estimated")
            continue

        value = coerce_number(entry.value, lenient=True)
        spec = definition.spec(name)
        if value is None or (spec is not None and not spec.accepts_estimate(value)):
            warnings.append(f"Rejected estimated value {entry.value!r} for {name}; using fallback")
            fields[name] = _fallback_field(name, "estimate-rejected")
            continue

        fields[name] = FieldValue(
            name=name,
            value=value,
            source=Provenance.ESTIMATED,
            confidence=_estimate_confidence(coerce_number(entry.confidence)),
            reasoning=entry.reasoning or "estimated",
        )

    if unaddressed:
        warnings.append(f"Estimator did not address: {', '.join(unaddressed)}; using fallback values")

    result = ResolutionResult(fields=_ordered(fields, expected), warnings=warnings)
    fallback_count = result.count(Provenance.FALLBACK)
    if fallback_count:
        logger.warning(f"{stage.label}: {fallback_count} field(s) resolved by fallback rules")
    logger.info(
        f"{stage.label}: resolved {len(expected)} fields "
        f"(user={result.count(Provenance.USER)}, estimated={result.count(Provenance.ESTIMATED)}, "
        f"fallback={fallback_count})"
    )
    return result


def _ordered(fields: Dict[str, FieldValue], expected: Sequence[str]) -> Dict[str, FieldValue]:
    return {name: fields[name] for name in expected}
