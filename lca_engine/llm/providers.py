"""Estimation capability: providers that suggest values for missing stage inputs."""

from __future__ import annotations

import json
import os
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

try:  # Optional import; only needed when OPENAI_API_KEY is configured
    import openai  # type: ignore
except Exception:  # pragma: no cover - we gracefully handle missing dependency
    openai = None

from lca_engine.config import Config
from lca_engine.errors import EstimationFailure
from lca_engine.schemas.stage import ProjectContext, StageId
from lca_engine.stages.factors import reference_value


class EstimatedField(BaseModel):
    """One estimated value as returned by a provider."""
    value: Any = Field(..., description="Suggested value (number or numeric-looking string)")
    confidence: Optional[float] = Field(default=None, description="Provider confidence (0-100)")
    reasoning: str = Field(default="", description="Short explanation")


class EstimationResponse(BaseModel):
    """Batch of estimates keyed by field name."""
    fields: Dict[str, EstimatedField] = Field(default_factory=dict)
    discarded: List[str] = Field(default_factory=list, description="Entries dropped as malformed")

    @classmethod
    def from_entries(cls, entries: Mapping[str, Any]) -> "EstimationResponse":
        """Validate each entry on its own, keeping the well-formed ones."""
        fields: Dict[str, EstimatedField] = {}
        discarded: List[str] = []
        for name, entry in entries.items():
            try:
                fields[str(name)] = EstimatedField.model_validate(entry)
            except PydanticValidationError:
                discarded.append(str(name))
        return cls(fields=fields, discarded=discarded)


class BaseEstimator(ABC):
    """Abstract interface for providers that estimate missing stage inputs."""

    name: str = "base"
    enabled: bool = True

    @abstractmethod
    def estimate(
        self,
        project: ProjectContext,
        stage: StageId,
        known_fields: Mapping[str, float],
        missing_fields: Sequence[str],
    ) -> EstimationResponse:
        """Return estimates for any subset of ``missing_fields``."""


class MockEstimator(BaseEstimator):
    """Deterministic, offline estimator backed by per-metal reference values."""

    name: str = "mock-estimator"

    def __init__(self, confidence: float = 70.0, enabled: bool = True):
        self.confidence = confidence
        self.enabled = enabled

    def estimate(
        self,
        project: ProjectContext,
        stage: StageId,
        known_fields: Mapping[str, float],
        missing_fields: Sequence[str],
    ) -> EstimationResponse:
        fields: Dict[str, EstimatedField] = {}
        for name in missing_fields:
            value = reference_value(name, project.metal_type)
            if value is None:
                continue
            fields[name] = EstimatedField(
                value=value,
                confidence=self.confidence,
                reasoning=f"typical {project.metal_type} value for {stage.label}",
            )
        return EstimationResponse(fields=fields)


_CODE_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def parse_estimation_payload(text: str) -> EstimationResponse:
    """
    Parse a provider reply into an EstimationResponse.

    Accepts fenced or bare JSON, with estimates under either a ``fields`` or a
    ``predictions`` key. Malformed entries are listed in ``discarded``; a reply
    with no usable estimates object raises EstimationFailure.
    """
    if not isinstance(text, str) or not text.strip():
        raise EstimationFailure("empty estimation response")

    fenced = _CODE_FENCE.search(text)
    if fenced:
        candidate = fenced.group(1)
    else:
        match = _JSON_OBJECT.search(text)
        candidate = match.group(0) if match else text

    try:
        payload = json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise EstimationFailure(f"estimation response is not valid JSON: {exc}") from exc

    if not isinstance(payload, dict):
        raise EstimationFailure("estimation response must be a JSON object")
    entries = payload.get("fields", payload.get("predictions"))
    if not isinstance(entries, dict):
        raise EstimationFailure("estimation response has no 'fields' or 'predictions' object")

    return EstimationResponse.from_entries(entries)


class OptionalOpenAIEstimator(BaseEstimator):
    """Optional real provider gated behind OPENAI_API_KEY."""

    name: str = "openai"

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        temperature: float = 0.0,
    ):
        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise RuntimeError("OPENAI_API_KEY not set; use MockEstimator for offline runs")
        if openai is None:
            raise RuntimeError("openai package not installed; pip install openai")

        self.model = model
        self.temperature = temperature
        self._client = openai.OpenAI(api_key=api_key)

    def _chat_completion(self, messages: List[Dict[str, str]]) -> str:
        try:
            response = self._client.chat.completions.create(
                model=self.model,
                temperature=self.temperature,
                messages=messages,
            )
            return response.choices[0].message.content or ""
        except Exception as exc:  # pragma: no cover - network failures surface as EstimationFailure
            raise EstimationFailure(f"OpenAI call failed: {exc}") from exc

    @staticmethod
    def build_prompt(
        project: ProjectContext,
        stage: StageId,
        known_fields: Mapping[str, float],
        missing_fields: Sequence[str],
    ) -> str:
        return "\n\n".join([
            "You are an expert LCA assistant.",
            f"Project context: {project.model_dump_json()}",
            f"Stage: {stage.label}",
            f"User provided inputs: {json.dumps(dict(known_fields), sort_keys=True)}",
            f"Missing fields: {json.dumps(list(missing_fields))}",
            "For each missing field return a JSON object with the schema:",
            '{ "fields": { "<fieldName>": { "value": <number>, "confidence": <0-100>, '
            '"reasoning": "<short explanation>" } } }',
            "Return only valid JSON in the response body (no additional commentary).",
        ])

    def estimate(
        self,
        project: ProjectContext,
        stage: StageId,
        known_fields: Mapping[str, float],
        missing_fields: Sequence[str],
    ) -> EstimationResponse:
        if not missing_fields:
            return EstimationResponse()
        prompt = self.build_prompt(project, stage, known_fields, missing_fields)
        text = self._chat_completion([
            {"role": "system", "content": "You estimate life-cycle inventory inputs."},
            {"role": "user", "content": prompt},
        ])
        return parse_estimation_payload(text)


def get_estimator(name: Optional[str] = None) -> Optional[BaseEstimator]:
    """
    Build the configured estimator.

    ``"none"`` returns None, meaning no estimation capability is available and
    every missing field falls back.
    """
    name = (name or Config.ESTIMATION_PROVIDER).strip().lower()
    if name == "mock":
        return MockEstimator(enabled=Config.ESTIMATION_ENABLED)
    if name == "openai":
        estimator = OptionalOpenAIEstimator(model=Config.OPENAI_MODEL)
        estimator.enabled = Config.ESTIMATION_ENABLED
        return estimator
    if name in ("none", "off", "disabled"):
        return None
    raise ValueError(f"Unknown estimation provider: {name}")
