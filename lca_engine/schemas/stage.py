"""Stage identifiers, project context and the stage input/result records."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, Literal, Mapping, Optional, Union

from pydantic import BaseModel, Field

from lca_engine.errors import ValidationError
from lca_engine.schemas.provenance import FieldValue, Provenance


class StageId(str, Enum):
    """The six stages of the production chain, in chain order."""
    MINING = "mining"
    CONCENTRATION = "concentration"
    SMELTING = "smelting"
    FABRICATION = "fabrication"
    USE_PHASE = "use_phase"
    END_OF_LIFE = "end_of_life"

    @classmethod
    def parse(cls, value: Union["StageId", str]) -> "StageId":
        """Accept enum members, values, or display names such as 'Use Phase' or 'endOfLife'."""
        if isinstance(value, StageId):
            return value
        key = re.sub(r"[^a-z0-9]", "", str(value).lower())
        for member in cls:
            if key == member.value.replace("_", ""):
                return member
        raise ValueError(f"Unknown stage: {value}")

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()


MetalType = Literal["Aluminium", "Copper", "CriticalMinerals"]


class ProjectContext(BaseModel):
    """Project-level metadata shared by every stage of a run."""

    project_name: str = Field(default="unnamed", description="Project name")
    metal_type: MetalType = Field(default="Copper", description="Metal produced by the chain")
    processing_mode: Optional[str] = Field(default=None, description="Processing route, e.g. 'pyrometallurgy'")
    functional_unit_mass_tonnes: float = Field(default=1.0, gt=0, description="Functional unit mass (t of product)")


class StageInputSet(Mapping[str, FieldValue]):
    """
    Immutable, ordered mapping of field name to FieldValue for one stage call.

    Calculators read numbers through :meth:`number`, which turns a missing
    required value into a ValidationError rather than a KeyError.
    """

    def __init__(self, stage: StageId, fields: Mapping[str, FieldValue]):
        self.stage = stage
        self._fields = MappingProxyType(dict(fields))

    @classmethod
    def from_values(
        cls,
        stage: StageId,
        values: Mapping[str, Any],
        source: Provenance = Provenance.USER,
    ) -> "StageInputSet":
        """Build an input set from plain values, all tagged with one provenance."""
        confidence = 100.0 if source is Provenance.USER else 50.0
        fields = {
            name: FieldValue(
                name=name,
                value=float(value) if isinstance(value, (int, float)) and not isinstance(value, bool) else value,
                source=source,
                confidence=confidence,
            )
            for name, value in values.items()
        }
        return cls(stage, fields)

    def __getitem__(self, key: str) -> FieldValue:
        return self._fields[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __repr__(self) -> str:
        return f"StageInputSet({self.stage.value}, {dict(self.values_map())})"

    def number(self, name: str, default: Optional[float] = None) -> float:
        fv = self._fields.get(name)
        if fv is None or not fv.is_numeric:
            if default is not None:
                return float(default)
            if fv is None:
                raise ValidationError(self.stage.value, [f"{name} is required"])
            raise ValidationError(self.stage.value, [f"{name} must be numeric, got {fv.value!r}"])
        return float(fv.value)

    def values_map(self) -> Dict[str, Union[float, str]]:
        return {name: fv.value for name, fv in self._fields.items()}

    def numeric_values(self) -> Dict[str, float]:
        return {name: float(fv.value) for name, fv in self._fields.items() if fv.is_numeric}

    def with_values(self, overrides: Mapping[str, float]) -> "StageInputSet":
        """Return a new input set with some values replaced, provenance preserved."""
        fields = dict(self._fields)
        for name, value in overrides.items():
            if name in fields:
                fields[name] = fields[name].model_copy(update={"value": float(value)})
        return StageInputSet(self.stage, fields)


@dataclass(frozen=True)
class StageResult:
    """Derived helper variables, final outputs and computation metadata of one stage."""
    stage: StageId
    derived: Dict[str, float]
    outputs: Dict[str, Any]
    metadata: Dict[str, Any] = field(default_factory=dict)

    def flat_outputs(self) -> Dict[str, Any]:
        """Outputs with nested structures flattened to dotted keys."""
        flat: Dict[str, Any] = {}
        for key, value in self.outputs.items():
            if isinstance(value, Mapping):
                for sub_key, sub_value in value.items():
                    flat[f"{key}.{sub_key}"] = sub_value
            else:
                flat[key] = value
        return flat

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage.value,
            "derived": dict(self.derived),
            "outputs": {k: dict(v) if isinstance(v, Mapping) else v for k, v in self.outputs.items()},
            "metadata": dict(self.metadata),
        }


class DependencyContext(Mapping[StageId, StageResult]):
    """Read-only snapshot of previously computed stage results."""

    def __init__(self, results: Optional[Mapping[StageId, StageResult]] = None):
        self._results = MappingProxyType(dict(results or {}))

    @classmethod
    def from_lookup(cls, lookup: "StageResultLookup", stages: Iterable[StageId]) -> "DependencyContext":
        found = (lookup.get_stage_result(stage) for stage in stages)
        return cls.from_results(result for result in found if result is not None)

    @classmethod
    def from_results(cls, results: Iterable[StageResult]) -> "DependencyContext":
        return cls({result.stage: result for result in results})

    def __getitem__(self, key: StageId) -> StageResult:
        return self._results[key]

    def __iter__(self) -> Iterator[StageId]:
        return iter(self._results)

    def __len__(self) -> int:
        return len(self._results)

    def derived_value(self, stage: StageId, name: str) -> Optional[float]:
        result = self._results.get(stage)
        if result is None:
            return None
        value = result.derived.get(name)
        return float(value) if isinstance(value, (int, float)) and not isinstance(value, bool) else None


class StageResultLookup:
    """Caller-side access to persisted stage results. The engine only reads through it."""

    def get_stage_result(self, stage: StageId) -> Optional[StageResult]:  # pragma: no cover - interface
        raise NotImplementedError
