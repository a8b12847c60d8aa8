"""Provenance-tagged field values produced by input resolution."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Provenance(str, Enum):
    """Origin of a resolved input value."""
    USER = "user"
    ESTIMATED = "estimated"
    FALLBACK = "fallback"


USER_CONFIDENCE = 100.0


class FieldValue(BaseModel):
    """A single resolved stage input with its source and confidence (0-100)."""

    name: str = Field(..., description="Stage field name")
    value: Union[float, str] = Field(..., description="Resolved value")
    source: Provenance = Field(..., description="Where the value came from")
    confidence: float = Field(..., ge=0.0, le=100.0, description="Confidence score (0-100)")
    reasoning: str = Field(default="", description="Short explanation of the value's origin")

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def user_values_are_certain(self):
        """User-supplied values always carry full confidence."""
        if self.source is Provenance.USER and self.confidence != USER_CONFIDENCE:
            raise ValueError("user-supplied fields must have confidence 100")
        return self

    @property
    def is_numeric(self) -> bool:
        return isinstance(self.value, float)


@dataclass
class ResolutionResult:
    """Resolved fields plus the warnings accumulated while resolving them."""
    fields: Dict[str, FieldValue]
    warnings: List[str] = field(default_factory=list)

    def provenance(self) -> Dict[str, str]:
        return {name: fv.source.value for name, fv in self.fields.items()}

    def confidences(self) -> Dict[str, float]:
        return {name: fv.confidence for name, fv in self.fields.items()}

    def count(self, source: Provenance) -> int:
        return sum(1 for fv in self.fields.values() if fv.source is source)
