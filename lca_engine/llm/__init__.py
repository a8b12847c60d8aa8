"""Estimation providers for missing stage inputs."""

from .providers import (
    BaseEstimator,
    EstimatedField,
    EstimationResponse,
    MockEstimator,
    OptionalOpenAIEstimator,
    get_estimator,
    parse_estimation_payload,
)

__all__ = [
    "BaseEstimator",
    "EstimatedField",
    "EstimationResponse",
    "MockEstimator",
    "OptionalOpenAIEstimator",
    "get_estimator",
    "parse_estimation_payload",
]
