"""
Error taxonomy for the LCA stage engine.

Fatal conditions are raised and abort the current scenario evaluation only.
Recoverable conditions (estimation failures, default recoveries) never reach
the caller as exceptions; they are reported as warnings alongside results.
"""

from typing import List, Optional, Sequence


class LCAEngineError(Exception):
    """Base class for all engine errors."""


class ValidationError(LCAEngineError, ValueError):
    """Mandatory field missing or a value outside its documented range."""

    def __init__(self, stage: str, problems: Sequence[str]):
        self.stage = stage
        self.problems: List[str] = list(problems)
        super().__init__(f"Invalid inputs for stage '{stage}': " + "; ".join(self.problems))


class EstimationFailure(LCAEngineError, RuntimeError):
    """Estimation capability unreachable, timed out, or returned unparsable data."""


class DependencyUnavailable(LCAEngineError):
    """An upstream stage result required by the current stage is absent."""

    def __init__(self, stage: str, upstream: str, missing: Optional[Sequence[str]] = None):
        self.stage = stage
        self.upstream = upstream
        self.missing: List[str] = list(missing or [])
        detail = f" (missing: {', '.join(self.missing)})" if self.missing else ""
        super().__init__(
            f"Stage '{stage}' requires a computed '{upstream}' stage result{detail}"
        )


class SensitivityInstability(LCAEngineError):
    """More than half of the perturbation trials failed."""

    def __init__(self, failed: int, total: int):
        self.failed = failed
        self.total = total
        super().__init__(
            f"Sensitivity estimate unstable: {failed} of {total} trials failed"
        )


class ScenarioCancelled(LCAEngineError):
    """The scenario evaluation was cancelled through its cancellation token."""
