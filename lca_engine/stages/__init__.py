"""
Stage calculators, dependency coordination and sensitivity estimation.

The resolver and the assembler depend on the estimation providers and are
imported from their modules directly (``lca_engine.stages.assembler``).
"""

from .calculators import CALCULATORS, get_calculator
from .cancellation import CancellationToken
from .coordinator import STAGE_ORDER, InMemoryStageStore, build_context, chain_summary, compute_stage, run_chain
from .definitions import STAGE_DEFINITIONS, get_definition, validate_user_inputs
from .recovery_policy import RecoveryMode, is_mining_stale, resolve_downstream_recoveries
from .sensitivity import SensitivityEngine, stage_metric_function

__all__ = [
    "CALCULATORS",
    "get_calculator",
    "CancellationToken",
    "STAGE_ORDER",
    "InMemoryStageStore",
    "build_context",
    "chain_summary",
    "compute_stage",
    "run_chain",
    "STAGE_DEFINITIONS",
    "get_definition",
    "validate_user_inputs",
    "RecoveryMode",
    "is_mining_stale",
    "resolve_downstream_recoveries",
    "SensitivityEngine",
    "stage_metric_function",
]
