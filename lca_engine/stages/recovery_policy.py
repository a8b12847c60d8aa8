"""
Downstream recovery policy for the Mining stage.

Mining's ore requirement depends on the combined recovery of Concentration and
Smelting, which may not have been computed yet. This module is the single
place that decides which recoveries Mining uses.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Optional, Tuple

from lca_engine.schemas.stage import DependencyContext, StageId, StageResult
from lca_engine.stages.factors import DEFAULT_RECOVERIES, RecoveryPair

CONCENTRATION_RECOVERY_KEY = "RecoveryFractionFromConcentration"
SMELTING_RECOVERY_KEY = "SmeltRecoveryFraction"


class RecoveryMode(str, Enum):
    ACTUAL = "actual"
    DEFAULT = "default"


def _valid_fraction(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value) and 0.0 < value <= 1.0


def resolve_downstream_recoveries(context: DependencyContext) -> Tuple[RecoveryPair, RecoveryMode]:
    """
    Pick the recovery fractions Mining should use.

    Returns the computed Concentration/Smelting recoveries when both results
    exist and carry valid fractions, otherwise the industry defaults.
    """
    concentration = context.derived_value(StageId.CONCENTRATION, CONCENTRATION_RECOVERY_KEY)
    smelting = context.derived_value(StageId.SMELTING, SMELTING_RECOVERY_KEY)
    if _valid_fraction(concentration) and _valid_fraction(smelting):
        return RecoveryPair(concentration=concentration, smelting=smelting), RecoveryMode.ACTUAL
    return DEFAULT_RECOVERIES, RecoveryMode.DEFAULT


def recovery_log(mode: RecoveryMode, recoveries: RecoveryPair) -> str:
    if mode is RecoveryMode.ACTUAL:
        return (
            "Downstream recovery fractions found "
            f"(concentration={recoveries.concentration:g}, smelting={recoveries.smelting:g})."
        )
    return (
        "Downstream recovery fractions from Concentration and Smelting are not yet available; "
        f"using industry defaults (concentration={recoveries.concentration:g}, "
        f"smelting={recoveries.smelting:g}). Recompute Mining once both stages exist."
    )


def is_mining_stale(mining: StageResult, context: DependencyContext) -> bool:
    """True when a Mining result used different recoveries from those now available."""
    recoveries, mode = resolve_downstream_recoveries(context)
    if mode is RecoveryMode.DEFAULT:
        return False
    if not mining.metadata.get("downstreamRecoveriesAvailable", False):
        return True
    used = mining.metadata.get("recoveriesUsed", {})
    return (
        used.get("concentration") != recoveries.concentration
        or used.get("smelting") != recoveries.smelting
    )
