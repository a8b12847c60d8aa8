"""Sensitivity report schema."""

from typing import Dict, List, Optional

import pandas as pd
from pydantic import BaseModel, Field


HOTSPOT_METHOD_NOTE = (
    "Hotspot scores are local one-at-a-time finite differences (+/-5% around the "
    "baseline, other inputs held fixed). They do not capture interaction effects "
    "between parameters and are not a global variance decomposition."
)


class MetricDistribution(BaseModel):
    """Monte Carlo summary of one output metric."""
    mean: float = Field(..., description="Sample mean")
    lower95: float = Field(..., description="2.5th percentile of the sorted sample")
    upper95: float = Field(..., description="97.5th percentile of the sorted sample")


class Hotspot(BaseModel):
    """Influence of one input parameter on the primary metric."""
    parameter: str = Field(..., description="Input parameter name")
    impact_score: float = Field(..., ge=0.0, description="|m(+5%) - m(-5%)| / 2")


class SensitivityReport(BaseModel):
    """Perturbed output distributions and ranked hotspots for one stage evaluation."""

    primary_metric: Optional[str] = Field(default=None, description="Metric used for hotspot ranking")
    trials: int = Field(..., ge=0, description="Number of Monte Carlo trials requested")
    failed_trials: int = Field(default=0, ge=0, description="Trials excluded from the percentiles")
    distributions: Dict[str, MetricDistribution] = Field(default_factory=dict)
    hotspots: List[Hotspot] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    method_note: str = Field(default=HOTSPOT_METHOD_NOTE)

    def distributions_frame(self) -> pd.DataFrame:
        rows = [
            {"metric": metric, **dist.model_dump()}
            for metric, dist in self.distributions.items()
        ]
        return pd.DataFrame(rows, columns=["metric", "mean", "lower95", "upper95"])

    def hotspots_frame(self) -> pd.DataFrame:
        rows = [h.model_dump() for h in self.hotspots]
        df = pd.DataFrame(rows, columns=["parameter", "impact_score"])
        df.insert(0, "rank", range(1, len(df) + 1))
        return df
