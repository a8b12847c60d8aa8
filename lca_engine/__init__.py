"""Production-chain LCA stage engine."""

from lca_engine.stages.assembler import RunOptions, ScenarioAssembler, ScenarioResult
from lca_engine.schemas import ProjectContext, Provenance, StageId

__all__ = [
    "ProjectContext",
    "Provenance",
    "RunOptions",
    "ScenarioAssembler",
    "ScenarioResult",
    "StageId",
]
