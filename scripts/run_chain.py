#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional, Tuple

import pandas as pd

from lca_engine.config import Config
from lca_engine.llm.providers import get_estimator
from lca_engine.schemas.scenario import load_chain_scenario
from lca_engine.schemas.stage import StageId, StageInputSet, StageResult
from lca_engine.stages.coordinator import STAGE_ORDER, chain_summary, run_chain
from lca_engine.stages.definitions import get_definition, validate_user_inputs
from lca_engine.stages.provenance import resolve
from lca_engine.utils.logging_utils import get_logger

logger = get_logger(__name__)


def run_full_chain(
    scenario_path: str,
    out_dir: Path,
    provider: Optional[str] = None,
) -> Tuple[Dict[StageId, StageResult], pd.DataFrame]:
    """Resolve and compute every stage of a chain scenario; write result.json and chain.csv."""
    cfg = load_chain_scenario(scenario_path)
    estimator = get_estimator(provider or cfg.provider)

    inputs_by_stage: Dict[StageId, StageInputSet] = {}
    warnings: Dict[str, list] = {}
    for stage in STAGE_ORDER:
        if stage.value not in cfg.stages:
            continue
        user_inputs = cfg.stages[stage.value]
        validate_user_inputs(stage, user_inputs)
        resolution = resolve(
            get_definition(stage).expected_fields,
            user_inputs,
            estimator,
            project=cfg.project,
            stage=stage,
        )
        inputs_by_stage[stage] = StageInputSet(stage, resolution.fields)
        warnings[stage.value] = resolution.warnings

    results = run_chain(inputs_by_stage, cfg.project.functional_unit_mass_tonnes, reconcile=cfg.reconcile)
    summary = chain_summary(results)

    out_dir.mkdir(parents=True, exist_ok=True)
    record = {
        "scenario": cfg.name,
        "project": cfg.project.model_dump(),
        "stages": {
            stage.value: {
                **result.to_dict(),
                "provenance": {name: fv.source.value for name, fv in inputs_by_stage[stage].items()},
                "warnings": warnings[stage.value],
            }
            for stage, result in results.items()
        },
    }
    with open(out_dir / "result.json", "w", encoding="utf-8") as f:
        json.dump(record, f, indent=2, sort_keys=True)
    summary.to_csv(out_dir / "chain.csv", index=False)
    logger.info(f"Chain scenario {cfg.name}: {len(results)} stages written to {out_dir}")
    return results, summary


def main() -> int:
    parser = argparse.ArgumentParser(description="Run the full six-stage production chain.")
    parser.add_argument("--scenario", required=True, help="Path to chain scenario YAML.")
    parser.add_argument("--out-dir", dest="out_dir", type=str, default=None,
                        help="Output directory (if not provided, uses runs/<scenario>/<timestamp>/)")
    parser.add_argument("--provider", type=str, default=None, help="Estimation provider: mock, openai or none")
    args = parser.parse_args()

    if args.out_dir:
        out_dir = Path(args.out_dir)
    else:
        ts = datetime.now().strftime("%Y%m%d_%H%M%S")
        out_dir = Config.ensure_output_dir() / Path(args.scenario).stem / ts

    _, summary = run_full_chain(args.scenario, out_dir, provider=args.provider)

    print(summary.to_string(index=False))
    print(f"Outputs: {out_dir}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
