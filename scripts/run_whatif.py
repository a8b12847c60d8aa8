#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
from datetime import datetime
from pathlib import Path
from typing import Optional

from lca_engine.config import Config
from lca_engine.llm.providers import get_estimator
from lca_engine.schemas.scenario import load_scenario
from lca_engine.schemas.stage import StageId
from lca_engine.stages.assembler import RunOptions, ScenarioAssembler, ScenarioResult
from lca_engine.stages.coordinator import STAGE_ORDER, InMemoryStageStore


def run_whatif(
    scenario_path: str,
    out_dir: Path,
    trials: Optional[int] = None,
    run_sensitivity: Optional[bool] = None,
    provider: Optional[str] = None,
) -> ScenarioResult:
    """Evaluate one what-if scenario and write result.json (+ hotspots/distributions CSV)."""
    cfg = load_scenario(scenario_path)
    estimator = get_estimator(provider or cfg.provider)
    store = InMemoryStageStore()

    # Upstream stages are computed first, without sensitivity, so the target stage can read them
    for stage in STAGE_ORDER:
        if stage.value in cfg.upstream:
            upstream = ScenarioAssembler(estimator, store).run(
                cfg.project, stage, cfg.upstream[stage.value], RunOptions(run_sensitivity=False)
            )
            store.put(upstream.stage_result)

    options = RunOptions(
        run_sensitivity=cfg.run_sensitivity if run_sensitivity is None else run_sensitivity,
        trials=trials or cfg.trials,
    )
    result = ScenarioAssembler(estimator, store).run(cfg.project, StageId.parse(cfg.stage), cfg.inputs, options)

    out_dir.mkdir(parents=True, exist_ok=True)
    record = {"scenario": cfg.name, "project": cfg.project.model_dump(), **result.to_record()}
    with open(out_dir / "result.json", "w", encoding="utf-8") as f:
        json.dump(record, f, indent=2, sort_keys=True)
    if result.sensitivity is not None:
        result.sensitivity.hotspots_frame().to_csv(out_dir / "hotspots.csv", index=False)
        result.sensitivity.distributions_frame().to_csv(out_dir / "distributions.csv", index=False)
    return result


def main() -> int:
    parser = argparse.ArgumentParser(description="Run a single-stage what-if scenario.")
    parser.add_argument("--scenario", required=True, help="Path to scenario YAML.")
    parser.add_argument("--out-dir", dest="out_dir", type=str, default=None,
                        help="Output directory (if not provided, uses runs/<scenario>/<timestamp>/)")
    parser.add_argument("--trials", type=int, default=None, help="Monte Carlo trials (overrides scenario)")
    parser.add_argument("--no-sensitivity", dest="no_sensitivity", action="store_true",
                        help="Skip the sensitivity analysis")
    parser.add_argument("--provider", type=str, default=None, help="Estimation provider: mock, openai or none")
    args = parser.parse_args()

    if args.out_dir:
        out_dir = Path(args.out_dir)
    else:
        ts = datetime.now().strftime("%Y%m%d_%H%M%S")
        out_dir = Config.ensure_output_dir() / Path(args.scenario).stem / ts

    result = run_whatif(
        args.scenario,
        out_dir,
        trials=args.trials,
        run_sensitivity=False if args.no_sensitivity else None,
        provider=args.provider,
    )

    # Print summary
    print(f"Stage: {result.stage.label}")
    for key, value in sorted(result.stage_result.flat_outputs().items()):
        print(f"{key}: {value:.6f}")
    if result.sensitivity is not None and result.sensitivity.hotspots:
        top = result.sensitivity.hotspots[0]
        print(f"Top hotspot: {top.parameter} ({top.impact_score:.6f})")
    for warning in result.warnings:
        print(f"Warning: {warning}")
    print(f"Outputs: {out_dir}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
