"""
Sensitivity engine: Monte Carlo output distributions and hotspot ranking.

Each trial perturbs every numeric input with independent Gaussian noise
(sigma = 5% of the magnitude, at least 1e-6) and re-evaluates the injected
calculator. Hotspots are one-at-a-time +/-5% finite differences on a single
primary metric.
"""

from __future__ import annotations

import math
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Mapping, Optional

import numpy as np

from lca_engine.config import Config
from lca_engine.errors import SensitivityInstability
from lca_engine.schemas.report import Hotspot, MetricDistribution, SensitivityReport
from lca_engine.schemas.stage import DependencyContext, StageId, StageInputSet
from lca_engine.stages.calculators import get_calculator
from lca_engine.stages.cancellation import CancellationToken
from lca_engine.utils.logging_utils import get_logger

logger = get_logger(__name__)

MetricFunction = Callable[[Mapping[str, Any]], Mapping[str, Any]]

NOISE_FRACTION = 0.05
MIN_SIGMA = 1e-6
HOTSPOT_STEP = 0.05
MAX_FAILURE_SHARE = 0.5


def box_muller(rng: np.random.Generator) -> float:
    """One standard normal draw from two uniforms, redrawing exact zeros."""
    u = 0.0
    v = 0.0
    while u == 0.0:
        u = rng.random()
    while v == 0.0:
        v = rng.random()
    return math.sqrt(-2.0 * math.log(u)) * math.cos(2.0 * math.pi * v)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _numeric_metrics(outputs: Mapping[str, Any]) -> Dict[str, float]:
    return {key: float(value) for key, value in outputs.items() if _is_number(value)}


def _percentile_index(fraction: float, n: int) -> int:
    return min(int(math.floor(fraction * n)), n - 1)


class SensitivityEngine:
    """
    Perturbation-based sensitivity estimator for any metric function.

    Trials are independent: each draws from its own generator spawned from a
    single SeedSequence, so results do not depend on thread scheduling.
    """

    def __init__(
        self,
        trials: Optional[int] = None,
        seed: Optional[int] = None,
        max_workers: Optional[int] = None,
    ):
        self.trials = Config.SENSITIVITY_TRIALS if trials is None else trials
        self.seed = Config.DEFAULT_RANDOM_SEED if seed is None else seed
        self.max_workers = max_workers or Config.SENSITIVITY_MAX_WORKERS or os.cpu_count() or 1
        if self.trials < 1:
            raise ValueError("trials must be at least 1")

    def _run_trial(
        self,
        calculator: MetricFunction,
        inputs: Mapping[str, Any],
        numeric_keys: List[str],
        metric_keys: Optional[List[str]],
        seed: np.random.SeedSequence,
        cancel_token: Optional[CancellationToken],
    ) -> Optional[Dict[str, float]]:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled("between sensitivity trials")

        rng = np.random.default_rng(seed)
        perturbed = dict(inputs)
        for key in numeric_keys:
            value = float(inputs[key])
            sigma = max(MIN_SIGMA, abs(value) * NOISE_FRACTION)
            perturbed[key] = value + box_muller(rng) * sigma

        try:
            outputs = calculator(perturbed)
        except Exception as exc:
            logger.debug(f"Trial failed: {exc}")
            return None

        # No baseline metric set; the caller settles it from the first successful trial
        if metric_keys is None:
            return _numeric_metrics(outputs)

        sample: Dict[str, float] = {}
        for key in metric_keys:
            value = outputs.get(key)
            if not _is_number(value):
                logger.debug(f"Trial produced non-finite {key}: {value!r}")
                return None
            sample[key] = float(value)
        return sample

    def _hotspots(
        self,
        calculator: MetricFunction,
        inputs: Mapping[str, Any],
        numeric_keys: List[str],
        primary_metric: str,
        warnings: List[str],
        cancel_token: Optional[CancellationToken],
    ) -> List[Hotspot]:
        hotspots = []
        for key in numeric_keys:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled("during hotspot ranking")
            base = float(inputs[key])
            try:
                up = calculator({**inputs, key: base * (1.0 + HOTSPOT_STEP)}).get(primary_metric)
                down = calculator({**inputs, key: base * (1.0 - HOTSPOT_STEP)}).get(primary_metric)
            except Exception as exc:
                warnings.append(f"Hotspot evaluation failed for {key}: {exc}")
                continue
            if not (_is_number(up) and _is_number(down)):
                warnings.append(f"Hotspot evaluation for {key} produced a non-finite {primary_metric}")
                continue
            hotspots.append(Hotspot(parameter=key, impact_score=abs(float(up) - float(down)) / 2.0))

        hotspots.sort(key=lambda h: (-h.impact_score, h.parameter))
        return hotspots

    def estimate(
        self,
        calculator: MetricFunction,
        inputs: Mapping[str, Any],
        trials: Optional[int] = None,
        primary_metric: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> SensitivityReport:
        """
        Estimate output distributions and rank input hotspots.

        Args:
            calculator: maps an input mapping to a mapping of output metrics
            inputs: baseline inputs; non-numeric values are passed through unperturbed
            trials: Monte Carlo trial count (defaults to the engine's)
            primary_metric: metric used for hotspot ranking (defaults to the first metric)
            cancel_token: checked before every trial and hotspot evaluation

        Returns:
            SensitivityReport

        Raises:
            SensitivityInstability: more than half of the trials failed, or the
                baseline and every trial failed
            ScenarioCancelled: the token was cancelled mid-run
        """
        trials = self.trials if trials is None else trials
        if trials < 1:
            raise ValueError("trials must be at least 1")

        numeric_keys = [key for key, value in inputs.items() if _is_number(value)]
        warnings: List[str] = []

        metric_keys: Optional[List[str]] = None
        try:
            metric_keys = list(_numeric_metrics(calculator(dict(inputs))))
        except Exception as exc:
            logger.warning(f"Baseline evaluation failed: {exc}")
            warnings.append(f"Baseline evaluation failed ({exc}); metrics taken from the first successful trial")

        seeds = np.random.SeedSequence(self.seed).spawn(trials)
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="sensitivity") as pool:
            futures = [
                pool.submit(self._run_trial, calculator, inputs, numeric_keys, metric_keys, seed, cancel_token)
                for seed in seeds
            ]
            try:
                samples = [future.result() for future in futures]
            except BaseException:
                for future in futures:
                    future.cancel()
                raise

        if metric_keys is None:
            first = next((sample for sample in samples if sample is not None), None)
            if first is None:
                raise SensitivityInstability(trials, trials)
            metric_keys = list(first)
            samples = [
                sample if sample is not None and all(key in sample for key in metric_keys) else None
                for sample in samples
            ]

        if primary_metric is None and metric_keys:
            primary_metric = metric_keys[0]

        successful = [sample for sample in samples if sample is not None]
        failed = trials - len(successful)
        if failed > MAX_FAILURE_SHARE * trials:
            raise SensitivityInstability(failed, trials)
        if failed:
            warnings.append(f"{failed} of {trials} sensitivity trials failed and were excluded")

        distributions: Dict[str, MetricDistribution] = {}
        n = len(successful)
        for key in metric_keys:
            values = sorted(sample[key] for sample in successful)
            distributions[key] = MetricDistribution(
                mean=float(np.mean(values)),
                lower95=values[_percentile_index(0.025, n)],
                upper95=values[_percentile_index(0.975, n)],
            )

        hotspots: List[Hotspot] = []
        if primary_metric is not None and primary_metric in metric_keys:
            hotspots = self._hotspots(calculator, inputs, numeric_keys, primary_metric, warnings, cancel_token)
        elif primary_metric is not None:
            warnings.append(f"Primary metric {primary_metric} not produced; hotspots skipped")

        logger.info(
            f"Sensitivity: {n}/{trials} trials, {len(distributions)} metrics, {len(hotspots)} hotspots"
        )
        return SensitivityReport(
            primary_metric=primary_metric,
            trials=trials,
            failed_trials=failed,
            distributions=distributions,
            hotspots=hotspots,
            warnings=warnings,
        )


def stage_metric_function(
    stage: StageId,
    inputs: StageInputSet,
    context: DependencyContext,
    functional_unit_mass: float,
) -> MetricFunction:
    """Adapt a stage calculator to the flat ``inputs -> metrics`` shape the engine perturbs."""
    calculate = get_calculator(stage)

    def metrics(values: Mapping[str, Any]) -> Dict[str, Any]:
        numeric = {key: value for key, value in values.items() if _is_number(value)}
        result = calculate(inputs.with_values(numeric), context, functional_unit_mass)
        return result.flat_outputs()

    return metrics
