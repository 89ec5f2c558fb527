"""
campus_rec/analysis.py

Runs each scenario end to end:

  prepare -> baseline fit/evaluate -> [APR only] grid search -> refit

Scenarios are independent: each gets its own copy of the joined table and
its own pipelines, and a failure in one is reported on that scenario's
result without touching the others.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import pandas as pd
from joblib import Parallel, delayed

from campus_rec.config import AnalysisConfig
from campus_rec.errors import AnalysisError, DataInsufficiencyError
from campus_rec.evaluation import Evaluator
from campus_rec.model import Trainer
from campus_rec.refit import FitResult, Refitter, fit_and_evaluate
from campus_rec.scenarios import ScenarioSpec, default_scenarios, prepare_scenario
from campus_rec.tuning import Tuner, TuningResult


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScenarioResult:
    name: str
    dependent_variable: str
    status: str                        # "ok" or "failed"
    error: Optional[str] = None
    error_type: Optional[str] = None
    n_filtered: int = 0
    n_train: int = 0
    n_test: int = 0
    baseline: Optional[FitResult] = None
    tuning: Optional[TuningResult] = None
    selection_metric: Optional[str] = None
    selected_ratio: Optional[float] = None
    final: Optional[FitResult] = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    def to_dict(self) -> Dict:
        out = {
            "scenario": self.name,
            "dependent_variable": self.dependent_variable,
            "status": self.status,
            "error": self.error,
            "error_type": self.error_type,
            "n_filtered": self.n_filtered,
            "n_train": self.n_train,
            "n_test": self.n_test,
            "selection_metric": self.selection_metric,
            "selected_ratio": self.selected_ratio,
        }
        if self.baseline is not None:
            out["baseline_metrics"] = self.baseline.metrics
        if self.final is not None:
            out["final_metrics"] = self.final.metrics
        if self.tuning is not None:
            out["best_config"] = self.tuning.best
            out["tuning_failed_cells"] = self.tuning.n_failed
            out["invalid_cell_policy"] = self.tuning.invalid_cell_policy
        return out


def run_scenario(data: pd.DataFrame, spec: ScenarioSpec, config: AnalysisConfig) -> ScenarioResult:
    trainer = Trainer()
    evaluator = Evaluator(config.threshold)
    sizes: Dict[str, int] = {}

    try:
        prepared = prepare_scenario(data.copy(), spec)
        sizes = {
            "n_filtered": len(prepared.filtered),
            "n_train": len(prepared.split.train),
            "n_test": len(prepared.split.test),
        }

        baseline_ratio = config.baseline_ratio if spec.tunable else None
        baseline = fit_and_evaluate(prepared, baseline_ratio, trainer, evaluator, config.coef_decimals)
        logger.info("[%s] baseline metrics: %s", spec.name, _fmt(baseline.metrics))

        tuning = None
        ratio = None
        if spec.tunable:
            tuning = Tuner(config).tune(prepared)
            ratio = tuning.best_ratio(config.selection_metric)
            if ratio is None:
                raise DataInsufficiencyError(
                    f"Every tuning cell failed; no ratio to select by '{config.selection_metric}'"
                )
            logger.info("[%s] best ratio by %s: %s", spec.name, config.selection_metric, ratio)

        final = Refitter(trainer, evaluator, config.coef_decimals).refit(prepared, ratio)
        logger.info("[%s] final metrics: %s", spec.name, _fmt(final.metrics))

    except AnalysisError as exc:
        located = exc.located(scenario=spec.name)
        logger.error("Scenario failed: %s", located)
        return ScenarioResult(
            name=spec.name,
            dependent_variable=spec.dependent_variable,
            status="failed",
            error=str(located),
            error_type=type(exc).__name__,
            **sizes,
        )

    return ScenarioResult(
        name=spec.name,
        dependent_variable=spec.dependent_variable,
        status="ok",
        baseline=baseline,
        tuning=tuning,
        selection_metric=config.selection_metric if spec.tunable else None,
        selected_ratio=ratio,
        final=final,
        **sizes,
    )


def run_analysis(
    data: pd.DataFrame,
    scenarios: Optional[Sequence[ScenarioSpec]] = None,
    config: Optional[AnalysisConfig] = None,
) -> Dict[str, ScenarioResult]:
    """Run every scenario (in parallel when config.scenario_jobs != 1), keyed by scenario name."""
    config = config or AnalysisConfig()
    if scenarios is None:
        scenarios = default_scenarios(list(data.columns), seed=config.seed)

    results: List[ScenarioResult] = Parallel(n_jobs=config.scenario_jobs)(
        delayed(run_scenario)(data, spec, config) for spec in scenarios
    )
    return {r.name: r for r in results}


def _fmt(metrics: Dict[str, float]) -> str:
    return " ".join(f"{k}={v:.3f}" for k, v in metrics.items())
