"""
campus_rec/refit.py

Fit-and-evaluate on a scenario's fixed train/test split.

The baseline pass and the final refit with the tuned ratio are the same
procedure with a different Downsample ratio, so both go through
fit_and_evaluate.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

import pandas as pd

from campus_rec.config import COEF_DECIMALS
from campus_rec.evaluation import EvaluationResult, Evaluator
from campus_rec.model import Trainer
from campus_rec.pipeline import scenario_pipeline
from campus_rec.scenarios import ScenarioData


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FitResult:
    ratio: Optional[float]
    pipeline_summary: Dict
    coefficients: pd.DataFrame
    evaluation: EvaluationResult

    @property
    def metrics(self) -> Dict[str, float]:
        return self.evaluation.metrics


def fit_and_evaluate(
    data: ScenarioData,
    ratio: Optional[float],
    trainer: Trainer,
    evaluator: Evaluator,
    coef_decimals: int = COEF_DECIMALS,
) -> FitResult:
    spec = data.spec
    pipeline = scenario_pipeline(data, ratio)
    fitted = pipeline.fit(data.split.train)
    model = trainer.fit(fitted, data.split.train, spec.dependent_variable)
    evaluation = evaluator.score(model, fitted, data.split.test, spec.dependent_variable)

    # The model only lives long enough to extract predictions and the coefficient table
    return FitResult(
        ratio=ratio if spec.tunable else None,
        pipeline_summary=fitted.summary(),
        coefficients=model.coefficient_summary(coef_decimals),
        evaluation=evaluation,
    )


class Refitter:
    """Refit a scenario on its full training split with a frozen ratio."""

    def __init__(self, trainer: Trainer, evaluator: Evaluator, coef_decimals: int = COEF_DECIMALS) -> None:
        self.trainer = trainer
        self.evaluator = evaluator
        self.coef_decimals = coef_decimals

    def refit(self, data: ScenarioData, ratio: Optional[float]) -> FitResult:
        if data.spec.tunable:
            logger.info("[%s] refitting with downsample ratio %s", data.name, ratio)
        else:
            logger.info("[%s] refitting without downsampling", data.name)
        return fit_and_evaluate(data, ratio, self.trainer, self.evaluator, self.coef_decimals)
