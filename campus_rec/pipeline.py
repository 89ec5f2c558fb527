"""
campus_rec/pipeline.py

Ordered preprocessing steps with a single fit/apply contract.

Pipeline.fit chains fit-and-transform on the training table and returns a
FittedPipeline holding every step's frozen params. FittedPipeline.apply
replays the apply phase only; training-only steps (Downsample) are skipped
unless the training path is requested explicitly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from campus_rec.errors import SchemaError, TransformMismatchError
from campus_rec.preprocessing import (
    CategoricalEncode,
    Downsample,
    MeanImpute,
    ModeImpute,
    PreprocessingStep,
    Scale,
    VarianceFilter,
    ZeroVarianceFilter,
    predictor_columns,
)
from campus_rec.scenarios import ScenarioData, ScenarioSpec


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FittedStep:
    step: PreprocessingStep
    params: object


@dataclass(frozen=True)
class FittedPipeline:
    outcome: str
    steps: Tuple[FittedStep, ...]
    input_columns: Tuple[str, ...]
    output_columns: Tuple[str, ...]

    def check_inputs(self, table: pd.DataFrame) -> List[TransformMismatchError]:
        """One TransformMismatchError per fitted input column absent from ``table``."""
        return [
            TransformMismatchError(f"Input column '{col}' missing at apply time")
            for col in self._missing_inputs(table)
        ]

    def _missing_inputs(self, table: pd.DataFrame) -> List[str]:
        return [c for c in self.input_columns if c not in table.columns]

    def apply(self, table: pd.DataFrame, training: bool = False) -> pd.DataFrame:
        """
        Transform ``table`` with the frozen params.

        Fitted input columns that are absent are logged as
        TransformMismatchError and re-created as missing, so the imputers
        and the encoder supply their training defaults. The result holds the
        fitted output columns (plus the outcome when present), in fit order.
        """
        current = table.copy()
        for col, mismatch in zip(self._missing_inputs(table), self.check_inputs(table)):
            logger.warning("%s; filling from training defaults", mismatch)
            current[col] = np.nan

        for fitted in self.steps:
            if fitted.step.training_only and not training:
                continue
            current = fitted.step.apply(fitted.params, current)

        cols = list(self.output_columns)
        if self.outcome in current.columns:
            cols.append(self.outcome)
        return current[cols]

    def params_for(self, name: str):
        for fitted in self.steps:
            if fitted.step.name == name:
                return fitted.params
        return None

    def summary(self) -> Dict:
        return {
            "outcome": self.outcome,
            "input_columns": list(self.input_columns),
            "retained_predictors": list(self.output_columns),
            "steps": [
                {"step": f.step.name, **f.params.describe()} for f in self.steps
            ],
        }


@dataclass(frozen=True)
class Pipeline:
    outcome: str
    steps: Tuple[PreprocessingStep, ...]

    @property
    def step_names(self) -> List[str]:
        return [s.name for s in self.steps]

    def fit(self, train: pd.DataFrame) -> FittedPipeline:
        if self.outcome not in train.columns:
            raise SchemaError(f"Outcome column '{self.outcome}' not in training table")

        current = train
        fitted: List[FittedStep] = []
        for step in self.steps:
            params = step.fit(current, self.outcome)
            current = step.apply(params, current)
            fitted.append(FittedStep(step=step, params=params))

        dropped = set()
        for f in fitted:
            dropped.update(getattr(f.params, "dropped", ()))
        inputs = tuple(c for c in predictor_columns(train, self.outcome) if c not in dropped)

        return FittedPipeline(
            outcome=self.outcome,
            steps=tuple(fitted),
            input_columns=inputs,
            output_columns=tuple(predictor_columns(current, self.outcome)),
        )


def build_pipeline(
    spec: ScenarioSpec,
    ratio: Optional[float] = None,
    numeric_columns: Optional[Sequence[str]] = None,
) -> Pipeline:
    """
    The scenario's step chain, with fresh step instances every call.

    ``ratio`` parameterizes Downsample and is ignored for scenarios that are
    not tunable, which never downsample.
    """
    steps: List[PreprocessingStep] = [
        VarianceFilter(),
        MeanImpute(),
        ModeImpute(),
        CategoricalEncode(),
    ]
    if spec.tunable and ratio is not None:
        steps.append(Downsample(ratio=float(ratio), seed=spec.seed))
    if spec.tunable:
        steps.append(ZeroVarianceFilter())

    if spec.scale_scope == "numeric":
        steps.append(Scale(columns=tuple(numeric_columns or ())))
    else:
        steps.append(Scale())

    return Pipeline(outcome=spec.dependent_variable, steps=tuple(steps))


def scenario_pipeline(data: ScenarioData, ratio: Optional[float] = None) -> Pipeline:
    return build_pipeline(data.spec, ratio=ratio, numeric_columns=data.numeric_predictors)
