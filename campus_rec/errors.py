"""
campus_rec/errors.py

Failure taxonomy for the analysis.

Every error can carry the scenario (and, inside cross-validation, the fold)
it belongs to, so a report can say exactly which unit of work failed.
"""

from __future__ import annotations

from typing import Optional


class AnalysisError(Exception):
    """Base class for failures that are local to one scenario or one fold."""

    def __init__(
        self,
        message: str,
        scenario: Optional[str] = None,
        fold: Optional[int] = None,
    ) -> None:
        self.message = message
        self.scenario = scenario
        self.fold = fold
        super().__init__(self._render())

    def _render(self) -> str:
        where = []
        if self.scenario is not None:
            where.append(f"scenario={self.scenario}")
        if self.fold is not None:
            where.append(f"fold={self.fold}")
        return f"{self.message} [{', '.join(where)}]" if where else self.message

    def located(self, scenario: Optional[str] = None, fold: Optional[int] = None) -> "AnalysisError":
        """Return a copy of this error tagged with scenario/fold identity."""
        return type(self)(
            self.message,
            scenario=scenario if scenario is not None else self.scenario,
            fold=fold if fold is not None else self.fold,
        )


class SchemaError(AnalysisError):
    """A required covariate or outcome column is missing from the input table."""


class DataInsufficiencyError(AnalysisError):
    """A training table has a single outcome class or too few rows to fit."""


class FitConvergenceError(AnalysisError):
    """The logistic regression solver did not converge."""


class TransformMismatchError(AnalysisError):
    """
    An apply-time table lacks a column the pipeline was fit with.

    FittedPipeline.apply logs a missing input column and lets
    imputation/encoding fill the gap instead of raising. Downsample raises it
    when its params are replayed onto a table of a different length.
    """
