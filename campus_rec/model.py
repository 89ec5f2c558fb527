"""
campus_rec/model.py

Trainer and TrainedModel: an unpenalized binary logistic regression fit with
statsmodels on the fully transformed training table.

The outcome is coerced to a two-level categorical; the second (sorted) level
is the modeled "event" and the first is the reference.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from typing import Tuple

import numpy as np
import pandas as pd
import statsmodels.api as sm
from statsmodels.tools.sm_exceptions import PerfectSeparationError

from campus_rec.config import COEF_DECIMALS
from campus_rec.errors import DataInsufficiencyError, FitConvergenceError, SchemaError
from campus_rec.pipeline import FittedPipeline


logger = logging.getLogger(__name__)

INTERCEPT = "(Intercept)"


def coerce_outcome(series: pd.Series) -> pd.Categorical:
    """Two-level categorical of the outcome; one level is insufficient, three is a schema problem."""
    observed = sorted(series.dropna().unique().tolist())
    if len(observed) < 2:
        raise DataInsufficiencyError(
            f"Outcome '{series.name}' has a single class in training data: {observed}"
        )
    if len(observed) > 2:
        raise SchemaError(f"Outcome '{series.name}' is not binary: {observed}")
    return pd.Categorical(series, categories=observed)


@dataclass(frozen=True)
class TrainedModel:
    """
    Fitted coefficients bound to the feature space of one FittedPipeline.

    ``features`` are the transformed predictor names in the order the
    coefficients expect; ``classes`` is (reference, event).
    """
    features: Tuple[str, ...]
    intercept: float
    coefficients: np.ndarray
    std_errors: np.ndarray
    p_values: np.ndarray
    classes: Tuple[object, object]
    n_obs: int

    @property
    def positive_class(self) -> object:
        return self.classes[1]

    def predict_proba(self, X: pd.DataFrame) -> np.ndarray:
        """Probability of the event class for each row of a transformed table."""
        z = X.loc[:, list(self.features)].to_numpy(dtype=float) @ self.coefficients + self.intercept
        return 1.0 / (1.0 + np.exp(-np.clip(z, -500, 500)))

    def predict(self, X: pd.DataFrame, threshold: float = 0.5) -> np.ndarray:
        """Predicted class labels."""
        proba = self.predict_proba(X)
        return np.where(proba >= threshold, self.classes[1], self.classes[0])

    def coefficient_summary(self, decimals: int = COEF_DECIMALS) -> pd.DataFrame:
        terms = [INTERCEPT] + list(self.features)
        estimates = np.concatenate([[self.intercept], self.coefficients])
        table = pd.DataFrame(
            {
                "term": terms,
                "estimate": estimates,
                "std_error": self.std_errors,
                "p_value": self.p_values,
            }
        )
        return table.round({"estimate": decimals, "std_error": decimals, "p_value": decimals})


class Trainer:
    """Fits a TrainedModel on the training path of a FittedPipeline."""

    def __init__(self, maxiter: int = 100) -> None:
        self.maxiter = maxiter

    def fit(
        self,
        fitted: FittedPipeline,
        train: pd.DataFrame,
        dependent_variable: str,
    ) -> TrainedModel:
        transformed = fitted.apply(train, training=True)
        if dependent_variable not in transformed.columns:
            raise SchemaError(f"Outcome column '{dependent_variable}' not in training table")

        y_cat = coerce_outcome(transformed[dependent_variable])
        y = np.asarray(y_cat.codes, dtype=float)
        features = list(fitted.output_columns)
        X = transformed[features].astype(float)

        n_params = len(features) + 1
        if len(X) <= n_params:
            raise DataInsufficiencyError(
                f"Too few rows for a stable fit: {len(X)} rows for {n_params} parameters"
            )

        exog = sm.add_constant(X, has_constant="add")
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            try:
                result = sm.Logit(y, exog).fit(disp=0, maxiter=self.maxiter)
            except (np.linalg.LinAlgError, PerfectSeparationError) as exc:
                raise FitConvergenceError(f"Logistic fit failed: {exc}") from exc

        for w in caught:
            logger.debug("Logit fit warning: %s", w.message)

        if not result.mle_retvals.get("converged", False):
            raise FitConvergenceError(
                f"Logistic fit did not converge in {self.maxiter} iterations"
            )

        params = result.params.to_numpy()
        return TrainedModel(
            features=tuple(features),
            intercept=float(params[0]),
            coefficients=params[1:].copy(),
            std_errors=np.asarray(result.bse, dtype=float),
            p_values=np.asarray(result.pvalues, dtype=float),
            classes=(y_cat.categories[0], y_cat.categories[1]),
            n_obs=int(result.nobs),
        )
