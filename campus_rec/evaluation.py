"""
campus_rec/evaluation.py

Scores a TrainedModel against held-out data.

The held-out table always goes through FittedPipeline.apply (never fit), so
the test set keeps its original class balance.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

import numpy as np
import pandas as pd
from sklearn.metrics import (
    accuracy_score,
    confusion_matrix,
    f1_score,
    precision_score,
    recall_score,
    roc_auc_score,
)

from campus_rec.config import CLASSIFICATION_THRESHOLD
from campus_rec.errors import SchemaError
from campus_rec.model import TrainedModel
from campus_rec.pipeline import FittedPipeline


@dataclass(frozen=True)
class EvaluationResult:
    predictions: pd.DataFrame
    confusion_matrix: pd.DataFrame
    metrics: Dict[str, float]


def compute_metrics(y_true: np.ndarray, y_pred: np.ndarray, proba: np.ndarray) -> Dict[str, float]:
    """
    Classification metrics for 0/1 truth and predictions (1 = event class).

    ROC-AUC is undefined when the truth holds a single class; it is reported
    as NaN rather than raising.
    """
    if len(np.unique(y_true)) == 2:
        auc = float(roc_auc_score(y_true, proba))
    else:
        auc = float("nan")

    return {
        "accuracy": float(accuracy_score(y_true, y_pred)),
        "precision": float(precision_score(y_true, y_pred, zero_division=0)),
        "recall": float(recall_score(y_true, y_pred, zero_division=0)),
        "f1": float(f1_score(y_true, y_pred, zero_division=0)),
        "roc_auc": auc,
    }


def confusion_table(y_true: np.ndarray, y_pred: np.ndarray, classes) -> pd.DataFrame:
    """2x2 counts, rows = predicted class, columns = actual class."""
    cm = confusion_matrix(y_true, y_pred, labels=[0, 1])
    labels = [str(c) for c in classes]
    return pd.DataFrame(
        cm.T,
        index=pd.Index(labels, name="predicted"),
        columns=pd.Index(labels, name="actual"),
    )


class Evaluator:
    def __init__(self, threshold: float = CLASSIFICATION_THRESHOLD) -> None:
        self.threshold = threshold

    def score(
        self,
        model: TrainedModel,
        fitted: FittedPipeline,
        test: pd.DataFrame,
        dependent_variable: str,
    ) -> EvaluationResult:
        if dependent_variable not in test.columns:
            raise SchemaError(f"Outcome column '{dependent_variable}' not in evaluation table")

        transformed = fitted.apply(test)
        truth = transformed[dependent_variable]
        y_true = (truth == model.positive_class).to_numpy().astype(int)

        proba = model.predict_proba(transformed)
        y_pred = (proba >= self.threshold).astype(int)

        predictions = pd.DataFrame(
            {
                "truth": truth.to_numpy(),
                "predicted": np.where(y_pred == 1, model.classes[1], model.classes[0]),
                "probability": proba,
            },
            index=transformed.index,
        )
        return EvaluationResult(
            predictions=predictions,
            confusion_matrix=confusion_table(y_true, y_pred, model.classes),
            metrics=compute_metrics(y_true, y_pred, proba),
        )
