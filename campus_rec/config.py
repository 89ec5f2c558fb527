"""
campus_rec/config.py

Run-level defaults for the engagement/outcome analysis.

The command line (python -m campus_rec.train) overrides most of these, and the
effective values are written to artifacts/config.json for every run.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, Optional, Tuple

import numpy as np


ARTIFACT_DIR = Path("artifacts")
DEFAULT_DATA_PATH = Path("data/campus_rec_synthetic.csv")

DEFAULT_SEED = 42
TRAIN_FRACTION = 0.8

# Downsample ratio grid (target minority:majority count ratio)
RATIO_GRID_MIN = 0.1
RATIO_GRID_MAX = 5.0
RATIO_GRID_SIZE = 50
N_FOLDS = 10
BASELINE_RATIO = 1.0

METRICS: Tuple[str, ...] = ("accuracy", "precision", "recall", "f1", "roc_auc")
SELECTION_METRIC = "f1"
CLASSIFICATION_THRESHOLD = 0.5
COEF_DECIMALS = 4

# Near-zero-variance cutoffs: most-common / second-most-common frequency ratio,
# and percentage of distinct values.
NZV_FREQ_CUT = 95 / 5
NZV_UNIQUE_CUT = 10.0

# Column names of the joined dataset
ID_COL = "student_id"
APR_OUTCOME = "apr_retained"
GRAD_OUTCOME = "graduated_4yr"
OUTCOME_COLS: Tuple[str, ...] = (APR_OUTCOME, GRAD_OUTCOME)

# A column is an engagement covariate if its name contains one of these.
ENGAGEMENT_PATTERNS: Tuple[str, ...] = ("facility", "intramural", "group_fitness")


def ratio_grid(
    low: float = RATIO_GRID_MIN,
    high: float = RATIO_GRID_MAX,
    size: int = RATIO_GRID_SIZE,
) -> np.ndarray:
    """Evenly spaced candidate ratios, both ends included, rounded to kill float noise."""
    if size < 1:
        raise ValueError("grid size must be at least 1")
    return np.round(np.linspace(low, high, size), 10)


@dataclass(frozen=True)
class AnalysisConfig:
    """
    Knobs for one analysis run.

    n_jobs applies to the tuning cells, scenario_jobs to the scenarios
    themselves (both follow joblib's convention, -1 = all cores).
    """
    seed: int = DEFAULT_SEED
    train_fraction: float = TRAIN_FRACTION
    n_folds: int = N_FOLDS
    grid_min: float = RATIO_GRID_MIN
    grid_max: float = RATIO_GRID_MAX
    grid_size: int = RATIO_GRID_SIZE
    baseline_ratio: float = BASELINE_RATIO
    selection_metric: str = SELECTION_METRIC
    threshold: float = CLASSIFICATION_THRESHOLD
    coef_decimals: int = COEF_DECIMALS
    n_jobs: int = 1
    scenario_jobs: int = 1
    checkpoint_dir: Optional[Path] = None

    def __post_init__(self) -> None:
        if self.selection_metric not in METRICS:
            raise ValueError(
                f"selection_metric must be one of {METRICS}, got '{self.selection_metric}'"
            )
        if not 0.0 < self.train_fraction < 1.0:
            raise ValueError("train_fraction must be strictly between 0 and 1")
        if self.n_folds < 2:
            raise ValueError("n_folds must be at least 2")

    def grid(self) -> np.ndarray:
        return ratio_grid(self.grid_min, self.grid_max, self.grid_size)

    def to_dict(self) -> Dict[str, object]:
        out = asdict(self)
        out["checkpoint_dir"] = str(self.checkpoint_dir) if self.checkpoint_dir else None
        return out
