"""
campus_rec/tuning.py

Grid search over the Downsample ratio with k-fold cross-validation.

Every (fold, ratio) cell is an independent fit/evaluate on copies of the
fold's rows, so cells run on a joblib worker pool and are only brought
together when the per-ratio means are taken.

Failed cells (single-class or too-small fold, non-converging fit) are kept
in the cell table with status "failed" and NaN metrics. They are EXCLUDED
from the per-ratio means; ``n_valid`` reports how many folds each mean uses.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set, Tuple

import joblib
import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from sklearn.model_selection import KFold

from campus_rec.config import CLASSIFICATION_THRESHOLD, METRICS, AnalysisConfig
from campus_rec.errors import DataInsufficiencyError, FitConvergenceError
from campus_rec.evaluation import Evaluator
from campus_rec.model import Trainer
from campus_rec.pipeline import build_pipeline
from campus_rec.scenarios import ScenarioData, ScenarioSpec


logger = logging.getLogger(__name__)

CELL_COLUMNS: List[str] = ["fold", "ratio", *METRICS, "status", "error"]
INVALID_CELL_POLICY = "excluded"


@dataclass(frozen=True)
class TuningResult:
    scenario: str
    cells: pd.DataFrame       # one row per (fold, ratio)
    summary: pd.DataFrame     # one row per ratio: mean of each metric, n_valid, n_failed
    best: Dict[str, Optional[float]]
    invalid_cell_policy: str = INVALID_CELL_POLICY

    @property
    def n_failed(self) -> int:
        return int((self.cells["status"] != "ok").sum())

    def best_ratio(self, metric: str) -> Optional[float]:
        return self.best[metric]

    def long_summary(self) -> pd.DataFrame:
        """ratio x metric -> mean, in long form."""
        return self.summary.melt(
            id_vars=["ratio"],
            value_vars=list(METRICS),
            var_name="metric",
            value_name="mean",
        )

    def best_table(self) -> pd.DataFrame:
        rows = []
        for metric, ratio in self.best.items():
            mean = np.nan
            if ratio is not None:
                mean = float(self.summary.loc[self.summary["ratio"] == ratio, metric].iloc[0])
            rows.append({"metric": metric, "ratio": ratio, "mean": mean})
        return pd.DataFrame(rows)


def assign_folds(n_rows: int, n_folds: int, seed: int) -> List[Tuple[np.ndarray, np.ndarray]]:
    """Seeded, unstratified k-fold partition as (fit positions, held-out positions)."""
    if n_rows < n_folds:
        raise DataInsufficiencyError(f"{n_rows} training rows cannot form {n_folds} folds")
    kf = KFold(n_splits=n_folds, shuffle=True, random_state=seed)
    return list(kf.split(np.arange(n_rows)))


def evaluate_cell(
    spec: ScenarioSpec,
    numeric_columns: Sequence[str],
    analysis: pd.DataFrame,
    assessment: pd.DataFrame,
    fold: int,
    ratio: float,
    threshold: float = CLASSIFICATION_THRESHOLD,
) -> Dict[str, object]:
    record: Dict[str, object] = {"fold": fold, "ratio": float(ratio)}
    try:
        fitted = build_pipeline(spec, ratio, numeric_columns).fit(analysis)
        model = Trainer().fit(fitted, analysis, spec.dependent_variable)
        result = Evaluator(threshold).score(model, fitted, assessment, spec.dependent_variable)
    except (DataInsufficiencyError, FitConvergenceError) as exc:
        located = exc.located(scenario=spec.name, fold=fold)
        logger.warning("Tuning cell ratio=%.4f failed: %s", ratio, located)
        record.update({m: np.nan for m in METRICS}, status="failed", error=str(located))
        return record

    record.update(result.metrics, status="ok", error="")
    return record


def aggregate_cells(cells: pd.DataFrame, grid: Sequence[float]) -> pd.DataFrame:
    """Mean of each metric over the valid folds, one row per grid ratio (grid order)."""
    ok = cells.loc[cells["status"] == "ok"]
    means = ok.groupby("ratio")[list(METRICS)].mean()
    n_valid = ok.groupby("ratio").size().rename("n_valid")
    n_total = cells.groupby("ratio").size().rename("n_total")

    summary = (
        pd.DataFrame(index=pd.Index(np.asarray(grid, dtype=float), name="ratio"))
        .join(means)
        .join(n_valid)
        .join(n_total)
    )
    summary["n_valid"] = summary["n_valid"].fillna(0).astype(int)
    summary["n_failed"] = summary["n_total"].fillna(0).astype(int) - summary["n_valid"]
    return summary.drop(columns="n_total").reset_index()


def select_best(summary: pd.DataFrame, metrics: Sequence[str] = METRICS) -> Dict[str, Optional[float]]:
    """
    Per-metric argmax over ratios.

    Ties go to the smallest ratio. A metric with no valid mean at all
    selects nothing (None).
    """
    best: Dict[str, Optional[float]] = {}
    for metric in metrics:
        values = summary[metric]
        if values.notna().sum() == 0:
            best[metric] = None
            continue
        top = values.max()
        best[metric] = float(summary.loc[values == top, "ratio"].min())
    return best


def run_fingerprint(
    train: pd.DataFrame,
    grid: Sequence[float],
    n_folds: int,
    seed: int,
    threshold: float,
) -> str:
    """Hash of everything that decides a cell's outcome; checkpoints only resume on a match."""
    return joblib.hash(
        {
            "seed": int(seed),
            "n_folds": int(n_folds),
            "grid": [round(float(r), 10) for r in grid],
            "threshold": float(threshold),
            "columns": list(train.columns),
            "rows": pd.util.hash_pandas_object(train, index=True).to_numpy(),
        }
    )


class Tuner:
    def __init__(self, config: AnalysisConfig) -> None:
        self.config = config

    def _checkpoint_path(self, scenario: str) -> Optional[Path]:
        if self.config.checkpoint_dir is None:
            return None
        return Path(self.config.checkpoint_dir) / f"{scenario}_cells.csv"

    def _load_checkpoint(
        self,
        scenario: str,
        fingerprint: str,
        wanted: Set[Tuple[int, float]],
    ) -> List[Dict[str, object]]:
        path = self._checkpoint_path(scenario)
        if path is None or not path.exists():
            return []
        done = pd.read_csv(path, dtype={"fingerprint": str})
        if done.empty:
            return []
        if "fingerprint" not in done.columns or (done["fingerprint"] != fingerprint).any():
            logger.warning(
                "[%s] checkpoint %s was written by a different run (seed, folds, grid or data); "
                "discarding it",
                scenario, path,
            )
            return []

        done["error"] = done["error"].fillna("")
        keys = [(int(f), round(float(r), 10)) for f, r in zip(done["fold"], done["ratio"])]
        done = done.loc[[k in wanted for k in keys]].drop_duplicates(["fold", "ratio"], keep="last")
        logger.info("[%s] resuming from %d checkpointed cells", scenario, len(done))
        return done[CELL_COLUMNS].to_dict("records")

    def _write_checkpoint(self, scenario: str, fingerprint: str, records: List[Dict[str, object]]) -> None:
        path = self._checkpoint_path(scenario)
        if path is None:
            return
        path.parent.mkdir(parents=True, exist_ok=True)
        frame = pd.DataFrame(records, columns=CELL_COLUMNS)
        frame["fingerprint"] = fingerprint
        frame.to_csv(path, index=False)

    def tune(self, data: ScenarioData) -> TuningResult:
        spec = data.spec
        if not spec.tunable:
            raise ValueError(f"Scenario '{spec.name}' has no downsampling to tune")

        grid = self.config.grid()
        train = data.split.train
        folds = assign_folds(len(train), self.config.n_folds, spec.seed)

        fingerprint = run_fingerprint(train, grid, self.config.n_folds, spec.seed, self.config.threshold)
        wanted = {(fold, round(float(r), 10)) for fold in range(1, len(folds) + 1) for r in grid}
        records = self._load_checkpoint(spec.name, fingerprint, wanted)
        done: Set[Tuple[int, float]] = {(int(r["fold"]), round(float(r["ratio"]), 10)) for r in records}

        logger.info(
            "[%s] grid search: %d ratios x %d folds", spec.name, len(grid), len(folds)
        )
        for fold, (fit_pos, hold_pos) in enumerate(folds, start=1):
            todo = [r for r in grid if (fold, round(float(r), 10)) not in done]
            if not todo:
                continue
            analysis = train.iloc[fit_pos]
            assessment = train.iloc[hold_pos]
            batch = Parallel(n_jobs=self.config.n_jobs)(
                delayed(evaluate_cell)(
                    spec,
                    data.numeric_predictors,
                    analysis,
                    assessment,
                    fold,
                    ratio,
                    self.config.threshold,
                )
                for ratio in todo
            )
            records.extend(batch)
            self._write_checkpoint(spec.name, fingerprint, records)

        cells = pd.DataFrame(records, columns=CELL_COLUMNS)
        cells["ratio"] = cells["ratio"].astype(float).round(10)
        cells = cells.sort_values(["fold", "ratio"], kind="mergesort").reset_index(drop=True)

        summary = aggregate_cells(cells, grid)
        best = select_best(summary)
        result = TuningResult(scenario=spec.name, cells=cells, summary=summary, best=best)
        if result.n_failed:
            logger.warning(
                "[%s] %d of %d tuning cells failed (excluded from means)",
                spec.name, result.n_failed, len(cells),
            )
        return result
