"""
campus_rec/preprocessing.py

The preprocessing step family.

Each step is a small frozen object with two phases:

  fit(table, outcome)   -> frozen params learned from a training table
  apply(params, table)  -> transformed table, a pure function of the params

Steps only touch predictor columns (every column except the outcome), keep the
row index intact, and never look at the statistics of the table they are
applied to. Steps marked ``training_only`` are replayed on the training path
only (see campus_rec.pipeline).
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import ClassVar, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
from imblearn.under_sampling import RandomUnderSampler

from campus_rec.config import DEFAULT_SEED, NZV_FREQ_CUT, NZV_UNIQUE_CUT
from campus_rec.errors import DataInsufficiencyError, TransformMismatchError


logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------
# Column helpers
# ---------------------------------------------------------------------

def predictor_columns(table: pd.DataFrame, outcome: str) -> List[str]:
    return [c for c in table.columns if c != outcome]


def is_numeric(series: pd.Series) -> bool:
    return pd.api.types.is_numeric_dtype(series) and not pd.api.types.is_bool_dtype(series)


def numeric_predictors(table: pd.DataFrame, outcome: str) -> List[str]:
    return [c for c in predictor_columns(table, outcome) if is_numeric(table[c])]


def categorical_predictors(table: pd.DataFrame, outcome: str) -> List[str]:
    return [c for c in predictor_columns(table, outcome) if not is_numeric(table[c])]


def indicator_name(column: str, level: str) -> str:
    """Name of the indicator column for one level, e.g. ('gender', 'Non-binary') -> 'gender_Non_binary'."""
    clean = re.sub(r"[^0-9A-Za-z]+", "_", str(level)).strip("_")
    return f"{column}_{clean or 'blank'}"


def is_near_zero_variance(
    series: pd.Series,
    freq_cut: float = NZV_FREQ_CUT,
    unique_cut: float = NZV_UNIQUE_CUT,
) -> bool:
    """
    Near-zero-variance rule.

    A column is flagged when it has a single distinct value, or when BOTH
      - the most common value is more than ``freq_cut`` times as frequent as
        the second most common, and
      - distinct values make up less than ``unique_cut`` percent of the rows.
    """
    values = series.dropna()
    counts = values.value_counts()
    if len(counts) <= 1:
        return True

    freq_ratio = counts.iloc[0] / counts.iloc[1]
    pct_unique = 100.0 * len(counts) / len(values)
    return bool(freq_ratio > freq_cut and pct_unique < unique_cut)


# ---------------------------------------------------------------------
# Fitted parameter records
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class DropParams:
    """Shared by both variance filters: which predictors survive."""
    kept: Tuple[str, ...]
    dropped: Tuple[str, ...]

    def describe(self) -> Dict:
        return {"kept": list(self.kept), "dropped": list(self.dropped)}


@dataclass(frozen=True)
class FillParams:
    """Per-column fill values for the imputers."""
    values: Dict[str, object]

    def describe(self) -> Dict:
        return {"values": {k: _jsonable(v) for k, v in self.values.items()}}


@dataclass(frozen=True)
class EncodeParams:
    # column -> training levels, reference level first
    levels: Dict[str, Tuple[str, ...]]

    def indicator_columns(self) -> List[str]:
        return [
            indicator_name(col, level)
            for col, levels in self.levels.items()
            for level in levels[1:]
        ]

    def describe(self) -> Dict:
        return {
            "reference_levels": {c: lv[0] for c, lv in self.levels.items()},
            "levels": {c: list(lv) for c, lv in self.levels.items()},
        }


@dataclass(frozen=True)
class DownsampleParams:
    # row positions in the table the step was fitted on
    kept_positions: Tuple[int, ...]
    n_rows: int
    counts_before: Dict[str, int]
    counts_after: Dict[str, int]

    def describe(self) -> Dict:
        return {
            "rows_kept": len(self.kept_positions),
            "counts_before": self.counts_before,
            "counts_after": self.counts_after,
        }


@dataclass(frozen=True)
class ScaleParams:
    centers: Dict[str, float]
    scales: Dict[str, float]

    def describe(self) -> Dict:
        return {
            "centers": {k: float(v) for k, v in self.centers.items()},
            "scales": {k: float(v) for k, v in self.scales.items()},
        }


def _jsonable(value: object) -> object:
    if isinstance(value, np.generic):
        return value.item()
    return value


# ---------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------

class PreprocessingStep:
    """Base for every step; subclasses are frozen dataclasses."""

    name: ClassVar[str] = "step"
    training_only: ClassVar[bool] = False

    def fit(self, table: pd.DataFrame, outcome: str):
        raise NotImplementedError

    def apply(self, params, table: pd.DataFrame) -> pd.DataFrame:
        raise NotImplementedError


@dataclass(frozen=True)
class VarianceFilter(PreprocessingStep):
    """Drop near-zero-variance predictors learned on the training table."""

    freq_cut: float = NZV_FREQ_CUT
    unique_cut: float = NZV_UNIQUE_CUT

    name: ClassVar[str] = "variance_filter"

    def fit(self, table: pd.DataFrame, outcome: str) -> DropParams:
        kept, dropped = [], []
        for col in predictor_columns(table, outcome):
            if is_near_zero_variance(table[col], self.freq_cut, self.unique_cut):
                dropped.append(col)
            else:
                kept.append(col)
        if dropped:
            logger.debug("Near-zero-variance predictors dropped: %s", dropped)
        return DropParams(kept=tuple(kept), dropped=tuple(dropped))

    def apply(self, params: DropParams, table: pd.DataFrame) -> pd.DataFrame:
        return table.drop(columns=[c for c in params.dropped if c in table.columns])


@dataclass(frozen=True)
class MeanImpute(PreprocessingStep):
    name: ClassVar[str] = "mean_impute"

    def fit(self, table: pd.DataFrame, outcome: str) -> FillParams:
        cols = numeric_predictors(table, outcome)
        return FillParams(values={c: float(table[c].mean()) for c in cols})

    def apply(self, params: FillParams, table: pd.DataFrame) -> pd.DataFrame:
        out = table.copy()
        for col, mean in params.values.items():
            if col in out.columns:
                out[col] = pd.to_numeric(out[col], errors="coerce").fillna(mean)
        return out


@dataclass(frozen=True)
class ModeImpute(PreprocessingStep):
    name: ClassVar[str] = "mode_impute"

    def fit(self, table: pd.DataFrame, outcome: str) -> FillParams:
        values = {}
        for col in categorical_predictors(table, outcome):
            # mode() sorts ties, so the fill value is stable across runs
            mode = table[col].dropna().astype(str).mode()
            if mode.empty:
                raise DataInsufficiencyError(f"Column '{col}' has no observed values to impute from")
            values[col] = mode.iloc[0]
        return FillParams(values=values)

    def apply(self, params: FillParams, table: pd.DataFrame) -> pd.DataFrame:
        out = table.copy()
        for col, mode in params.values.items():
            if col in out.columns:
                filled = out[col].astype(object).where(out[col].notna(), mode)
                out[col] = filled.astype(str)
        return out


@dataclass(frozen=True)
class CategoricalEncode(PreprocessingStep):
    """
    Indicator (dummy) encoding with the first sorted level as reference.

    Levels never seen in training encode to all zeros, the same row as the
    reference level.
    """

    name: ClassVar[str] = "categorical_encode"

    def fit(self, table: pd.DataFrame, outcome: str) -> EncodeParams:
        levels = {}
        for col in categorical_predictors(table, outcome):
            observed = sorted(table[col].dropna().astype(str).unique())
            levels[col] = tuple(observed)
        return EncodeParams(levels=levels)

    def apply(self, params: EncodeParams, table: pd.DataFrame) -> pd.DataFrame:
        encoded = {}
        for col, levels in params.levels.items():
            if col in table.columns:
                values = table[col].astype(str)
            else:
                values = pd.Series("", index=table.index)
            for level in levels[1:]:
                encoded[indicator_name(col, level)] = (values == level).astype(float)

        out = table.drop(columns=[c for c in params.levels if c in table.columns])
        if encoded:
            out = pd.concat([out, pd.DataFrame(encoded, index=table.index)], axis=1)
        return out


@dataclass(frozen=True)
class Downsample(PreprocessingStep):
    """
    Under-sample the majority class of the training table.

    ``ratio`` is the target minority:majority count ratio, so the majority
    keeps round(n_minority / ratio) rows (never more than it has, never fewer
    than one). Every minority row is kept.

    Kept rows are recorded by position, so a repeated index label never pulls
    in extra rows; the params only replay onto a table of the fitted length.
    """

    ratio: float = 1.0
    seed: int = DEFAULT_SEED

    name: ClassVar[str] = "downsample"
    training_only: ClassVar[bool] = True

    def __post_init__(self) -> None:
        if self.ratio <= 0:
            raise ValueError(f"Downsample ratio must be positive, got {self.ratio}")

    def fit(self, table: pd.DataFrame, outcome: str) -> DownsampleParams:
        y = table[outcome]
        counts = y.value_counts().sort_values(kind="mergesort")
        if len(counts) < 2:
            raise DataInsufficiencyError(
                f"Cannot downsample: training data has a single '{outcome}' class "
                f"({list(counts.index)})"
            )

        minority, majority = counts.index[0], counts.index[-1]
        target = int(round(counts.loc[minority] / self.ratio))
        target = max(1, min(int(counts.loc[majority]), target))

        sampler = RandomUnderSampler(
            sampling_strategy={majority: target},
            random_state=self.seed,
        )
        positions = np.arange(len(table)).reshape(-1, 1)
        sampler.fit_resample(positions, y.to_numpy())
        kept_pos = np.sort(sampler.sample_indices_)

        kept = table.iloc[kept_pos]
        return DownsampleParams(
            kept_positions=tuple(int(p) for p in kept_pos),
            n_rows=len(table),
            counts_before={str(k): int(v) for k, v in counts.items()},
            counts_after={str(k): int(v) for k, v in kept[outcome].value_counts().items()},
        )

    def apply(self, params: DownsampleParams, table: pd.DataFrame) -> pd.DataFrame:
        if len(table) != params.n_rows:
            raise TransformMismatchError(
                f"Downsample was fitted on {params.n_rows} rows but applied to {len(table)}"
            )
        return table.iloc[list(params.kept_positions)]


@dataclass(frozen=True)
class ZeroVarianceFilter(PreprocessingStep):
    """Drop predictors with a single distinct value (e.g. indicators emptied by downsampling)."""

    name: ClassVar[str] = "zero_variance_filter"

    def fit(self, table: pd.DataFrame, outcome: str) -> DropParams:
        kept, dropped = [], []
        for col in predictor_columns(table, outcome):
            (dropped if table[col].nunique(dropna=True) <= 1 else kept).append(col)
        return DropParams(kept=tuple(kept), dropped=tuple(dropped))

    def apply(self, params: DropParams, table: pd.DataFrame) -> pd.DataFrame:
        return table.drop(columns=[c for c in params.dropped if c in table.columns])


@dataclass(frozen=True)
class Scale(PreprocessingStep):
    """
    Center and scale by the training mean and sample standard deviation.

    ``columns`` limits the step to those predictors; None means every
    numeric predictor.
    """

    columns: Optional[Tuple[str, ...]] = None

    name: ClassVar[str] = "scale"

    def fit(self, table: pd.DataFrame, outcome: str) -> ScaleParams:
        cols = numeric_predictors(table, outcome)
        if self.columns is not None:
            cols = [c for c in cols if c in self.columns]

        centers, scales = {}, {}
        for col in cols:
            values = table[col].astype(float)
            sd = float(values.std(ddof=1))
            if not np.isfinite(sd) or sd == 0.0:
                # Only reachable if the variance filters were skipped
                logger.warning("Column '%s' has zero spread in training data; leaving it unscaled", col)
                sd = 1.0
            centers[col] = float(values.mean())
            scales[col] = sd
        return ScaleParams(centers=centers, scales=scales)

    def apply(self, params: ScaleParams, table: pd.DataFrame) -> pd.DataFrame:
        out = table.copy()
        for col, center in params.centers.items():
            if col in out.columns:
                out[col] = (out[col].astype(float) - center) / params.scales[col]
        return out
