"""
campus_rec/scenarios.py

The three analysis scenarios and the per-scenario data preparation.

A ScenarioSpec names the outcome, the cohort filter and an explicit list of
predictors (split into demographic and engagement covariates). The list is
computed once from the joined table's columns and validated before any
fitting happens.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

import pandas as pd
from sklearn.model_selection import train_test_split

from campus_rec.config import (
    APR_OUTCOME,
    DEFAULT_SEED,
    ENGAGEMENT_PATTERNS,
    GRAD_OUTCOME,
    ID_COL,
    OUTCOME_COLS,
    TRAIN_FRACTION,
)
from campus_rec.errors import DataInsufficiencyError, SchemaError
from campus_rec.preprocessing import is_numeric


logger = logging.getLogger(__name__)

# Never used as predictors: identifiers, outcomes and the cohort-defining fields
NON_PREDICTORS: Tuple[str, ...] = (ID_COL, "cohort_year", "student_type") + OUTCOME_COLS


@dataclass(frozen=True)
class CohortFilter:
    """Row filter: one student type, entry cohorts within [first_year, last_year]."""
    student_type: str = "FTIC"
    first_year: Optional[int] = None
    last_year: Optional[int] = None

    def __call__(self, table: pd.DataFrame) -> pd.Series:
        mask = table["student_type"] == self.student_type
        if self.first_year is not None:
            mask &= table["cohort_year"] >= self.first_year
        if self.last_year is not None:
            mask &= table["cohort_year"] <= self.last_year
        return mask

    @property
    def columns(self) -> Tuple[str, ...]:
        return ("student_type", "cohort_year")

    def describe(self) -> str:
        lo = self.first_year if self.first_year is not None else "*"
        hi = self.last_year if self.last_year is not None else "*"
        return f"student_type == {self.student_type} and cohort_year in [{lo}, {hi}]"


@dataclass(frozen=True)
class CovariateSet:
    demographic: Tuple[str, ...]
    engagement: Tuple[str, ...]

    @property
    def all(self) -> Tuple[str, ...]:
        return self.demographic + self.engagement


@dataclass(frozen=True)
class ScenarioSpec:
    """
    One analysis configuration.

    scale_scope is "all" (scale every predictor after encoding) or "numeric"
    (scale only predictors that were numeric before encoding).
    """
    name: str
    dependent_variable: str
    filter_predicate: Callable[[pd.DataFrame], pd.Series]
    covariates: CovariateSet
    train_fraction: float = TRAIN_FRACTION
    seed: int = DEFAULT_SEED
    scale_scope: str = "all"

    def __post_init__(self) -> None:
        if self.dependent_variable not in OUTCOME_COLS:
            raise SchemaError(
                f"Dependent variable '{self.dependent_variable}' is not a binary outcome column "
                f"{OUTCOME_COLS}",
                scenario=self.name,
            )
        if self.dependent_variable in self.covariates.all:
            raise SchemaError("Dependent variable listed as a covariate", scenario=self.name)
        if self.scale_scope not in ("all", "numeric"):
            raise ValueError(f"scale_scope must be 'all' or 'numeric', got '{self.scale_scope}'")

    @property
    def predictors(self) -> Tuple[str, ...]:
        return self.covariates.all

    @property
    def tunable(self) -> bool:
        """Only the progress-retention outcome is imbalanced enough to tune downsampling."""
        return self.dependent_variable == APR_OUTCOME

    @property
    def required_columns(self) -> Tuple[str, ...]:
        extra = getattr(self.filter_predicate, "columns", ())
        cols = list(self.predictors) + [self.dependent_variable] + list(extra)
        return tuple(dict.fromkeys(cols))


@dataclass(frozen=True)
class Split:
    train: pd.DataFrame
    test: pd.DataFrame


@dataclass(frozen=True)
class ScenarioData:
    """A scenario bound to its filtered table and its (fixed) train/test split."""
    spec: ScenarioSpec
    filtered: pd.DataFrame
    split: Split
    numeric_predictors: Tuple[str, ...]

    @property
    def name(self) -> str:
        return self.spec.name


def is_engagement_column(name: str) -> bool:
    lowered = name.lower()
    return any(p in lowered for p in ENGAGEMENT_PATTERNS)


def partition_covariates(
    columns: Iterable[str],
    dependent_variable: str,
    exclude: Sequence[str] = NON_PREDICTORS,
    drop_patterns: Sequence[str] = (),
) -> CovariateSet:
    """
    Split candidate predictor names into engagement and demographic sets.

    Columns in ``exclude`` (and the dependent variable) are never predictors;
    columns matching any of ``drop_patterns`` are left out entirely, which is
    how a scenario omits e.g. the facility-visit covariates.
    """
    demographic, engagement = [], []
    for col in columns:
        if col == dependent_variable or col in exclude:
            continue
        if any(p in col.lower() for p in drop_patterns):
            continue
        (engagement if is_engagement_column(col) else demographic).append(col)
    return CovariateSet(demographic=tuple(demographic), engagement=tuple(engagement))


def default_scenarios(columns: Sequence[str], seed: int = DEFAULT_SEED) -> List[ScenarioSpec]:
    """
    The three fixed scenarios.

    - apr_ftic_facility: APR for FTIC cohorts 2018-2021, the years with
      facility swipe data, including the facility-visit covariates.
    - apr_ftic_all_years: APR for FTIC cohorts 2014-2021 without the
      facility-visit covariates.
    - grad_4yr: four-year graduation for FTIC cohorts 2014-2018, the cohorts
      with an observable four-year outcome.
    """
    return [
        ScenarioSpec(
            name="apr_ftic_facility",
            dependent_variable=APR_OUTCOME,
            filter_predicate=CohortFilter("FTIC", 2018, 2021),
            covariates=partition_covariates(columns, APR_OUTCOME),
            seed=seed,
        ),
        ScenarioSpec(
            name="apr_ftic_all_years",
            dependent_variable=APR_OUTCOME,
            filter_predicate=CohortFilter("FTIC", 2014, 2021),
            covariates=partition_covariates(columns, APR_OUTCOME, drop_patterns=("facility",)),
            seed=seed,
        ),
        ScenarioSpec(
            name="grad_4yr",
            dependent_variable=GRAD_OUTCOME,
            filter_predicate=CohortFilter("FTIC", 2014, 2018),
            covariates=partition_covariates(columns, GRAD_OUTCOME, drop_patterns=("facility",)),
            seed=seed,
            scale_scope="numeric",
        ),
    ]


def validate_columns(table: pd.DataFrame, spec: ScenarioSpec) -> None:
    missing = [c for c in spec.required_columns if c not in table.columns]
    if missing:
        raise SchemaError(f"Missing required columns: {missing}", scenario=spec.name)


def split_table(table: pd.DataFrame, train_fraction: float, seed: int) -> Split:
    """Seeded, unstratified train/test partition; every row lands in exactly one side."""
    if len(table) < 2:
        raise DataInsufficiencyError(f"Need at least 2 rows to split, got {len(table)}")
    train, test = train_test_split(
        table,
        train_size=train_fraction,
        random_state=seed,
        shuffle=True,
    )
    return Split(train=train, test=test)


def prepare_scenario(data: pd.DataFrame, spec: ScenarioSpec) -> ScenarioData:
    """
    Validate, filter and split the joined table for one scenario.

    The returned tables hold only the scenario's predictors and its outcome,
    and are copies: nothing downstream can mutate the caller's table.
    Rows whose outcome is missing are removed before splitting.
    """
    validate_columns(data, spec)

    mask = spec.filter_predicate(data).fillna(False).astype(bool)
    filtered = data.loc[mask, list(spec.predictors) + [spec.dependent_variable]].copy()

    n_missing = int(filtered[spec.dependent_variable].isna().sum())
    if n_missing:
        logger.info("[%s] dropping %d rows with missing '%s'", spec.name, n_missing, spec.dependent_variable)
        filtered = filtered.loc[filtered[spec.dependent_variable].notna()]

    if filtered.empty:
        raise DataInsufficiencyError("No rows left after filtering", scenario=spec.name)

    try:
        split = split_table(filtered, spec.train_fraction, spec.seed)
    except DataInsufficiencyError as exc:
        raise exc.located(scenario=spec.name) from exc

    numeric = tuple(c for c in spec.predictors if is_numeric(filtered[c]))
    logger.info(
        "[%s] %d rows after filter -> train=%d test=%d",
        spec.name, len(filtered), len(split.train), len(split.test),
    )
    return ScenarioData(spec=spec, filtered=filtered, split=split, numeric_predictors=numeric)
