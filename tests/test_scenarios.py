import pandas as pd
import pytest

from campus_rec.errors import SchemaError
from campus_rec.scenarios import (
    CohortFilter,
    CovariateSet,
    ScenarioSpec,
    default_scenarios,
    partition_covariates,
    prepare_scenario,
)


def _by_name(columns, seed=42):
    return {s.name: s for s in default_scenarios(columns, seed=seed)}


def test_covariate_partition_by_name(joined):
    cov = partition_covariates(joined.columns, "apr_retained")
    assert set(cov.engagement) == {
        "facility_visits",
        "facility_user",
        "intramural_count",
        "intramural_participant",
        "group_fitness_visits",
    }
    assert "hs_gpa" in cov.demographic
    for excluded in ("student_id", "cohort_year", "student_type", "apr_retained", "graduated_4yr"):
        assert excluded not in cov.all
    assert not set(cov.demographic) & set(cov.engagement)


def test_default_scenarios(joined):
    scenarios = _by_name(list(joined.columns))
    assert set(scenarios) == {"apr_ftic_facility", "apr_ftic_all_years", "grad_4yr"}

    assert "facility_visits" in scenarios["apr_ftic_facility"].predictors
    assert "facility_visits" not in scenarios["apr_ftic_all_years"].predictors
    assert scenarios["apr_ftic_facility"].tunable
    assert scenarios["apr_ftic_all_years"].tunable
    assert not scenarios["grad_4yr"].tunable
    assert scenarios["grad_4yr"].dependent_variable == "graduated_4yr"
    for spec in scenarios.values():
        assert spec.dependent_variable not in spec.predictors


@pytest.mark.parametrize("name", ["apr_ftic_facility", "apr_ftic_all_years", "grad_4yr"])
def test_split_sizes(joined, name):
    spec = _by_name(list(joined.columns))[name]
    data = prepare_scenario(joined, spec)
    n = len(data.filtered)
    assert len(data.split.train) + len(data.split.test) == n
    assert abs(len(data.split.train) - 0.8 * n) <= 1
    assert not set(data.split.train.index) & set(data.split.test.index)
    assert data.filtered[spec.dependent_variable].notna().all()


def test_split_is_deterministic_for_seed(joined):
    spec = _by_name(list(joined.columns))["apr_ftic_facility"]
    a = prepare_scenario(joined, spec)
    b = prepare_scenario(joined, spec)
    other = prepare_scenario(joined, _by_name(list(joined.columns), seed=99)["apr_ftic_facility"])
    assert a.split.train.index.equals(b.split.train.index)
    assert not a.split.train.index.equals(other.split.train.index)


def test_filter_restricts_cohort(joined):
    spec = _by_name(list(joined.columns))["grad_4yr"]
    data = prepare_scenario(joined, spec)
    source = joined.loc[data.filtered.index]
    assert (source["student_type"] == "FTIC").all()
    assert source["cohort_year"].between(2014, 2018).all()


def test_prepare_does_not_mutate_input(joined):
    before = joined.copy()
    spec = _by_name(list(joined.columns))["apr_ftic_all_years"]
    prepare_scenario(joined, spec)
    pd.testing.assert_frame_equal(joined, before)


def test_missing_covariate_is_schema_error(joined):
    spec = _by_name(list(joined.columns))["apr_ftic_facility"]
    with pytest.raises(SchemaError) as info:
        prepare_scenario(joined.drop(columns=["group_fitness_visits"]), spec)
    assert info.value.scenario == "apr_ftic_facility"
    assert "group_fitness_visits" in str(info.value)


def test_dependent_variable_must_be_an_outcome():
    with pytest.raises(SchemaError):
        ScenarioSpec(
            name="bad",
            dependent_variable="hs_gpa",
            filter_predicate=CohortFilter(),
            covariates=CovariateSet(demographic=("gender",), engagement=()),
        )
