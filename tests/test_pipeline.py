import numpy as np
import pandas as pd
import pytest

from campus_rec.pipeline import Pipeline, build_pipeline, scenario_pipeline
from campus_rec.preprocessing import (
    CategoricalEncode,
    Downsample,
    MeanImpute,
    ModeImpute,
    Scale,
    VarianceFilter,
    ZeroVarianceFilter,
)
from campus_rec.scenarios import default_scenarios, prepare_scenario


OUTCOME = "apr_retained"


@pytest.fixture(scope="module")
def prepared(joined):
    specs = {s.name: s for s in default_scenarios(list(joined.columns))}
    return {name: prepare_scenario(joined, spec) for name, spec in specs.items()}


def test_step_order_per_scenario(prepared):
    apr = scenario_pipeline(prepared["apr_ftic_facility"], ratio=1.0)
    assert apr.step_names == [
        "variance_filter",
        "mean_impute",
        "mode_impute",
        "categorical_encode",
        "downsample",
        "zero_variance_filter",
        "scale",
    ]
    grad = scenario_pipeline(prepared["grad_4yr"], ratio=1.0)
    assert grad.step_names == [
        "variance_filter",
        "mean_impute",
        "mode_impute",
        "categorical_encode",
        "scale",
    ]


def test_pipelines_never_share_step_instances(prepared):
    data = prepared["apr_ftic_facility"]
    a = scenario_pipeline(data, ratio=2.0)
    b = scenario_pipeline(data, ratio=2.0)
    assert all(x is not y for x, y in zip(a.steps, b.steps))


def test_apply_on_fit_table_reproduces_training_transform(prepared):
    data = prepared["grad_4yr"]
    train = data.split.train
    pipeline = scenario_pipeline(data)
    fitted = pipeline.fit(train)

    # the fit-time chain, replayed by hand
    expected = train
    for step in pipeline.steps:
        expected = step.apply(step.fit(expected, pipeline.outcome), expected)

    out = fitted.apply(train)
    assert list(out.columns) == list(fitted.output_columns) + [pipeline.outcome]
    assert not out.isna().any().any()
    pd.testing.assert_frame_equal(out, expected[out.columns])
    pd.testing.assert_frame_equal(fitted.apply(train), out)


def test_grad_scales_only_numeric_predictors(prepared):
    data = prepared["grad_4yr"]
    fitted = scenario_pipeline(data).fit(data.split.train)
    scaled = set(fitted.params_for("scale").centers)
    assert "hs_gpa" in scaled
    assert not any(c.startswith("gender_") for c in scaled)


def test_downsample_only_on_training_path(prepared):
    data = prepared["apr_ftic_facility"]
    fitted = scenario_pipeline(data, ratio=1.0).fit(data.split.train)

    trained_on = fitted.apply(data.split.train, training=True)
    counts = trained_on[OUTCOME].value_counts()
    assert counts[0] == counts[1]

    test = data.split.test
    transformed = fitted.apply(test)
    assert len(transformed) == len(test)
    pd.testing.assert_series_equal(
        transformed[OUTCOME].value_counts().sort_index(),
        test[OUTCOME].value_counts().sort_index(),
    )


def test_missing_column_at_apply_is_reported_not_raised(prepared):
    data = prepared["apr_ftic_facility"]
    fitted = scenario_pipeline(data, ratio=1.0).fit(data.split.train)
    test = data.split.test.drop(columns=["college"])

    out = fitted.apply(test)
    assert list(out.columns) == list(fitted.output_columns) + [OUTCOME]
    assert not out.isna().any().any()
    assert [m.message for m in fitted.check_inputs(test)] == ["Input column 'college' missing at apply time"]
    assert fitted.check_inputs(data.split.test) == []


def test_apply_leaves_fitted_pipeline_unchanged(prepared):
    data = prepared["apr_ftic_facility"]
    fitted = scenario_pipeline(data, ratio=1.0).fit(data.split.train)
    test = data.split.test.drop(columns=["college"])
    before = fitted.summary()

    first = fitted.apply(test)
    second = fitted.apply(test)

    pd.testing.assert_frame_equal(first, second)
    assert fitted.summary() == before
    assert len(fitted.check_inputs(test)) == 1


def test_unseen_level_decodes_to_reference():
    train = pd.DataFrame(
        {
            "ethnicity": ["Asian", "Black", "White", "White"] * 10,
            "hs_gpa": np.linspace(2.0, 4.0, 40),
            OUTCOME: [0, 1] * 20,
        }
    )
    pipeline = Pipeline(outcome=OUTCOME, steps=(ModeImpute(), CategoricalEncode()))
    fitted = pipeline.fit(train)
    test = pd.DataFrame({"ethnicity": ["Pacific Islander", "Asian"], "hs_gpa": [3.0, 3.0], OUTCOME: [1, 0]})
    out = fitted.apply(test)
    indicators = ["ethnicity_Black", "ethnicity_White"]
    assert out.loc[0, indicators].tolist() == [0.0, 0.0]
    assert out.loc[0, indicators].tolist() == out.loc[1, indicators].tolist()


def test_summary_lists_learned_parameters(prepared):
    data = prepared["apr_ftic_facility"]
    summary = scenario_pipeline(data, ratio=1.0).fit(data.split.train).summary()
    steps = {s["step"]: s for s in summary["steps"]}
    assert "veteran" in steps["variance_filter"]["dropped"]
    assert "hs_gpa" in steps["mean_impute"]["values"]
    assert "college" in steps["mode_impute"]["values"]
    assert steps["downsample"]["counts_after"]["0"] == steps["downsample"]["counts_after"]["1"]
    assert summary["retained_predictors"]


def test_build_pipeline_ignores_ratio_for_graduation(prepared):
    spec = prepared["grad_4yr"].spec
    pipeline = build_pipeline(spec, ratio=3.0)
    assert not any(isinstance(s, (Downsample, ZeroVarianceFilter)) for s in pipeline.steps)
    assert isinstance(pipeline.steps[0], VarianceFilter)
    assert isinstance(pipeline.steps[1], MeanImpute)
    assert isinstance(pipeline.steps[-1], Scale)
