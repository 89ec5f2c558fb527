import numpy as np
import pandas as pd
import pytest

from campus_rec.errors import DataInsufficiencyError, TransformMismatchError
from campus_rec.preprocessing import (
    CategoricalEncode,
    Downsample,
    MeanImpute,
    ModeImpute,
    Scale,
    VarianceFilter,
    ZeroVarianceFilter,
    indicator_name,
    is_near_zero_variance,
)


OUTCOME = "apr_retained"


def test_near_zero_variance_rule():
    assert is_near_zero_variance(pd.Series([1.0] * 50))
    assert is_near_zero_variance(pd.Series(["No"] * 98 + ["Yes"] * 2))
    assert not is_near_zero_variance(pd.Series(["No"] * 60 + ["Yes"] * 40))
    assert not is_near_zero_variance(pd.Series(np.arange(100, dtype=float)))


def test_variance_filter_learns_on_training_and_never_touches_outcome():
    train = pd.DataFrame(
        {
            "veteran": ["No"] * 99 + ["Yes"],
            "hs_gpa": np.linspace(2, 4, 100),
            OUTCOME: [1] * 100,
        }
    )
    step = VarianceFilter()
    params = step.fit(train, OUTCOME)
    assert params.dropped == ("veteran",)

    # the other table varies in 'veteran' but the learned decision still applies
    other = pd.DataFrame({"veteran": ["Yes", "No"], "hs_gpa": [3.0, 3.5], OUTCOME: [0, 1]})
    out = step.apply(params, other)
    assert list(out.columns) == ["hs_gpa", OUTCOME]


def test_mean_impute_uses_training_mean(small_table):
    step = MeanImpute()
    params = step.fit(small_table, OUTCOME)
    train_mean = small_table["hs_gpa"].mean()
    assert params.values["hs_gpa"] == pytest.approx(train_mean)
    assert OUTCOME not in params.values

    test = pd.DataFrame({"hs_gpa": [np.nan, 100.0], "group_fitness_visits": [np.nan, 1], OUTCOME: [0, 1]})
    out = step.apply(params, test)
    assert out.loc[0, "hs_gpa"] == pytest.approx(train_mean)
    assert out.loc[1, "hs_gpa"] == 100.0
    assert out["group_fitness_visits"].notna().all()


def test_mode_impute_uses_training_mode():
    train = pd.DataFrame({"college": ["Business", "Business", "Health", None], OUTCOME: [0, 1, 1, 0]})
    step = ModeImpute()
    params = step.fit(train, OUTCOME)
    assert params.values == {"college": "Business"}

    test = pd.DataFrame({"college": [None, "Health", None], OUTCOME: [1, 1, 1]})
    out = step.apply(params, test)
    assert list(out["college"]) == ["Business", "Health", "Business"]


def test_categorical_encode_reference_and_unseen_levels():
    train = pd.DataFrame({"gender": ["Female", "Male", "Non-binary", "Male"], OUTCOME: [0, 1, 1, 0]})
    step = CategoricalEncode()
    params = step.fit(train, OUTCOME)
    assert params.levels["gender"] == ("Female", "Male", "Non-binary")
    assert params.indicator_columns() == ["gender_Male", "gender_Non_binary"]

    test = pd.DataFrame({"gender": ["Male", "Female", "Agender"], OUTCOME: [1, 0, 1]})
    out = step.apply(params, test)
    assert "gender" not in out.columns
    assert out["gender_Male"].tolist() == [1.0, 0.0, 0.0]
    assert out["gender_Non_binary"].tolist() == [0.0, 0.0, 0.0]
    # unseen level decodes exactly like the reference level
    assert out.iloc[2][["gender_Male", "gender_Non_binary"]].tolist() == out.iloc[1][["gender_Male", "gender_Non_binary"]].tolist()


def test_indicator_name_sanitizes_levels():
    assert indicator_name("college", "Arts & Sciences") == "college_Arts_Sciences"
    assert indicator_name("residency", "Out-of-State") == "residency_Out_of_State"


@pytest.mark.parametrize(
    "ratio, expected_majority",
    [
        (1.0, 50),     # balanced
        (0.5, 100),    # minority is half the majority
        (4.0, 12),     # round(50 / 4)
        (0.1, 150),    # would need 500, capped at what exists
    ],
)
def test_downsample_hits_target_ratio(small_table, ratio, expected_majority):
    step = Downsample(ratio=ratio, seed=3)
    params = step.fit(small_table, OUTCOME)
    out = step.apply(params, small_table)
    counts = out[OUTCOME].value_counts()
    assert counts[0] == 50
    assert counts[1] == expected_majority


def test_downsample_is_seeded_and_keeps_index(small_table):
    a = Downsample(ratio=1.0, seed=11).fit(small_table, OUTCOME)
    b = Downsample(ratio=1.0, seed=11).fit(small_table, OUTCOME)
    c = Downsample(ratio=1.0, seed=12).fit(small_table, OUTCOME)
    assert a.kept_positions == b.kept_positions
    assert a.kept_positions != c.kept_positions
    assert a.n_rows == len(small_table)

    out = Downsample(ratio=1.0, seed=11).apply(a, small_table)
    assert set(out.index) <= set(small_table.index)


def test_downsample_with_repeated_index_labels():
    # two concatenated frames share labels 0 and 1
    table = pd.DataFrame(
        {"hs_gpa": np.linspace(2.0, 4.0, 8), OUTCOME: [1, 1, 1, 1, 1, 1, 0, 0]},
        index=[0, 1, 2, 3, 4, 5, 0, 1],
    )
    step = Downsample(ratio=1.0, seed=4)
    params = step.fit(table, OUTCOME)
    out = step.apply(params, table)

    assert len(out) == 4
    assert out[OUTCOME].value_counts().to_dict() == {0: 2, 1: 2}
    assert params.counts_after == {"0": 2, "1": 2}


def test_downsample_refuses_a_table_of_another_length(small_table):
    step = Downsample(ratio=1.0, seed=4)
    params = step.fit(small_table, OUTCOME)
    with pytest.raises(TransformMismatchError):
        step.apply(params, small_table.iloc[:-1])


def test_downsample_single_class_is_fatal(small_table):
    one_class = small_table.loc[small_table[OUTCOME] == 1]
    with pytest.raises(DataInsufficiencyError):
        Downsample(ratio=1.0).fit(one_class, OUTCOME)


def test_downsample_rejects_non_positive_ratio():
    with pytest.raises(ValueError):
        Downsample(ratio=0.0)


def test_zero_variance_filter():
    train = pd.DataFrame({"gender_Non_binary": [0.0] * 5, "hs_gpa": [1.0, 2, 3, 4, 5], OUTCOME: [0, 1, 0, 1, 1]})
    step = ZeroVarianceFilter()
    params = step.fit(train, OUTCOME)
    assert params.dropped == ("gender_Non_binary",)
    assert list(step.apply(params, train).columns) == ["hs_gpa", OUTCOME]


def test_scale_uses_training_statistics():
    train = pd.DataFrame({"x": [1.0, 2.0, 3.0], "flag": [0.0, 1.0, 1.0], OUTCOME: [0, 1, 1]})
    step = Scale(columns=("x",))
    params = step.fit(train, OUTCOME)
    assert params.centers == {"x": 2.0}
    assert params.scales == {"x": pytest.approx(1.0)}

    test = pd.DataFrame({"x": [4.0], "flag": [1.0], OUTCOME: [1]})
    out = step.apply(params, test)
    assert out.loc[0, "x"] == pytest.approx(2.0)
    assert out.loc[0, "flag"] == 1.0
    assert out.loc[0, OUTCOME] == 1


def test_scale_all_numeric_by_default():
    train = pd.DataFrame({"x": [1.0, 3.0], "flag": [0.0, 1.0], OUTCOME: [0, 1]})
    params = Scale().fit(train, OUTCOME)
    assert set(params.centers) == {"x", "flag"}
