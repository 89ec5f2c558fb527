import numpy as np
import pandas as pd
import pytest

from campus_rec.make_synthetic_data import generate_campus_rec_dataset


@pytest.fixture(scope="session")
def joined() -> pd.DataFrame:
    return generate_campus_rec_dataset(n_students=1500, random_state=7)


@pytest.fixture
def small_table() -> pd.DataFrame:
    """200 rows, 25% minority outcome, one numeric and one categorical predictor with gaps."""
    rng = np.random.default_rng(0)
    n = 200
    outcome = np.array([0] * 50 + [1] * 150)
    gpa = np.round(rng.normal(3.0, 0.4, size=n), 2)
    gpa[::17] = np.nan
    housing = rng.choice(["Yes", "No"], size=n).astype(object)
    housing[::23] = None
    return pd.DataFrame(
        {
            "hs_gpa": gpa,
            "on_campus_housing": housing,
            "group_fitness_visits": rng.poisson(3, size=n),
            "apr_retained": outcome,
        },
        index=pd.RangeIndex(1000, 1000 + n),
    )
