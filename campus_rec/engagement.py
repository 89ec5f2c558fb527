"""
campus_rec/engagement.py

Joins recreation engagement onto the student table.

Each raw engagement source is an event log (one row per facility swipe,
intramural roster entry or group-fitness check-in). Events are counted per
student, left-joined onto the students, and students with no events get a
count of zero rather than a missing value. Yes/No participation indicators
are derived from the counts.
"""

from __future__ import annotations

from typing import Optional

import numpy as np
import pandas as pd

from campus_rec.config import ID_COL


# source name -> (count column, indicator column or None)
ENGAGEMENT_COLUMNS = {
    "facility": ("facility_visits", "facility_user"),
    "intramural": ("intramural_count", "intramural_participant"),
    "group_fitness": ("group_fitness_visits", None),
}


def count_events(events: Optional[pd.DataFrame], name: str, id_col: str = ID_COL) -> pd.Series:
    """Number of events per student."""
    if events is None or events.empty:
        return pd.Series(dtype="int64", name=name)
    return events.groupby(id_col).size().rename(name)


def yes_no(counts: pd.Series) -> pd.Series:
    return pd.Series(np.where(counts > 0, "Yes", "No"), index=counts.index)


def attach_engagement(
    students: pd.DataFrame,
    facility: Optional[pd.DataFrame] = None,
    intramural: Optional[pd.DataFrame] = None,
    group_fitness: Optional[pd.DataFrame] = None,
    id_col: str = ID_COL,
) -> pd.DataFrame:
    """
    Return ``students`` with the engagement count and indicator columns added.

    Row count and order of ``students`` are preserved; event rows for ids not
    present in ``students`` are ignored.
    """
    if id_col not in students.columns:
        raise KeyError(f"Student table has no '{id_col}' column")

    out = students.copy()
    sources = {"facility": facility, "intramural": intramural, "group_fitness": group_fitness}

    for source, events in sources.items():
        count_col, flag_col = ENGAGEMENT_COLUMNS[source]
        counts = count_events(events, count_col, id_col)
        out[count_col] = out[id_col].map(counts).fillna(0).astype("int64")
        if flag_col is not None:
            out[flag_col] = yes_no(out[count_col]).to_numpy()

    return out
