"""
UserRecord schema: column names and the two-level enumerations.
"""

from enum import Enum
from typing import Tuple

import numpy as np
import pandas as pd


class Group(str, Enum):
    """Gate placement assignment."""
    CONTROL = "gate_30"
    TREATMENT = "gate_40"


class EngagementBand(str, Enum):
    """Median-split engagement level."""
    LOW = "low"
    HIGH = "high"


USER_ID = "user_id"
GROUP = "group"
ROUNDS = "rounds_played"
RETAINED_DAY1 = "retained_day1"
RETAINED_DAY7 = "retained_day7"

ENGAGEMENT_BAND = "engagement_band"
PROPENSITY_SCORE = "propensity_score"
IPW_WEIGHT = "inverse_probability_weight"
PREDICTED_PROBABILITY = "predicted_probability"

RETENTION_COLUMNS = [RETAINED_DAY1, RETAINED_DAY7]

# Raw CSV header -> UserRecord field
RAW_COLUMN_MAP = {
    "userid": USER_ID,
    "version": GROUP,
    "sum_gamerounds": ROUNDS,
    "retention_1": RETAINED_DAY1,
    "retention_7": RETAINED_DAY7,
}

REQUIRED_RAW_COLUMNS = list(RAW_COLUMN_MAP)


def group_labels(df: pd.DataFrame) -> Tuple[str, str]:
    """(control, treatment) labels, taken from the categorical levels when present."""
    column = df[GROUP]
    if isinstance(column.dtype, pd.CategoricalDtype) and len(column.cat.categories) == 2:
        control, treatment = column.cat.categories
        return str(control), str(treatment)
    return Group.CONTROL.value, Group.TREATMENT.value


def treatment_indicator(df: pd.DataFrame) -> np.ndarray:
    """Binary array: 1 for the treatment group, 0 for control."""
    _, treatment = group_labels(df)
    return (df[GROUP].astype(str) == treatment).astype(int).to_numpy()


def split_by_group(df: pd.DataFrame, column: str) -> Tuple[np.ndarray, np.ndarray]:
    """Values of ``column`` for the control and treatment groups."""
    is_treatment = treatment_indicator(df) == 1
    values = df[column].to_numpy()
    return values[~is_treatment], values[is_treatment]
