"""
Cleaning of raw user records.

Coerces retention flags to 0/1 integers, casts the group label to a fixed
two-level categorical and drops rows above the outlier threshold.

Example Usage:
--------------
>>> from gate_experiment.data import loaders, cleaning
>>> raw = loaders.load_cookie_cats()
>>> result = cleaning.clean_user_records(raw)
>>> print(f"Dropped {result.n_dropped} outlier rows")
"""

from dataclasses import dataclass, field
from typing import List

import numpy as np
import pandas as pd

from gate_experiment.config import CONTROL_LABEL, OUTLIER_THRESHOLD, TREATMENT_LABEL
from gate_experiment.data.schema import GROUP, RETENTION_COLUMNS, ROUNDS, USER_ID
from gate_experiment.exceptions import DataFormatError, SchemaError


_TRUE_STRINGS = {"true", "1", "t", "yes"}
_FALSE_STRINGS = {"false", "0", "f", "no"}


@dataclass
class CleaningResult:
    """Cleaned table plus the bookkeeping of the outlier filter."""
    data: pd.DataFrame
    n_before: int
    n_after: int
    n_dropped: int
    threshold: int
    dropped_user_ids: List = field(default_factory=list)

    @property
    def drop_rate(self) -> float:
        return self.n_dropped / self.n_before if self.n_before else 0.0


def coerce_binary(values: pd.Series, name: str) -> pd.Series:
    """
    Convert a boolean-like column to int 0/1.

    Accepts bools, 0/1 numerics and true/false strings (any case).

    Raises
    ------
    DataFormatError
        If any value cannot be interpreted as a boolean
    """
    if values.isna().any():
        raise DataFormatError(f"Column '{name}' contains missing values")

    if pd.api.types.is_bool_dtype(values):
        return values.astype(int)

    if pd.api.types.is_numeric_dtype(values):
        if not values.isin([0, 1]).all():
            bad = values[~values.isin([0, 1])].unique()[:5].tolist()
            raise DataFormatError(f"Column '{name}' has non-binary values: {bad}")
        return values.astype(int)

    normalized = values.astype(str).str.strip().str.lower()
    is_true = normalized.isin(_TRUE_STRINGS)
    is_false = normalized.isin(_FALSE_STRINGS)
    if not (is_true | is_false).all():
        bad = values[~(is_true | is_false)].unique()[:5].tolist()
        raise DataFormatError(f"Column '{name}' has non-boolean values: {bad}")
    return is_true.astype(int)


def coerce_group(
    values: pd.Series,
    control_label: str = CONTROL_LABEL,
    treatment_label: str = TREATMENT_LABEL,
) -> pd.Series:
    """
    Cast group labels to an ordered two-level categorical (control first).

    Raises
    ------
    SchemaError
        If more than two distinct values are present or a label is not one
        of the two expected levels
    """
    labels = values.astype(str).str.strip()
    observed = sorted(labels.unique())

    if len(observed) > 2:
        raise SchemaError(
            f"Expected at most two groups, observed {len(observed)}: {observed}"
        )
    unknown = [label for label in observed if label not in (control_label, treatment_label)]
    if unknown:
        raise SchemaError(
            f"Unexpected group label(s) {unknown}; expected '{control_label}' or '{treatment_label}'"
        )

    return pd.Series(
        pd.Categorical(labels, categories=[control_label, treatment_label], ordered=True),
        index=values.index,
        name=values.name,
    )


def clean_user_records(
    df: pd.DataFrame,
    outlier_threshold: int = OUTLIER_THRESHOLD,
    control_label: str = CONTROL_LABEL,
    treatment_label: str = TREATMENT_LABEL,
) -> CleaningResult:
    """
    Coerce types and remove anomalous high-activity rows.

    Parameters
    ----------
    df : pd.DataFrame
        Output of ``loaders.load_user_records``
    outlier_threshold : int, default=1000
        Rows with rounds_played strictly greater than this are dropped
    control_label, treatment_label : str
        The two allowed group levels

    Returns
    -------
    CleaningResult
        ``data`` is a new frame; the input is not modified.

    Raises
    ------
    DataFormatError
        Missing/negative/non-integer round counts or non-boolean retention
    SchemaError
        Unexpected group levels
    """
    cleaned = df.copy()

    for col in RETENTION_COLUMNS:
        cleaned[col] = coerce_binary(cleaned[col], col)

    cleaned[GROUP] = coerce_group(cleaned[GROUP], control_label, treatment_label)

    rounds = pd.to_numeric(cleaned[ROUNDS], errors="coerce")
    if rounds.isna().any():
        raise DataFormatError(f"Column '{ROUNDS}' contains missing or non-numeric values")
    if (rounds < 0).any():
        raise DataFormatError(f"Column '{ROUNDS}' must be non-negative")
    if not np.all(np.mod(rounds, 1) == 0):
        raise DataFormatError(f"Column '{ROUNDS}' must hold whole round counts")
    cleaned[ROUNDS] = rounds.astype(np.int64)

    n_before = len(cleaned)
    outliers = cleaned[ROUNDS] > outlier_threshold
    dropped_ids = cleaned.loc[outliers, USER_ID].tolist()
    cleaned = cleaned.loc[~outliers].reset_index(drop=True)

    return CleaningResult(
        data=cleaned,
        n_before=n_before,
        n_after=len(cleaned),
        n_dropped=n_before - len(cleaned),
        threshold=outlier_threshold,
        dropped_user_ids=dropped_ids,
    )
