"""
Descriptive Statistics for the Gate Experiment
==============================================

Read-only aggregation of the cleaned table: group sizes, retention rates,
engagement summaries and the 50-bin histogram of game rounds.

Example Usage:
--------------
>>> from gate_experiment.core import descriptive
>>> summary = descriptive.describe_experiment(df)
>>> print(summary.retention_by_group)
"""

from dataclasses import dataclass
from typing import Dict

import numpy as np
import pandas as pd

from gate_experiment.config import HISTOGRAM_BINS
from gate_experiment.data.schema import GROUP, RETAINED_DAY1, RETAINED_DAY7, ROUNDS
from gate_experiment.exceptions import InsufficientDataError


@dataclass
class DescriptiveSummary:
    """Summary tables for reporting."""
    n_users: int
    group_counts: pd.Series
    group_shares: pd.Series
    retention_by_group: pd.DataFrame
    overall_retention: Dict[str, float]
    rounds_summary: pd.DataFrame
    rounds_histogram: pd.DataFrame
    rounds_distribution: pd.Series
    zero_round_users: int


def rounds_histogram(rounds: np.ndarray, bins: int = HISTOGRAM_BINS) -> pd.DataFrame:
    """
    Equal-width histogram of game rounds over the observed range.

    Parameters
    ----------
    rounds : np.ndarray
        Round counts (post-filter)
    bins : int, default=50
        Number of equal-width bins between min and max

    Returns
    -------
    pd.DataFrame
        One row per bin with bin_left, bin_right and count. The last bin is
        closed on the right, so counts sum to len(rounds).
    """
    rounds = np.asarray(rounds)
    if len(rounds) == 0:
        raise InsufficientDataError("Cannot build a histogram from zero rows")
    if bins < 1:
        raise ValueError("bins must be at least 1")

    counts, edges = np.histogram(rounds, bins=bins, range=(rounds.min(), rounds.max()))
    return pd.DataFrame({
        'bin_left': edges[:-1],
        'bin_right': edges[1:],
        'count': counts,
    })


def describe_experiment(df: pd.DataFrame, bins: int = HISTOGRAM_BINS) -> DescriptiveSummary:
    """
    Compute group-wise counts, retention rates and engagement summaries.

    Parameters
    ----------
    df : pd.DataFrame
        Cleaned UserRecord table
    bins : int, default=50
        Histogram bins for rounds_played

    Returns
    -------
    DescriptiveSummary
        The input frame is not modified.
    """
    if len(df) == 0:
        raise InsufficientDataError("No users to describe")

    grouped = df.groupby(GROUP, observed=False)

    group_counts = grouped.size().rename('n_users')
    retention_by_group = grouped.agg(
        n_users=(ROUNDS, 'size'),
        retained_day1=(RETAINED_DAY1, 'mean'),
        retained_day7=(RETAINED_DAY7, 'mean'),
        mean_rounds=(ROUNDS, 'mean'),
    )

    rounds_summary = grouped[ROUNDS].describe()
    rounds_summary.index = rounds_summary.index.astype(str)
    rounds_summary.loc['all'] = df[ROUNDS].describe()

    return DescriptiveSummary(
        n_users=len(df),
        group_counts=group_counts,
        group_shares=group_counts / group_counts.sum(),
        retention_by_group=retention_by_group,
        overall_retention={
            RETAINED_DAY1: float(df[RETAINED_DAY1].mean()),
            RETAINED_DAY7: float(df[RETAINED_DAY7].mean()),
        },
        rounds_summary=rounds_summary,
        rounds_histogram=rounds_histogram(df[ROUNDS].to_numpy(), bins=bins),
        rounds_distribution=df[ROUNDS].value_counts().sort_index().rename('n_users'),
        zero_round_users=int((df[ROUNDS] == 0).sum()),
    )
