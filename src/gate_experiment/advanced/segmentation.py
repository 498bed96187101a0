"""
Engagement Segmentation
=======================

Median split of players by ``rounds_played`` into low and high engagement
bands, with retention per gate within each band.

Example Usage:
--------------
>>> from gate_experiment.advanced import segmentation
>>> seg = segmentation.segment_by_engagement(df)
>>> print(f"Median rounds: {seg.median}")
>>> print(seg.retention_by_segment)
"""

from dataclasses import dataclass
from typing import Dict

import numpy as np
import pandas as pd

from gate_experiment.data.schema import (
    ENGAGEMENT_BAND,
    GROUP,
    RETAINED_DAY1,
    RETAINED_DAY7,
    ROUNDS,
    USER_ID,
    EngagementBand,
)
from gate_experiment.exceptions import InsufficientDataError


@dataclass
class SegmentationResult:
    """Table enriched with ``engagement_band`` plus per-segment retention."""
    data: pd.DataFrame
    median: float
    band_counts: Dict[str, int]
    retention_by_segment: pd.DataFrame


def assign_engagement_band(rounds: pd.Series, median: float) -> pd.Categorical:
    """HIGH strictly above the median, LOW otherwise."""
    bands = np.where(rounds > median, EngagementBand.HIGH.value, EngagementBand.LOW.value)
    return pd.Categorical(
        bands,
        categories=[EngagementBand.LOW.value, EngagementBand.HIGH.value],
        ordered=True,
    )


def segment_by_engagement(df: pd.DataFrame) -> SegmentationResult:
    """
    Split players at the median round count.

    Parameters
    ----------
    df : pd.DataFrame
        Cleaned UserRecord table

    Returns
    -------
    SegmentationResult
        ``retention_by_segment`` is indexed by (group, engagement_band) with
        columns n_users, retained_day1, retained_day7.

    Notes
    -----
    Players exactly at the median are LOW, so with many ties at the median
    the bands can be far from equal in size.
    """
    if len(df) == 0:
        raise InsufficientDataError("Cannot segment an empty table")

    median = float(df[ROUNDS].median())
    segmented = df.assign(**{ENGAGEMENT_BAND: assign_engagement_band(df[ROUNDS], median)})

    band_counts = {
        band: int(count)
        for band, count in segmented[ENGAGEMENT_BAND].value_counts(sort=False).items()
    }

    retention_by_segment = (
        segmented.groupby([GROUP, ENGAGEMENT_BAND], observed=False)
        .agg(
            n_users=(USER_ID, 'count'),
            retained_day1=(RETAINED_DAY1, 'mean'),
            retained_day7=(RETAINED_DAY7, 'mean'),
        )
    )

    return SegmentationResult(
        data=segmented,
        median=median,
        band_counts=band_counts,
        retention_by_segment=retention_by_segment,
    )
