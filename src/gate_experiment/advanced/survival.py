"""
Survival Analysis of Player Churn
=================================

Treats game rounds as the time axis and churn (not retained at day 7) as the
event. Players still retained at day 7 are right-censored at their observed
round count.

Key Concepts:
- **Kaplan-Meier**: S(t) = Π_{t_i <= t} (n_i - d_i) / n_i over distinct times
- **At risk**: players whose round count is >= t
- **Log-rank test**: compares observed vs expected events per group, 1 df

Reference:
----------
- Kaplan & Meier (1958): "Nonparametric Estimation from Incomplete Observations"
- Mantel (1966): "Evaluation of survival data and two new rank order statistics"

Example Usage:
--------------
>>> from gate_experiment.advanced import survival
>>> result = survival.fit_retention_survival(df)
>>> print(result.curves['gate_30'].head())
>>> print(f"Log-rank p = {result.logrank['p_value']:.4f}")
"""

from dataclasses import dataclass
from typing import Dict, Any

import numpy as np
import pandas as pd
from lifelines import KaplanMeierFitter
from lifelines.statistics import logrank_test as lifelines_logrank_test
from lifelines.utils import survival_table_from_events

from gate_experiment.data.schema import RETAINED_DAY7, ROUNDS, group_labels, treatment_indicator
from gate_experiment.exceptions import InsufficientDataError


@dataclass
class SurvivalResult:
    """Kaplan-Meier curves per group and the log-rank comparison."""
    curves: Dict[str, pd.DataFrame]
    median_survival: Dict[str, float]
    logrank: Dict[str, Any]
    n_events: Dict[str, int]
    n_censored: Dict[str, int]


def _validate(durations: np.ndarray, events: np.ndarray):
    if len(durations) != len(events):
        raise ValueError("durations and events must have same length")
    if len(durations) == 0:
        raise InsufficientDataError("Need at least one observation for a survival curve")
    if np.any(durations < 0):
        raise ValueError("durations must be non-negative")
    if not np.all(np.isin(events, [0, 1])):
        raise ValueError("events must be binary (0/1)")


def kaplan_meier(durations: np.ndarray, events: np.ndarray) -> pd.DataFrame:
    """
    Kaplan-Meier estimate of the survival function.

    Parameters
    ----------
    durations : np.ndarray
        Observed time for each subject (game rounds)
    events : np.ndarray
        1 if the event (churn) occurred at that time, 0 if censored

    Returns
    -------
    pd.DataFrame
        Columns time, at_risk, events, censored, survival. The first row is
        the origin (time 0, survival 1.0, nothing removed); each following
        row is a distinct observed time with survival after removing that
        time's events. Ties are pooled; censored subjects count as at risk
        at their own time.

    Notes
    -----
    - Survival is non-increasing by construction.
    - Subjects with duration 0 form their own row at time 0 after the origin.
    """
    durations = np.asarray(durations, dtype=float)
    events = np.asarray(events, dtype=int)
    _validate(durations, events)

    kmf = KaplanMeierFitter()
    kmf.fit(durations, event_observed=events)

    # event_table always has a time-0 entry row; keep observed times only
    table = kmf.event_table[kmf.event_table['removed'] > 0]
    times = table.index.to_numpy(dtype=float)

    origin = pd.DataFrame({
        'time': [0.0],
        'at_risk': [len(durations)],
        'events': [0],
        'censored': [0],
        'survival': [1.0],
    })
    steps = pd.DataFrame({
        'time': times,
        'at_risk': table['at_risk'].to_numpy(dtype=int),
        'events': table['observed'].to_numpy(dtype=int),
        'censored': table['censored'].to_numpy(dtype=int),
        'survival': kmf.survival_function_at_times(times).to_numpy(dtype=float),
    })
    return pd.concat([origin, steps], ignore_index=True)


def survival_at(curve: pd.DataFrame, t: float) -> float:
    """
    Right-continuous step lookup of S(t) on a ``kaplan_meier`` table.

    S(t) is the survival after removing the events at t. When subjects
    churn at time 0, ``survival_at(curve, 0)`` is therefore below 1; only
    the origin row of the table (and any t < 0) carries survival 1.0.
    """
    if t < 0:
        return 1.0
    eligible = curve[curve['time'] <= t]
    return float(eligible['survival'].iloc[-1])


def median_survival_time(curve: pd.DataFrame) -> float:
    """First time at which survival drops to 0.5 or below; NaN if it never does."""
    below = curve[curve['survival'] <= 0.5]
    if len(below) == 0:
        return np.nan
    return float(below['time'].iloc[0])


def logrank_test(
    durations: np.ndarray,
    events: np.ndarray,
    groups: np.ndarray,
) -> Dict[str, Any]:
    """
    Two-group log-rank test for equality of survival curves.

    Parameters
    ----------
    durations : np.ndarray
        Observed times
    events : np.ndarray
        Event indicators (1 = event, 0 = censored)
    groups : np.ndarray
        Binary group indicator (0 = control, 1 = treatment)

    Returns
    -------
    dict
        Dictionary with keys:
        - chi2_statistic: (O - E)² / V for the control group
        - df: Degrees of freedom (1)
        - p_value: Upper tail of chi-square(1)
        - observed_control, expected_control
        - observed_treatment, expected_treatment
        - variance: Hypergeometric variance summed over event times

    Notes
    -----
    At each distinct event time with n at risk (n_0 in control) and d events:
    E_0 = d·n_0/n, V = d·(n_0/n)·(1 - n_0/n)·(n - d)/(n - 1).
    """
    durations = np.asarray(durations, dtype=float)
    events = np.asarray(events, dtype=int)
    groups = np.asarray(groups, dtype=int)
    _validate(durations, events)
    if len(groups) != len(durations):
        raise ValueError("groups must have same length as durations")
    if not np.all(np.isin(groups, [0, 1])):
        raise ValueError("groups must be binary (0/1)")
    if (groups == 0).sum() == 0 or (groups == 1).sum() == 0:
        raise InsufficientDataError("Log-rank test needs observations in both groups")

    control = groups == 0
    pooled = survival_table_from_events(durations, events)
    pooled = pooled[pooled['observed'] > 0]
    event_times = pooled.index.to_numpy(dtype=float)

    n = pooled['at_risk'].to_numpy(dtype=float)
    d = pooled['observed'].to_numpy(dtype=float)
    # Control players still at risk at each pooled event time
    control_sorted = np.sort(durations[control])
    n_control = len(control_sorted) - np.searchsorted(control_sorted, event_times, side='left')

    share = n_control / n
    observed_control = float(events[control].sum())
    expected_control = float(np.sum(d * share))
    with np.errstate(divide='ignore', invalid='ignore'):
        terms = np.where(n > 1, d * share * (1 - share) * (n - d) / (n - 1), 0.0)
    variance = float(np.sum(terms))

    total_events = int(events.sum())
    if variance > 0:
        result = lifelines_logrank_test(
            durations[control], durations[~control],
            event_observed_A=events[control], event_observed_B=events[~control],
        )
        chi2_statistic = result.test_statistic
        p_value = result.p_value
    else:
        chi2_statistic = 0.0
        p_value = 1.0

    return {
        'chi2_statistic': float(chi2_statistic),
        'df': 1,
        'p_value': float(p_value),
        'observed_control': float(observed_control),
        'expected_control': float(expected_control),
        'observed_treatment': float(total_events - observed_control),
        'expected_treatment': float(total_events - expected_control),
        'variance': float(variance),
    }


def fit_retention_survival(df: pd.DataFrame, alpha: float = 0.05) -> SurvivalResult:
    """
    Kaplan-Meier curves of rounds-until-churn per gate plus a log-rank test.

    Parameters
    ----------
    df : pd.DataFrame
        Cleaned UserRecord table
    alpha : float, default=0.05
        Significance level reported with the log-rank result

    Returns
    -------
    SurvivalResult
        Curves keyed by group label.
    """
    durations = df[ROUNDS].to_numpy(dtype=float)
    events = 1 - df[RETAINED_DAY7].to_numpy(dtype=int)
    groups = treatment_indicator(df)
    labels = group_labels(df)

    curves = {}
    medians = {}
    n_events = {}
    n_censored = {}
    for code, label in enumerate(labels):
        mask = groups == code
        if mask.sum() == 0:
            raise InsufficientDataError(f"No users in group '{label}' for survival analysis")
        curve = kaplan_meier(durations[mask], events[mask])
        curves[label] = curve
        medians[label] = median_survival_time(curve)
        n_events[label] = int(events[mask].sum())
        n_censored[label] = int(mask.sum() - events[mask].sum())

    logrank = logrank_test(durations, events, groups)
    logrank['significant'] = bool(logrank['p_value'] < alpha)

    return SurvivalResult(
        curves=curves,
        median_survival=medians,
        logrank=logrank,
        n_events=n_events,
        n_censored=n_censored,
    )
