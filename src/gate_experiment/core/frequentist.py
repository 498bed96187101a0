"""
Frequentist Statistical Tests for Retention
===========================================

Welch's t-test for mean retention (closed form, Welch-Satterthwaite degrees
of freedom) and the pooled z-test for retention proportions, applied to both
retention horizons.

Example Usage:
--------------
>>> from gate_experiment.core import frequentist
>>>
>>> # Welch's t-test on day-7 retention flags
>>> result = frequentist.welch_ttest(control_r7, treatment_r7)
>>> print(f"diff={result['difference']:.4f}, df={result['df']:.1f}, p={result['p_value']:.4f}")
>>>
>>> # Both horizons from the cleaned table
>>> tests = frequentist.retention_tests(df)
>>> print(tests['retained_day1'].p_value)
"""

from dataclasses import dataclass, field
from typing import Dict, Tuple, Any

import numpy as np
import pandas as pd
from scipy import stats

from gate_experiment.config import ALPHA
from gate_experiment.data.schema import RETENTION_COLUMNS, split_by_group
from gate_experiment.exceptions import InsufficientDataError


@dataclass
class RetentionTestResult:
    """Welch test of one retention horizon, with the matching z-test."""
    horizon: str
    n_control: int
    n_treatment: int
    mean_control: float
    mean_treatment: float
    diff: float
    t_stat: float
    df: float
    p_value: float
    ci_95: Tuple[float, float]
    significant: bool
    z_test: Dict[str, Any] = field(default_factory=dict)


def z_test_proportions(
    x_control: int,
    n_control: int,
    x_treatment: int,
    n_treatment: int,
    alpha: float = ALPHA,
    two_sided: bool = True,
) -> Dict[str, float]:
    """
    Two-sample Z-test for proportions (e.g., retention rates).

    Uses pooled standard error for the test statistic and non-pooled
    standard error for the confidence interval.

    Parameters
    ----------
    x_control : int
        Number of retained users in control group
    n_control : int
        Total sample size in control group
    x_treatment : int
        Number of retained users in treatment group
    n_treatment : int
        Total sample size in treatment group
    alpha : float, default=0.05
        Significance level
    two_sided : bool, default=True
        Whether to use two-sided test

    Returns
    -------
    dict
        Dictionary with keys:
        - p_control, p_treatment: Group proportions
        - absolute_lift: Treatment - Control (in pp)
        - relative_lift: (Treatment - Control) / Control
        - z_statistic, p_value
        - ci_lower, ci_upper: CI of the absolute lift
        - significant: Whether result is significant at alpha
    """
    if x_control < 0 or x_treatment < 0:
        raise ValueError("x_control and x_treatment must be non-negative")
    if n_control <= 0 or n_treatment <= 0:
        raise ValueError("n_control and n_treatment must be positive")
    if x_control > n_control or x_treatment > n_treatment:
        raise ValueError("Number of successes cannot exceed sample size")

    p_control = x_control / n_control
    p_treatment = x_treatment / n_treatment

    # Pooled proportion (for test statistic)
    p_pooled = (x_control + x_treatment) / (n_control + n_treatment)
    se_pooled = np.sqrt(p_pooled * (1 - p_pooled) * (1/n_control + 1/n_treatment))

    if se_pooled > 0:
        z_stat = (p_treatment - p_control) / se_pooled
        if two_sided:
            p_value = 2 * stats.norm.sf(abs(z_stat))
        else:
            p_value = stats.norm.sf(z_stat)
    else:
        # Every user retained (or none): no variation to test
        z_stat = 0.0
        p_value = 1.0

    se_diff = np.sqrt(p_control*(1-p_control)/n_control +
                      p_treatment*(1-p_treatment)/n_treatment)
    z_critical = stats.norm.ppf(1 - alpha/2) if two_sided else stats.norm.ppf(1 - alpha)
    ci_lower = (p_treatment - p_control) - z_critical * se_diff
    ci_upper = (p_treatment - p_control) + z_critical * se_diff

    return {
        'p_control': float(p_control),
        'p_treatment': float(p_treatment),
        'absolute_lift': float(p_treatment - p_control),
        'relative_lift': float((p_treatment - p_control) / p_control) if p_control > 0 else np.nan,
        'z_statistic': float(z_stat),
        'p_value': float(p_value),
        'ci_lower': float(ci_lower),
        'ci_upper': float(ci_upper),
        'significant': bool(p_value < alpha),
    }


def welch_ttest(
    control: np.ndarray,
    treatment: np.ndarray,
    alpha: float = ALPHA,
    two_sided: bool = True,
) -> Dict[str, float]:
    """
    Welch's t-test for comparing group means.

    Does NOT assume equal variances. All quantities are closed form.

    Parameters
    ----------
    control : np.ndarray
        Observations from control group
    treatment : np.ndarray
        Observations from treatment group
    alpha : float, default=0.05
        Significance level (CI level is 1 - alpha)
    two_sided : bool, default=True
        Whether to use two-sided test

    Returns
    -------
    dict
        Dictionary with keys:
        - mean_control, mean_treatment: Group means
        - difference: Treatment - Control
        - relative_lift: (Treatment - Control) / Control
        - se_diff: Standard error of the difference
        - t_statistic: T-test statistic
        - df: Welch-Satterthwaite degrees of freedom
        - p_value: P-value
        - ci_lower, ci_upper: CI of the difference
        - cohens_d: Effect size (pooled standard deviation)
        - significant: Whether result is significant at alpha

    Raises
    ------
    InsufficientDataError
        If a group has fewer than 2 observations, or both groups have zero
        variance (the statistic is undefined)

    Notes
    -----
    - t = (x̄_t - x̄_c) / √(s²_c/n_c + s²_t/n_t)
    - df = (s²_c/n_c + s²_t/n_t)² / [(s²_c/n_c)²/(n_c-1) + (s²_t/n_t)²/(n_t-1)]
    - Swapping the groups negates difference and t; p_value is unchanged.
    """
    control = np.asarray(control, dtype=float)
    treatment = np.asarray(treatment, dtype=float)

    if len(control) < 2 or len(treatment) < 2:
        raise InsufficientDataError("Each group must have at least 2 observations")
    if not (0 < alpha < 1):
        raise ValueError(f"alpha must be between 0 and 1, got {alpha}")

    mean_c = control.mean()
    mean_t = treatment.mean()
    var_c = control.var(ddof=1)
    var_t = treatment.var(ddof=1)
    n_c = len(control)
    n_t = len(treatment)

    se_c = var_c / n_c
    se_t = var_t / n_t
    se = np.sqrt(se_c + se_t)
    if se == 0:
        raise InsufficientDataError("Both groups have zero variance; t-statistic is undefined")

    difference = mean_t - mean_c
    t_stat = difference / se
    df = (se_c + se_t)**2 / (se_c**2 / (n_c - 1) + se_t**2 / (n_t - 1))

    if two_sided:
        p_value = 2 * stats.t.sf(abs(t_stat), df)
        t_critical = stats.t.ppf(1 - alpha/2, df)
    else:
        p_value = stats.t.sf(t_stat, df)
        t_critical = stats.t.ppf(1 - alpha, df)

    ci_lower = difference - t_critical * se
    ci_upper = difference + t_critical * se

    # Cohen's d (pooled standard deviation)
    pooled_std = np.sqrt(((n_c - 1) * var_c + (n_t - 1) * var_t) / (n_c + n_t - 2))
    cohens_d = difference / pooled_std

    return {
        'mean_control': float(mean_c),
        'mean_treatment': float(mean_t),
        'difference': float(difference),
        'relative_lift': float(difference / mean_c if mean_c != 0 else np.nan),
        'se_diff': float(se),
        't_statistic': float(t_stat),
        'df': float(df),
        'p_value': float(p_value),
        'ci_lower': float(ci_lower),
        'ci_upper': float(ci_upper),
        'cohens_d': float(cohens_d),
        'significant': bool(p_value < alpha),
    }


def retention_test(df: pd.DataFrame, horizon: str, alpha: float = ALPHA) -> RetentionTestResult:
    """Welch test (plus z-test) of one retention column between the groups."""
    if horizon not in RETENTION_COLUMNS:
        raise ValueError(f"horizon must be one of {RETENTION_COLUMNS}, got '{horizon}'")

    control, treatment = split_by_group(df, horizon)
    welch = welch_ttest(control, treatment, alpha=alpha)

    return RetentionTestResult(
        horizon=horizon,
        n_control=len(control),
        n_treatment=len(treatment),
        mean_control=welch['mean_control'],
        mean_treatment=welch['mean_treatment'],
        diff=welch['difference'],
        t_stat=welch['t_statistic'],
        df=welch['df'],
        p_value=welch['p_value'],
        ci_95=(welch['ci_lower'], welch['ci_upper']),
        significant=welch['significant'],
        z_test=z_test_proportions(
            x_control=int(control.sum()),
            n_control=len(control),
            x_treatment=int(treatment.sum()),
            n_treatment=len(treatment),
            alpha=alpha,
        ),
    )


def retention_tests(df: pd.DataFrame, alpha: float = ALPHA) -> Dict[str, RetentionTestResult]:
    """
    Run the Welch retention test for day 1 and day 7.

    Returns
    -------
    dict
        {'retained_day1': RetentionTestResult, 'retained_day7': RetentionTestResult}
    """
    return {horizon: retention_test(df, horizon, alpha=alpha) for horizon in RETENTION_COLUMNS}
