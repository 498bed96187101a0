"""
Bayesian Retention Estimates
============================

Beta-Bernoulli model of retention per gate: with a Beta(a, b) prior and s
retained / f churned users the posterior is Beta(a + s, b + f). Posterior
samples give P(gate_40 retention > gate_30 retention) directly.

Example Usage:
--------------
>>> from gate_experiment.core import bayesian
>>>
>>> result = bayesian.posterior_retention(df, metric='retained_day1', random_state=42)
>>> print(f"P(gate_40 > gate_30) = {result.comparison['prob_treatment_better']:.2%}")
>>> print(f"Posterior mean (gate_30): {result.posterior_control.mean:.4f}")
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple, Any

import numpy as np
import pandas as pd
from scipy import stats

from gate_experiment.config import (
    CONTROL_LABEL,
    N_POSTERIOR_SAMPLES,
    PRIOR_ALPHA,
    PRIOR_BETA,
    TREATMENT_LABEL,
)
from gate_experiment.data.schema import RETAINED_DAY1, RETENTION_COLUMNS, group_labels, split_by_group
from gate_experiment.exceptions import InsufficientDataError


@dataclass
class BetaPosterior:
    """Beta(alpha, beta) posterior with its mean and 95% credible interval."""
    alpha: float
    beta: float
    mean: float
    ci_lower: float
    ci_upper: float


@dataclass
class BayesianResult:
    """Posteriors for both gates plus the Monte Carlo comparison."""
    metric: str
    posterior_control: BetaPosterior
    posterior_treatment: BetaPosterior
    samples_control: np.ndarray
    samples_treatment: np.ndarray
    comparison: Dict[str, Any]
    labels: Tuple[str, str] = (CONTROL_LABEL, TREATMENT_LABEL)


def beta_posterior(
    successes: int,
    failures: int,
    prior_alpha: float = PRIOR_ALPHA,
    prior_beta: float = PRIOR_BETA,
    credible_level: float = 0.95,
) -> BetaPosterior:
    """
    Conjugate Beta posterior for a Bernoulli rate.

    Parameters
    ----------
    successes, failures : int
        Retained and churned user counts
    prior_alpha, prior_beta : float, default=1.0
        Beta prior parameters (1.0, 1.0 = uniform)
    credible_level : float, default=0.95
        Mass of the equal-tailed credible interval

    Returns
    -------
    BetaPosterior

    Notes
    -----
    - Posterior mean = (a + s) / (a + b + s + f) → s / (s + f) as s + f grows
    - With no data and a uniform prior the mean is 0.5
    """
    if successes < 0 or failures < 0:
        raise ValueError("Number of successes and failures must be non-negative")
    if prior_alpha <= 0 or prior_beta <= 0:
        raise ValueError("Prior parameters must be positive")

    alpha = prior_alpha + successes
    beta = prior_beta + failures
    ci_lower, ci_upper = stats.beta.interval(credible_level, alpha, beta)

    return BetaPosterior(
        alpha=float(alpha),
        beta=float(beta),
        mean=float(alpha / (alpha + beta)),
        ci_lower=float(ci_lower),
        ci_upper=float(ci_upper),
    )


def beta_binomial_ab_test(
    x_control: int,
    n_control: int,
    x_treatment: int,
    n_treatment: int,
    prior_alpha: float = PRIOR_ALPHA,
    prior_beta: float = PRIOR_BETA,
    n_samples: int = N_POSTERIOR_SAMPLES,
    random_state: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Bayesian comparison of two retention rates by posterior sampling.

    Parameters
    ----------
    x_control, n_control : int
        Retained users and group size for gate_30
    x_treatment, n_treatment : int
        Retained users and group size for gate_40
    prior_alpha, prior_beta : float, default=1.0
        Beta prior shared by both groups
    n_samples : int, default=100000
        Number of Monte Carlo samples per group
    random_state : int, optional
        Random seed for reproducibility

    Returns
    -------
    dict
        Dictionary with keys:
        - posterior_control, posterior_treatment: (alpha, beta) tuples
        - prob_treatment_better: P(θ_treatment > θ_control)
        - expected_lift: Expected relative lift
        - credible_interval: (lower, upper) 95% CI for lift
        - expected_loss_control: Loss if we keep control
        - expected_loss_treatment: Loss if we choose treatment
        - recommendation: 'control' or 'treatment'
        - samples_control, samples_treatment: posterior draws
    """
    if x_control < 0 or x_treatment < 0:
        raise ValueError("Number of successes must be non-negative")
    if n_control <= 0 or n_treatment <= 0:
        raise ValueError("Sample sizes must be positive")
    if x_control > n_control or x_treatment > n_treatment:
        raise ValueError("Number of successes cannot exceed sample size")
    if prior_alpha <= 0 or prior_beta <= 0:
        raise ValueError("Prior parameters must be positive")
    if n_samples < 1:
        raise ValueError("n_samples must be positive")

    post_control = (prior_alpha + x_control, prior_beta + (n_control - x_control))
    post_treatment = (prior_alpha + x_treatment, prior_beta + (n_treatment - x_treatment))

    if random_state is not None:
        np.random.seed(random_state)

    samples_control = np.random.beta(*post_control, n_samples)
    samples_treatment = np.random.beta(*post_treatment, n_samples)

    prob_treatment_better = (samples_treatment > samples_control).mean()

    # Relative lift: (Treatment - Control) / Control
    lift_samples = samples_treatment / samples_control - 1
    credible_interval = (np.percentile(lift_samples, 2.5), np.percentile(lift_samples, 97.5))

    # Loss if we choose control = E[max(0, Treatment - Control)]
    expected_loss_control = np.maximum(0, samples_treatment - samples_control).mean()
    expected_loss_treatment = np.maximum(0, samples_control - samples_treatment).mean()

    recommendation = 'treatment' if expected_loss_treatment < expected_loss_control else 'control'

    return {
        'posterior_control': post_control,
        'posterior_treatment': post_treatment,
        'prob_treatment_better': float(prob_treatment_better),
        'expected_lift': float(lift_samples.mean()),
        'credible_interval': (float(credible_interval[0]), float(credible_interval[1])),
        'expected_loss_control': float(expected_loss_control),
        'expected_loss_treatment': float(expected_loss_treatment),
        'recommendation': recommendation,
        'samples_control': samples_control,
        'samples_treatment': samples_treatment,
    }


def probability_to_beat_threshold(
    x_control: int,
    n_control: int,
    x_treatment: int,
    n_treatment: int,
    threshold: float,
    prior_alpha: float = PRIOR_ALPHA,
    prior_beta: float = PRIOR_BETA,
    n_samples: int = N_POSTERIOR_SAMPLES,
    random_state: Optional[int] = None,
) -> float:
    """
    Probability that gate_40 beats gate_30 by at least ``threshold`` relative lift.

    Returns
    -------
    float
        P(θ_treatment / θ_control - 1 > threshold)
    """
    result = beta_binomial_ab_test(
        x_control, n_control, x_treatment, n_treatment,
        prior_alpha=prior_alpha,
        prior_beta=prior_beta,
        n_samples=n_samples,
        random_state=random_state,
    )
    lift = result['samples_treatment'] / result['samples_control'] - 1
    return float((lift > threshold).mean())


def posterior_retention(
    df: pd.DataFrame,
    metric: str = RETAINED_DAY1,
    prior_alpha: float = PRIOR_ALPHA,
    prior_beta: float = PRIOR_BETA,
    n_samples: int = N_POSTERIOR_SAMPLES,
    random_state: Optional[int] = None,
) -> BayesianResult:
    """
    Fit Beta-Bernoulli posteriors for one retention metric in each group.

    Parameters
    ----------
    df : pd.DataFrame
        Cleaned UserRecord table
    metric : str, default='retained_day1'
        Retention column to model
    prior_alpha, prior_beta : float
        Beta prior parameters
    n_samples : int, default=100000
        Posterior draws per group
    random_state : int, optional
        Random seed for reproducibility

    Returns
    -------
    BayesianResult
    """
    if metric not in RETENTION_COLUMNS:
        raise ValueError(f"metric must be one of {RETENTION_COLUMNS}, got '{metric}'")

    control, treatment = split_by_group(df, metric)
    if len(control) == 0 or len(treatment) == 0:
        raise InsufficientDataError("Both groups need at least one user for a posterior comparison")

    x_c, n_c = int(control.sum()), len(control)
    x_t, n_t = int(treatment.sum()), len(treatment)

    comparison = beta_binomial_ab_test(
        x_c, n_c, x_t, n_t,
        prior_alpha=prior_alpha,
        prior_beta=prior_beta,
        n_samples=n_samples,
        random_state=random_state,
    )

    return BayesianResult(
        metric=metric,
        posterior_control=beta_posterior(x_c, n_c - x_c, prior_alpha, prior_beta),
        posterior_treatment=beta_posterior(x_t, n_t - x_t, prior_alpha, prior_beta),
        samples_control=comparison.pop('samples_control'),
        samples_treatment=comparison.pop('samples_treatment'),
        comparison=comparison,
        labels=group_labels(df),
    )
