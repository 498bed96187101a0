"""
Propensity-Score Causal Estimates
=================================

Re-estimates the gate effect on day-7 retention with two propensity-score
adjustments, using ``rounds_played`` as the covariate.

Methods:
- **Matching**: greedy 1:1 nearest-neighbour on the propensity score, without
  replacement, then Welch's t-test on the matched players
- **IPW**: inverse probability weights (1/e for gate_40, 1/(1-e) for gate_30)
  in a weighted logistic regression of retention on the gate

Key Concepts:
- **Propensity score**: e(x) = P(gate_40 | rounds_played)
- **Standardized mean difference**: covariate balance, |SMD| < 0.1 is balanced
- **Hájek estimator**: Σ w·y / Σ w within each group

Reference:
----------
- Rosenbaum & Rubin (1983): "The central role of the propensity score in
  observational studies for causal effects"
- Austin (2011): "An Introduction to Propensity Score Methods for Reducing
  the Effects of Confounding in Observational Studies"

Example Usage:
--------------
>>> from gate_experiment.advanced import causal
>>> matched = causal.propensity_score_matching(df)
>>> print(f"Pairs: {matched.n_pairs}, SMD after: {matched.smd_after:.3f}")
>>> ipw = causal.inverse_probability_weighting(df)
>>> print(f"Odds ratio: {ipw.odds_ratio:.3f} (p={ipw.p_value:.4f})")
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Any

import numpy as np
import pandas as pd
import statsmodels.api as sm
from sklearn.linear_model import LogisticRegression

from gate_experiment.config import ALPHA, PROPENSITY_CLIP, RANDOM_STATE
from gate_experiment.core.frequentist import welch_ttest
from gate_experiment.data.schema import (
    GROUP,
    IPW_WEIGHT,
    PROPENSITY_SCORE,
    RETAINED_DAY7,
    ROUNDS,
    group_labels,
    treatment_indicator,
)
from gate_experiment.exceptions import InsufficientDataError, NumericalInstabilityError

# Scores this close to 0 or 1 make 1/e or 1/(1-e) unbounded
SCORE_TOLERANCE = 1e-8


@dataclass
class MatchingResult:
    """Matched sample, balance diagnostics and the matched day-7 test."""
    data: pd.DataFrame
    n_pairs: int
    n_unmatched_treated: int
    smd_before: float
    smd_after: float
    ttest: Dict[str, Any]
    caliper: Optional[float] = None


@dataclass
class IPWResult:
    """Weighted logistic regression of day-7 retention on the gate."""
    data: pd.DataFrame
    coef: float
    std_err: float
    z_stat: float
    p_value: float
    ci_lower: float
    ci_upper: float
    odds_ratio: float
    odds_ratio_ci: Tuple[float, float]
    effect_direction: str
    significant: bool
    weighted_retention: Dict[str, float]
    weight_summary: pd.DataFrame
    n_clipped: int


def estimate_propensity_scores(
    df: pd.DataFrame,
    model=None,
    random_state: Optional[int] = RANDOM_STATE,
) -> np.ndarray:
    """
    Estimate P(gate_40 | rounds_played) with a logistic classifier.

    Parameters
    ----------
    df : pd.DataFrame
        Cleaned UserRecord table
    model : sklearn classifier, optional
        Any estimator with fit/predict_proba. Default: unpenalized LogisticRegression
    random_state : int, optional
        Seed for the default model

    Returns
    -------
    np.ndarray
        Propensity score per row, in row order
    """
    treatment = treatment_indicator(df)
    if len(np.unique(treatment)) < 2:
        raise InsufficientDataError("Propensity model needs users from both groups")

    if model is None:
        model = LogisticRegression(
            penalty=None,
            random_state=random_state,
            max_iter=1000,
        )

    X = df[[ROUNDS]].to_numpy(dtype=float)
    model.fit(X, treatment)
    return model.predict_proba(X)[:, 1]


def _find(parent: np.ndarray, i: int) -> int:
    root = i
    while parent[root] != root:
        root = parent[root]
    # Path compression
    while parent[i] != root:
        parent[i], i = root, parent[i]
    return root


def greedy_nearest_neighbor_match(
    treated_scores: np.ndarray,
    control_scores: np.ndarray,
    caliper: Optional[float] = None,
) -> List[Tuple[int, int]]:
    """
    Greedy 1:1 nearest-neighbour matching without replacement.

    Treated units are taken in descending score order; each is paired with the
    closest control not yet used. Equidistant controls resolve to the lower
    score.

    Parameters
    ----------
    treated_scores : np.ndarray
        Propensity scores of treated units
    control_scores : np.ndarray
        Propensity scores of control units
    caliper : float, optional
        Maximum allowed score distance; treated units without a control
        inside the caliper stay unmatched

    Returns
    -------
    list of (int, int)
        (treated position, control position) pairs, in matching order

    Notes
    -----
    Controls are sorted once; the nearest unused control to the left and to
    the right of a score is found through two skip-pointer forests, so the
    whole pass is O(n log n).
    """
    treated_scores = np.asarray(treated_scores, dtype=float)
    control_scores = np.asarray(control_scores, dtype=float)
    if caliper is not None and caliper <= 0:
        raise ValueError(f"caliper must be positive, got {caliper}")
    if len(treated_scores) == 0 or len(control_scores) == 0:
        raise InsufficientDataError("Matching needs at least one treated and one control unit")

    order = np.argsort(control_scores, kind='stable')
    sorted_scores = control_scores[order]
    n = len(sorted_scores)

    # right[j]: smallest unused sorted index >= j (n = none)
    right = np.arange(n + 1)
    # left[j + 1]: largest unused sorted index <= j, shifted by one (0 = none)
    left = np.arange(n + 1)

    pairs = []
    for t in np.argsort(-treated_scores, kind='stable'):
        score = treated_scores[t]
        pos = int(np.searchsorted(sorted_scores, score, side='left'))

        hi = _find(right, pos)
        lo = _find(left, pos) - 1

        best = None
        if lo >= 0:
            best = lo
        if hi < n and (best is None or sorted_scores[hi] - score < score - sorted_scores[best]):
            best = hi
        if best is None:
            break
        if caliper is not None and abs(sorted_scores[best] - score) > caliper:
            continue

        right[best] = best + 1
        left[best + 1] = best
        pairs.append((int(t), int(order[best])))

    return pairs


def standardized_mean_difference(treated: np.ndarray, control: np.ndarray) -> float:
    """(mean_t - mean_c) / sqrt((var_t + var_c) / 2); 0 when both variances vanish."""
    treated = np.asarray(treated, dtype=float)
    control = np.asarray(control, dtype=float)
    pooled = np.sqrt((treated.var(ddof=1) + control.var(ddof=1)) / 2)
    if not pooled > 0:
        return 0.0
    return float((treated.mean() - control.mean()) / pooled)


def propensity_score_matching(
    df: pd.DataFrame,
    alpha: float = ALPHA,
    caliper: Optional[float] = None,
    random_state: Optional[int] = RANDOM_STATE,
) -> MatchingResult:
    """
    Propensity-score matching estimate of the day-7 retention effect.

    Parameters
    ----------
    df : pd.DataFrame
        Cleaned UserRecord table
    alpha : float, default=0.05
        Significance level for the matched Welch test
    caliper : float, optional
        Maximum score distance for a match
    random_state : int, optional
        Seed for the propensity model

    Returns
    -------
    MatchingResult
        ``data`` holds the matched players with ``propensity_score`` and
        ``pair_id``; without a caliper it has 2 × min(group sizes) rows.
    """
    scores = estimate_propensity_scores(df, random_state=random_state)
    treatment = treatment_indicator(df)

    treated_pos = np.flatnonzero(treatment == 1)
    control_pos = np.flatnonzero(treatment == 0)

    pairs = greedy_nearest_neighbor_match(scores[treated_pos], scores[control_pos], caliper=caliper)
    if len(pairs) == 0:
        raise InsufficientDataError("No treated user could be matched within the caliper")

    scored = df.assign(**{PROPENSITY_SCORE: scores})
    matched_treated = scored.iloc[[treated_pos[t] for t, _ in pairs]].assign(pair_id=np.arange(len(pairs)))
    matched_control = scored.iloc[[control_pos[c] for _, c in pairs]].assign(pair_id=np.arange(len(pairs)))
    matched = (
        pd.concat([matched_treated, matched_control])
        .sort_values(['pair_id', GROUP])
        .reset_index(drop=True)
    )

    rounds = df[ROUNDS].to_numpy(dtype=float)
    smd_before = standardized_mean_difference(rounds[treated_pos], rounds[control_pos])
    smd_after = standardized_mean_difference(
        matched_treated[ROUNDS].to_numpy(dtype=float),
        matched_control[ROUNDS].to_numpy(dtype=float),
    )

    ttest = welch_ttest(
        matched_control[RETAINED_DAY7].to_numpy(),
        matched_treated[RETAINED_DAY7].to_numpy(),
        alpha=alpha,
    )

    return MatchingResult(
        data=matched,
        n_pairs=len(pairs),
        n_unmatched_treated=len(treated_pos) - len(pairs),
        smd_before=smd_before,
        smd_after=smd_after,
        ttest=ttest,
        caliper=caliper,
    )


def compute_ipw_weights(
    treatment: np.ndarray,
    scores: np.ndarray,
    clip: Optional[Tuple[float, float]] = PROPENSITY_CLIP,
) -> np.ndarray:
    """
    Inverse probability of treatment weights.

    Parameters
    ----------
    treatment : np.ndarray
        Binary treatment indicator
    scores : np.ndarray
        Propensity scores
    clip : (float, float) or None, default=(0.01, 0.99)
        Bounds applied to the scores before inversion

    Returns
    -------
    np.ndarray
        1/e for treated units, 1/(1-e) for control units

    Raises
    ------
    NumericalInstabilityError
        If ``clip`` is None and a score lies within 1e-8 of 0 or 1
    """
    treatment = np.asarray(treatment, dtype=int)
    scores = np.asarray(scores, dtype=float)

    if len(treatment) != len(scores):
        raise ValueError("treatment and scores must have same length")
    if not np.all(np.isin(treatment, [0, 1])):
        raise ValueError("treatment must be binary (0/1)")
    if np.any((scores < 0) | (scores > 1)) or np.any(np.isnan(scores)):
        raise ValueError("scores must lie in [0, 1]")

    if clip is None:
        extreme = (scores <= SCORE_TOLERANCE) | (scores >= 1 - SCORE_TOLERANCE)
        if extreme.any():
            raise NumericalInstabilityError(
                f"{int(extreme.sum())} propensity scores are at 0 or 1; "
                f"weights are unbounded without clipping"
            )
    else:
        lower, upper = clip
        if not (0 < lower < upper < 1):
            raise ValueError(f"clip bounds must satisfy 0 < lower < upper < 1, got {clip}")
        scores = np.clip(scores, lower, upper)

    return np.where(treatment == 1, 1 / scores, 1 / (1 - scores))


def inverse_probability_weighting(
    df: pd.DataFrame,
    alpha: float = ALPHA,
    clip: Optional[Tuple[float, float]] = PROPENSITY_CLIP,
    random_state: Optional[int] = RANDOM_STATE,
) -> IPWResult:
    """
    IPW estimate of the gate effect on day-7 retention.

    Fits ``retained_day7 ~ gate_40`` as a Binomial GLM with the weights as
    frequency weights.

    Parameters
    ----------
    df : pd.DataFrame
        Cleaned UserRecord table
    alpha : float, default=0.05
        Significance level (CI level is 1 - alpha)
    clip : (float, float) or None, default=(0.01, 0.99)
        Propensity clipping bounds
    random_state : int, optional
        Seed for the propensity model

    Returns
    -------
    IPWResult
        Coefficient on the log-odds scale, its odds ratio and the Hájek
        weighted retention of each group.
    """
    if not (0 < alpha < 1):
        raise ValueError(f"alpha must be between 0 and 1, got {alpha}")

    outcome = df[RETAINED_DAY7].to_numpy(dtype=int)
    if len(np.unique(outcome)) < 2:
        raise InsufficientDataError("Day-7 retention has a single value; the logistic model is undefined")

    scores = estimate_propensity_scores(df, random_state=random_state)
    treatment = treatment_indicator(df)
    weights = compute_ipw_weights(treatment, scores, clip=clip)

    n_clipped = 0
    if clip is not None:
        n_clipped = int(np.sum((scores < clip[0]) | (scores > clip[1])))

    X = sm.add_constant(pd.DataFrame({'gate_40': treatment}, index=df.index), has_constant='add')
    fit = sm.GLM(
        df[RETAINED_DAY7].astype(int),
        X,
        family=sm.families.Binomial(),
        freq_weights=weights,
    ).fit()

    coef = float(fit.params['gate_40'])
    ci_lower, ci_upper = (float(v) for v in fit.conf_int(alpha=alpha).loc['gate_40'])
    p_value = float(fit.pvalues['gate_40'])

    if coef > 0:
        direction = 'increase'
    elif coef < 0:
        direction = 'decrease'
    else:
        direction = 'none'

    control_label, treatment_label = group_labels(df)
    weighted_retention = {}
    for code, label in ((0, control_label), (1, treatment_label)):
        mask = treatment == code
        weighted_retention[label] = float(np.sum(weights[mask] * outcome[mask]) / np.sum(weights[mask]))

    enriched = df.assign(**{PROPENSITY_SCORE: scores, IPW_WEIGHT: weights})
    weight_summary = (
        enriched.groupby(GROUP, observed=False)[IPW_WEIGHT]
        .agg(['min', 'max', 'mean', 'sum'])
    )

    return IPWResult(
        data=enriched,
        coef=coef,
        std_err=float(fit.bse['gate_40']),
        z_stat=float(fit.tvalues['gate_40']),
        p_value=p_value,
        ci_lower=ci_lower,
        ci_upper=ci_upper,
        odds_ratio=float(np.exp(coef)),
        odds_ratio_ci=(float(np.exp(ci_lower)), float(np.exp(ci_upper))),
        effect_direction=direction,
        significant=bool(p_value < alpha),
        weighted_retention=weighted_retention,
        weight_summary=weight_summary,
        n_clipped=n_clipped,
    )
