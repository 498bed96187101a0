"""
Multiple Testing Correction
===========================

Two retention horizons are tested on the same players, so the per-horizon
p-values are adjusted with Benjamini-Hochberg before reading them as a family.

Key Concepts:
- **FDR**: Expected proportion of false positives among rejections
- **BH step-up**: reject H_(i) for all i <= k, k = max{i : p_(i) <= (i/m)·α}

Example Usage:
--------------
>>> from gate_experiment.advanced import multiple_testing
>>> result = multiple_testing.benjamini_hochberg([0.075, 0.0016])
>>> print(result['adjusted_p_values'])
"""

from typing import List, Dict, Any

import numpy as np
from statsmodels.stats.multitest import multipletests


def benjamini_hochberg(
    p_values: List[float],
    alpha: float = 0.05,
) -> Dict[str, Any]:
    """
    Benjamini-Hochberg FDR correction.

    Parameters
    ----------
    p_values : list of float
        Unadjusted p-values
    alpha : float, default=0.05
        Desired FDR level

    Returns
    -------
    dict
        Dictionary with keys:
        - adjusted_p_values: BH-adjusted p-values (input order)
        - significant: Boolean array indicating significance
        - n_significant: Count of significant results
        - alpha: Significance threshold used
        - fdr_threshold: Largest (i/m)·α cut-off met by a sorted p-value

    Reference
    ---------
    Benjamini & Hochberg (1995): "Controlling the False Discovery Rate:
    A Practical and Powerful Approach to Multiple Testing"
    """
    if len(p_values) == 0:
        raise ValueError("p_values cannot be empty")

    if not (0 < alpha < 1):
        raise ValueError(f"alpha must be between 0 and 1, got {alpha}")

    p_values = np.asarray(p_values, dtype=float)
    if np.any((p_values < 0) | (p_values > 1)):
        raise ValueError("p_values must lie in [0, 1]")

    sig, p_adj, _, _ = multipletests(p_values, method='fdr_bh', alpha=alpha)

    n = len(p_values)
    sorted_p = np.sort(p_values)
    fdr_thresholds = np.arange(1, n + 1) / n * alpha

    fdr_threshold = alpha
    for i in range(n - 1, -1, -1):
        if sorted_p[i] <= fdr_thresholds[i]:
            fdr_threshold = fdr_thresholds[i]
            break

    return {
        'adjusted_p_values': np.array(p_adj),
        'significant': np.array(sig),
        'n_significant': int(np.sum(sig)),
        'alpha': alpha,
        'fdr_threshold': float(fdr_threshold),
    }


def adjust_retention_tests(retention_results: Dict[str, Any], alpha: float = 0.05) -> Dict[str, Dict[str, Any]]:
    """
    BH-adjust a ``retention_tests`` mapping.

    Returns
    -------
    dict
        {horizon: {'p_value', 'adjusted_p_value', 'significant'}}
    """
    horizons = list(retention_results)
    raw = [retention_results[h].p_value for h in horizons]
    bh = benjamini_hochberg(raw, alpha=alpha)

    return {
        horizon: {
            'p_value': float(raw[i]),
            'adjusted_p_value': float(bh['adjusted_p_values'][i]),
            'significant': bool(bh['significant'][i]),
        }
        for i, horizon in enumerate(horizons)
    }
