"""
Randomization Quality Checks
============================

Sample Ratio Mismatch (SRM) check for the gate assignment. Run before reading
any retention result: a broken 50/50 split invalidates every comparison.

Example Usage:
--------------
>>> from gate_experiment.core import randomization
>>> result = randomization.srm_check(n_control=44700, n_treatment=45489)
>>> print(f"SRM detected: {result['srm_detected']}")
"""

from typing import Dict, List, Optional, Any

import numpy as np
from scipy import stats


def srm_check(
    n_control: int,
    n_treatment: int,
    expected_ratio: Optional[List[float]] = None,
    alpha: float = 0.01,
    pp_threshold: float = 0.01,
) -> Dict[str, Any]:
    """
    Sample Ratio Mismatch (SRM) check using two-stage gating.

    - Stage A (Statistical): chi-square goodness-of-fit p-value < alpha
    - Stage B (Practical): largest share deviation exceeds pp_threshold
    - srm_severe = A and B; srm_warning = A but not B

    Parameters
    ----------
    n_control : int
        Observed sample size in control group
    n_treatment : int
        Observed sample size in treatment group
    expected_ratio : list of float, optional
        Expected allocation [control, treatment]. Default: [0.5, 0.5]
    alpha : float, default=0.01
        Significance level for the chi-square test (conservative)
    pp_threshold : float, default=0.01
        Practical threshold in share units (0.01 = 1 percentage point)

    Returns
    -------
    dict
        Observed and expected counts, observed shares, chi2_statistic,
        p_value, srm_detected, max_pp_deviation, practical_significant,
        srm_severe, srm_warning

    Notes
    -----
    With ~90K players, deviations well under 1pp become statistically
    detectable; the practical stage keeps those as warnings.
    """
    if n_control <= 0 or n_treatment <= 0:
        raise ValueError("Sample sizes must be positive")

    if expected_ratio is None:
        expected_ratio = [0.5, 0.5]

    if len(expected_ratio) != 2:
        raise ValueError("expected_ratio must have exactly 2 elements")
    if not np.isclose(sum(expected_ratio), 1.0):
        raise ValueError("expected_ratio must sum to 1.0")
    if any(r <= 0 for r in expected_ratio):
        raise ValueError("expected_ratio elements must be positive")

    n_total = n_control + n_treatment
    observed = np.array([n_control, n_treatment])
    expected = np.array(expected_ratio) * n_total

    chi2_statistic, p_value = stats.chisquare(observed, expected)

    ratio_control = n_control / n_total
    ratio_treatment = n_treatment / n_total
    max_pp_deviation = max(
        abs(ratio_control - expected_ratio[0]),
        abs(ratio_treatment - expected_ratio[1]),
    )

    srm_detected = bool(p_value < alpha)
    practical_significant = bool(max_pp_deviation > pp_threshold)

    return {
        'n_control': int(n_control),
        'n_treatment': int(n_treatment),
        'expected_control': float(expected[0]),
        'expected_treatment': float(expected[1]),
        'ratio_control': float(ratio_control),
        'ratio_treatment': float(ratio_treatment),
        'chi2_statistic': float(chi2_statistic),
        'p_value': float(p_value),
        'srm_detected': srm_detected,
        'max_pp_deviation': float(max_pp_deviation),
        'practical_significant': practical_significant,
        'srm_severe': srm_detected and practical_significant,
        'srm_warning': srm_detected and not practical_significant,
    }
