"""
Predictive Model of Day-7 Retention
===================================

Logistic regression of day-7 retention on the gate, round count and the
engagement band, evaluated as a classifier on the same players.

Model:
    logit P(retained_day7) = β0 + β1·gate_40 + β2·rounds_played + β3·engagement_high

Evaluation:
- **Confusion summary**: accuracy, sensitivity, specificity, precision,
  Cohen's kappa, and a one-sided binomial test of accuracy against the
  no-information rate (NIR = share of the majority class)
- **ROC**: true/false positive rates over all cut-points, trapezoidal AUC

Example Usage:
--------------
>>> from gate_experiment.advanced import predictive
>>> model = predictive.fit_retention_model(segmented_df)
>>> print(model.coefficients[['coef', 'odds_ratio', 'p_value']])
>>> print(f"Accuracy {model.confusion['accuracy']:.3f} vs NIR {model.confusion['no_information_rate']:.3f}")
>>> print(f"AUC = {model.roc['auc']:.3f}")
"""

from dataclasses import dataclass
from typing import Dict, Any

import numpy as np
import pandas as pd
import statsmodels.api as sm
from scipy import stats
from sklearn.metrics import auc, cohen_kappa_score, confusion_matrix, roc_curve

from gate_experiment.config import ALPHA, CLASSIFICATION_THRESHOLD
from gate_experiment.advanced.segmentation import assign_engagement_band
from gate_experiment.data.schema import (
    ENGAGEMENT_BAND,
    PREDICTED_PROBABILITY,
    RETAINED_DAY7,
    ROUNDS,
    EngagementBand,
    treatment_indicator,
)
from gate_experiment.exceptions import InsufficientDataError

FEATURES = ['gate_40', ROUNDS, 'engagement_high']


@dataclass
class PredictiveResult:
    """Fitted retention model with its coefficient table and evaluation."""
    data: pd.DataFrame
    coefficients: pd.DataFrame
    threshold: float
    confusion: Dict[str, Any]
    roc: Dict[str, Any]
    n_obs: int
    aic: float


def _ratio(numerator: float, denominator: float) -> float:
    return float(numerator / denominator) if denominator > 0 else np.nan


def build_design_matrix(df: pd.DataFrame) -> pd.DataFrame:
    """Constant, gate_40 indicator, rounds_played and engagement_high indicator."""
    if ENGAGEMENT_BAND in df.columns:
        bands = df[ENGAGEMENT_BAND].astype(str)
    else:
        bands = pd.Series(
            assign_engagement_band(df[ROUNDS], float(df[ROUNDS].median())),
            index=df.index,
        ).astype(str)

    features = pd.DataFrame({
        'gate_40': treatment_indicator(df),
        ROUNDS: df[ROUNDS].astype(float).to_numpy(),
        'engagement_high': (bands == EngagementBand.HIGH.value).astype(int).to_numpy(),
    }, index=df.index)
    return sm.add_constant(features[FEATURES], has_constant='add')


def confusion_summary(y_true: np.ndarray, y_pred: np.ndarray) -> Dict[str, Any]:
    """
    Confusion-matrix statistics with retained (1) as the positive class.

    Parameters
    ----------
    y_true : np.ndarray
        Observed classes (0/1)
    y_pred : np.ndarray
        Predicted classes (0/1)

    Returns
    -------
    dict
        Dictionary with keys:
        - true_positive, true_negative, false_positive, false_negative
        - total: Number of observations
        - accuracy, sensitivity, specificity, precision, prevalence
        - kappa: Cohen's kappa
        - no_information_rate: max(prevalence, 1 - prevalence)
        - accuracy_p_value: One-sided binomial P(accuracy > NIR)
        - imbalance_warning: True when accuracy does not beat the NIR

    Notes
    -----
    Ratios with an empty denominator are NaN.
    """
    y_true = np.asarray(y_true, dtype=int)
    y_pred = np.asarray(y_pred, dtype=int)
    if len(y_true) != len(y_pred):
        raise ValueError("y_true and y_pred must have same length")
    if len(y_true) == 0:
        raise InsufficientDataError("Cannot summarize an empty set of predictions")

    tn, fp, fn, tp = confusion_matrix(y_true, y_pred, labels=[0, 1]).ravel()
    total = int(tn + fp + fn + tp)
    correct = int(tp + tn)

    accuracy = correct / total
    prevalence = (tp + fn) / total
    nir = max(prevalence, 1 - prevalence)

    # Kappa is undefined when both vectors hold one and the same class
    if len(np.unique(np.concatenate([y_true, y_pred]))) < 2:
        kappa = np.nan
    else:
        kappa = cohen_kappa_score(y_true, y_pred, labels=[0, 1])

    return {
        'true_positive': int(tp),
        'true_negative': int(tn),
        'false_positive': int(fp),
        'false_negative': int(fn),
        'total': total,
        'accuracy': float(accuracy),
        'sensitivity': _ratio(tp, tp + fn),
        'specificity': _ratio(tn, tn + fp),
        'precision': _ratio(tp, tp + fp),
        'prevalence': float(prevalence),
        'kappa': float(kappa),
        'no_information_rate': float(nir),
        'accuracy_p_value': float(stats.binomtest(correct, total, nir, alternative='greater').pvalue),
        'imbalance_warning': bool(nir >= accuracy),
    }


def roc_analysis(y_true: np.ndarray, scores: np.ndarray) -> Dict[str, Any]:
    """
    ROC curve over every distinct score cut-point and its trapezoidal AUC.

    Raises
    ------
    InsufficientDataError
        If ``y_true`` contains a single class
    """
    y_true = np.asarray(y_true, dtype=int)
    scores = np.asarray(scores, dtype=float)
    if len(y_true) != len(scores):
        raise ValueError("y_true and scores must have same length")
    if len(np.unique(y_true)) < 2:
        raise InsufficientDataError("ROC analysis needs both retained and churned players")

    fpr, tpr, thresholds = roc_curve(y_true, scores, drop_intermediate=False)

    return {
        'fpr': fpr,
        'tpr': tpr,
        'thresholds': thresholds,
        'auc': float(auc(fpr, tpr)),
    }


def fit_retention_model(
    df: pd.DataFrame,
    threshold: float = CLASSIFICATION_THRESHOLD,
    alpha: float = ALPHA,
) -> PredictiveResult:
    """
    Fit the day-7 retention logistic regression and evaluate it.

    Parameters
    ----------
    df : pd.DataFrame
        Cleaned UserRecord table, ideally with ``engagement_band`` from
        ``segment_by_engagement`` (computed on the fly otherwise)
    threshold : float, default=0.5
        A player is classified as retained when the probability exceeds it
    alpha : float, default=0.05
        Level for the coefficient confidence intervals

    Returns
    -------
    PredictiveResult
        ``coefficients`` is indexed by term (const, gate_40, rounds_played,
        engagement_high) with coef, std_err, z, p_value, ci_lower, ci_upper,
        odds_ratio. ``data`` gains ``predicted_probability``.

    Raises
    ------
    InsufficientDataError
        If day-7 retention is constant or the design matrix is rank
        deficient (e.g. only two round counts, so the engagement band is a
        function of rounds_played)
    """
    if not (0 < threshold < 1):
        raise ValueError(f"threshold must be between 0 and 1, got {threshold}")

    y = df[RETAINED_DAY7].astype(int)
    if y.nunique() < 2:
        raise InsufficientDataError("Day-7 retention has a single value; the logistic model is undefined")

    X = build_design_matrix(df)
    rank = np.linalg.matrix_rank(X.to_numpy(dtype=float))
    if rank < X.shape[1]:
        raise InsufficientDataError(
            f"Design matrix has rank {rank} < {X.shape[1]} terms {list(X.columns)}; "
            "a feature is constant or collinear with the others"
        )
    fit = sm.GLM(y, X, family=sm.families.Binomial()).fit()

    conf_int = fit.conf_int(alpha=alpha)
    coefficients = pd.DataFrame({
        'coef': fit.params,
        'std_err': fit.bse,
        'z': fit.tvalues,
        'p_value': fit.pvalues,
        'ci_lower': conf_int[0],
        'ci_upper': conf_int[1],
        'odds_ratio': np.exp(fit.params),
    })

    probabilities = np.asarray(fit.predict(X), dtype=float)
    predicted = (probabilities > threshold).astype(int)

    return PredictiveResult(
        data=df.assign(**{PREDICTED_PROBABILITY: probabilities}),
        coefficients=coefficients,
        threshold=threshold,
        confusion=confusion_summary(y.to_numpy(), predicted),
        roc=roc_analysis(y.to_numpy(), probabilities),
        n_obs=int(fit.nobs),
        aic=float(fit.aic),
    )
