"""
Report Figures
==============

Figure builders for the Cookie Cats analysis. Every function consumes a
result record and returns a ``matplotlib.figure.Figure`` without touching
pyplot state, so figures can be rendered headless and written with
``save_figures``.

Example Usage:
--------------
>>> from gate_experiment.reporting import plots
>>> figures = {
...     'rounds_histogram': plots.plot_rounds_histogram(summary),
...     'survival_curves': plots.plot_survival_curves(survival_result),
... }
>>> plots.save_figures(figures, 'reports/figures')
"""

from pathlib import Path
from typing import Dict, List, Optional, Union

import numpy as np
import pandas as pd
from matplotlib.figure import Figure
from scipy import stats

from gate_experiment.data.schema import RETAINED_DAY7, ROUNDS, group_labels, treatment_indicator

GROUP_COLORS = ("steelblue", "darkorange")


def plot_rounds_histogram(summary) -> Figure:
    """Bar histogram of game rounds from ``DescriptiveSummary.rounds_histogram``."""
    hist = summary.rounds_histogram
    fig = Figure(figsize=(8, 4))
    ax = fig.subplots()
    ax.bar(
        hist['bin_left'],
        hist['count'],
        width=hist['bin_right'] - hist['bin_left'],
        align='edge',
        color="steelblue",
        edgecolor="white",
    )
    ax.set_xlabel("Game rounds played")
    ax.set_ylabel("Players")
    ax.set_title("Distribution of Game Rounds")
    fig.tight_layout()
    return fig


def plot_retention_by_group(summary) -> Figure:
    """Grouped bars of day-1 and day-7 retention per gate."""
    table = summary.retention_by_group
    labels = [str(label) for label in table.index]
    x = np.arange(len(labels))
    width = 0.35

    fig = Figure(figsize=(7, 4))
    ax = fig.subplots()
    ax.bar(x - width / 2, table['retained_day1'], width, label="Day 1", color="steelblue")
    ax.bar(x + width / 2, table['retained_day7'], width, label="Day 7", color="teal")
    ax.set_xticks(x)
    ax.set_xticklabels(labels)
    ax.set_ylim(0, 1)
    ax.set_ylabel("Retention rate")
    ax.set_title("Retention by Gate Placement")
    ax.legend()
    fig.tight_layout()
    return fig


def plot_rounds_vs_retention(df: pd.DataFrame, random_state: Optional[int] = None) -> Figure:
    """Jittered scatter of rounds played against day-7 retention, coloured by gate."""
    rng = np.random.default_rng(random_state)
    treatment = treatment_indicator(df)

    fig = Figure(figsize=(8, 4))
    ax = fig.subplots()
    for code, label in enumerate(group_labels(df)):
        mask = treatment == code
        y = df[RETAINED_DAY7].to_numpy(dtype=float)[mask]
        jitter = rng.uniform(-0.15, 0.15, size=mask.sum())
        ax.scatter(
            df[ROUNDS].to_numpy()[mask],
            y + jitter,
            s=4,
            alpha=0.3,
            color=GROUP_COLORS[code],
            label=label,
        )
    ax.set_yticks([0, 1])
    ax.set_yticklabels(["Churned", "Retained"])
    ax.set_xlabel("Game rounds played")
    ax.set_title("Day-7 Retention vs Engagement")
    ax.legend()
    fig.tight_layout()
    return fig


def plot_survival_curves(survival_result) -> Figure:
    """Kaplan-Meier step curves per gate with the log-rank p-value in the title."""
    fig = Figure(figsize=(8, 5))
    ax = fig.subplots()
    for color, (label, curve) in zip(GROUP_COLORS, survival_result.curves.items()):
        ax.step(curve['time'], curve['survival'], where='post', color=color, label=label)
    ax.set_ylim(0, 1.05)
    ax.set_xlabel("Game rounds")
    ax.set_ylabel("Probability of not having churned")
    ax.set_title(f"Kaplan-Meier Survival (log-rank p = {survival_result.logrank['p_value']:.4f})")
    ax.legend()
    fig.tight_layout()
    return fig


def plot_posterior_densities(bayesian_result) -> Figure:
    """Beta posterior densities of retention for both gates."""
    posteriors = {
        'control': bayesian_result.posterior_control,
        'treatment': bayesian_result.posterior_treatment,
    }
    lower = min(p.ci_lower for p in posteriors.values())
    upper = max(p.ci_upper for p in posteriors.values())
    pad = (upper - lower) * 0.5 or 0.05
    grid = np.linspace(max(lower - pad, 0.0), min(upper + pad, 1.0), 500)

    fig = Figure(figsize=(8, 4))
    ax = fig.subplots()
    control, treatment = bayesian_result.labels
    for color, name, posterior in zip(GROUP_COLORS, (control, treatment), posteriors.values()):
        ax.plot(grid, stats.beta.pdf(grid, posterior.alpha, posterior.beta), color=color, label=name)
        ax.axvline(posterior.mean, color=color, linestyle='--', linewidth=1)
    prob = bayesian_result.comparison['prob_treatment_better']
    ax.set_xlabel(f"{bayesian_result.metric} rate")
    ax.set_ylabel("Posterior density")
    ax.set_title(f"Posterior Retention (P({treatment} > {control}) = {prob:.3f})")
    ax.legend()
    fig.tight_layout()
    return fig


def plot_segment_retention(segmentation_result) -> Figure:
    """Day-7 retention per engagement band, one bar per gate."""
    table = segmentation_result.retention_by_segment['retained_day7'].unstack(level=0)

    fig = Figure(figsize=(7, 4))
    ax = fig.subplots()
    x = np.arange(len(table.index))
    width = 0.35
    for i, group in enumerate(table.columns):
        ax.bar(x + (i - 0.5) * width, table[group].fillna(0), width, label=str(group), color=GROUP_COLORS[i % 2])
    ax.set_xticks(x)
    ax.set_xticklabels([str(band) for band in table.index])
    ax.set_ylabel("Day-7 retention")
    ax.set_title(f"Retention by Engagement (median = {segmentation_result.median:g} rounds)")
    ax.legend()
    fig.tight_layout()
    return fig


def plot_roc_curve(roc: Dict) -> Figure:
    """ROC curve with the chance diagonal."""
    fig = Figure(figsize=(6, 5))
    ax = fig.subplots()
    ax.plot(roc['fpr'], roc['tpr'], color="steelblue", label=f"AUC = {roc['auc']:.3f}")
    ax.plot([0, 1], [0, 1], color="grey", linestyle='--', linewidth=1)
    ax.set_xlabel("False positive rate")
    ax.set_ylabel("True positive rate")
    ax.set_title("ROC: Day-7 Retention Model")
    ax.legend(loc='lower right')
    fig.tight_layout()
    return fig


def save_figures(figures: Dict[str, Figure], output_dir: Union[str, Path], dpi: int = 150) -> List[Path]:
    """
    Write each figure to ``<output_dir>/<name>.png``.

    Returns
    -------
    list of Path
        Written file paths, in the order of ``figures``
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    paths = []
    for name, fig in figures.items():
        path = output_dir / f"{name}.png"
        fig.savefig(path, dpi=dpi)
        paths.append(path)
    return paths
