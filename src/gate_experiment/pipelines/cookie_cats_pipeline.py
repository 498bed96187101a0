"""
Cookie Cats Gate Placement Pipeline

End-to-end retention analysis of the Cookie Cats experiment (90K players),
which moved the first progression gate from level 30 to level 40.

Dataset: https://www.kaggle.com/datasets/mursideyarkin/mobile-games-ab-testing-cookie-cats

Pipeline Steps:
1. Load player records
2. Clean (type coercion, drop > 1000-round outliers)
3. Describe the experiment and check randomization (SRM)
4. Welch tests of day-1 and day-7 retention (+ Benjamini-Hochberg)
5. Kaplan-Meier survival of rounds-until-churn (+ log-rank)
6. Propensity-score matching and IPW estimates of the day-7 effect
7. Beta-Binomial posteriors of retention
8. Median-split engagement segments
9. Logistic model of day-7 retention (confusion summary, ROC)

Any stage failure aborts the run; the raised error names the stage.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union, Any

import pandas as pd

from gate_experiment.config import AnalysisConfig
from gate_experiment.data import loaders, cleaning
from gate_experiment.data.schema import RETENTION_COLUMNS
from gate_experiment.core import bayesian, descriptive, frequentist, randomization
from gate_experiment.advanced import causal, multiple_testing, predictive, segmentation, survival
from gate_experiment.exceptions import AnalysisError, InsufficientDataError


@dataclass
class PipelineResult:
    """Every stage's result record from one run."""
    config: AnalysisConfig
    cleaning: cleaning.CleaningResult
    summary: descriptive.DescriptiveSummary
    srm_check: Dict[str, Any]
    retention_tests: Dict[str, frequentist.RetentionTestResult]
    multiple_testing: Dict[str, Dict[str, Any]]
    survival: survival.SurvivalResult
    matching: causal.MatchingResult
    ipw: causal.IPWResult
    bayesian: Dict[str, bayesian.BayesianResult]
    segmentation: segmentation.SegmentationResult
    predictive: predictive.PredictiveResult
    figure_paths: List[Path] = field(default_factory=list)

    @property
    def data(self) -> pd.DataFrame:
        """Cleaned table enriched with engagement band and predicted probability."""
        return self.predictive.data


def _run_stage(stage: str, func: Callable, *args, **kwargs):
    """Call a stage function, tagging any AnalysisError with the stage name."""
    try:
        return func(*args, **kwargs)
    except AnalysisError as e:
        if e.stage is None:
            e.stage = stage
        raise


def _build_figures(result: PipelineResult, random_state: Optional[int]) -> Dict[str, Any]:
    from gate_experiment.reporting import plots

    figures = {
        'rounds_histogram': plots.plot_rounds_histogram(result.summary),
        'retention_by_group': plots.plot_retention_by_group(result.summary),
        'rounds_vs_retention': plots.plot_rounds_vs_retention(result.cleaning.data, random_state=random_state),
        'survival_curves': plots.plot_survival_curves(result.survival),
        'segment_retention': plots.plot_segment_retention(result.segmentation),
        'roc_curve': plots.plot_roc_curve(result.predictive.roc),
    }
    for metric, posterior in result.bayesian.items():
        figures[f'posterior_{metric}'] = plots.plot_posterior_densities(posterior)
    return figures


def run_cookie_cats_analysis(
    path: Optional[Union[str, Path]] = None,
    config: Optional[AnalysisConfig] = None,
    sample_frac: float = 1.0,
    verbose: bool = True,
    output_dir: Optional[Union[str, Path]] = None,
) -> PipelineResult:
    """
    Run the complete gate-placement analysis on the Cookie Cats dataset.

    Parameters
    ----------
    path : str or Path, optional
        CSV to analyze. Default: ./data/raw/cookie_cats/cookie_cats.csv
    config : AnalysisConfig, optional
        Thresholds, priors and seeds. Default: AnalysisConfig()
    sample_frac : float, default=1.0
        Fraction of rows to load (0.0-1.0]
    verbose : bool, default=True
        Print detailed progress and results.
    output_dir : str or Path, optional
        When given, report figures are written there as PNG files

    Returns
    -------
    PipelineResult

    Raises
    ------
    AnalysisError
        From any stage, with ``stage`` set to the failing stage name
    FileNotFoundError
        If the input CSV does not exist

    Examples
    --------
    >>> result = run_cookie_cats_analysis(verbose=False)
    >>> result.retention_tests['retained_day7'].p_value < 0.05
    True
    """
    config = config or AnalysisConfig()

    # ========================================================================
    # STEP 1: Load Data
    # ========================================================================
    if verbose:
        print("="*70)
        print("COOKIE CATS GATE PLACEMENT ANALYSIS")
        print("="*70)
        print(f"\n[1/9] Loading player records (sample_frac={sample_frac})...")

    if path is None:
        raw = _run_stage(
            'loader', loaders.load_cookie_cats,
            sample_frac=sample_frac, random_state=config.random_state,
        )
    else:
        raw = _run_stage(
            'loader', loaders.load_user_records, path,
            sample_frac=sample_frac, random_state=config.random_state,
        )

    if verbose:
        print(f"   ✓ Loaded {len(raw):,} players")

    # ========================================================================
    # STEP 2: Clean
    # ========================================================================
    if verbose:
        print(f"\n[2/9] Cleaning records (outlier threshold = {config.outlier_threshold} rounds)...")

    cleaned = _run_stage(
        'cleaner', cleaning.clean_user_records, raw,
        outlier_threshold=config.outlier_threshold,
        control_label=config.control_label,
        treatment_label=config.treatment_label,
    )
    df = cleaned.data

    if verbose:
        print(f"   ✓ Dropped {cleaned.n_dropped:,} rows with > {cleaned.threshold} rounds "
              f"({cleaned.drop_rate:.3%})")
        print(f"   ✓ {cleaned.n_after:,} players remain")

    # ========================================================================
    # STEP 3: Describe + SRM
    # ========================================================================
    if verbose:
        print(f"\n[3/9] Describing the experiment and checking randomization...")

    summary = _run_stage('descriptive', descriptive.describe_experiment, df, bins=config.histogram_bins)
    counts = summary.group_counts
    if (counts == 0).any():
        empty = ", ".join(str(label) for label in counts.index[counts == 0])
        raise InsufficientDataError(f"No players left in group(s): {empty}", stage='randomization')
    srm = _run_stage(
        'randomization', randomization.srm_check,
        n_control=int(counts.iloc[0]),
        n_treatment=int(counts.iloc[1]),
    )

    if verbose:
        for label, row in summary.retention_by_group.iterrows():
            print(f"   ✓ {label}: {int(row['n_users']):,} players, "
                  f"day-1 {row['retained_day1']:.2%}, day-7 {row['retained_day7']:.2%}, "
                  f"mean rounds {row['mean_rounds']:.1f}")
        print(f"   ✓ Players with zero rounds: {summary.zero_round_users:,}")
        if not srm['srm_detected']:
            print(f"   ✓ SRM Check PASSED (p={srm['p_value']:.4f})")
        elif srm['srm_warning']:
            print(f"   ⚠️  SRM Warning (p={srm['p_value']:.6f}, deviation {srm['max_pp_deviation']:.4f})")
        else:
            print(f"   ✗ SRM detected (p={srm['p_value']:.6f}); interpret effects with care")

    # ========================================================================
    # STEP 4: Hypothesis tests
    # ========================================================================
    if verbose:
        print(f"\n[4/9] Welch's t-tests on retention (alpha = {config.alpha})...")

    tests = _run_stage('hypothesis', frequentist.retention_tests, df, alpha=config.alpha)
    adjusted = _run_stage('hypothesis', multiple_testing.adjust_retention_tests, tests, alpha=config.alpha)

    if verbose:
        for horizon, test in tests.items():
            print(f"   ✓ {horizon}: {test.mean_control:.2%} → {test.mean_treatment:.2%} "
                  f"(diff {test.diff:+.4f}, t={test.t_stat:.3f}, df={test.df:.1f}, p={test.p_value:.4f})")
            print(f"     - 95% CI: [{test.ci_95[0]:+.4f}, {test.ci_95[1]:+.4f}]")
            print(f"     - BH-adjusted p: {adjusted[horizon]['adjusted_p_value']:.4f}")
        day7 = tests[RETENTION_COLUMNS[1]]
        print(f"\n   💡 INTERPRETATION:")
        if day7.significant and day7.diff < 0:
            print(f"   Moving the gate to level 40 LOWERS 7-day retention.")
        elif day7.significant:
            print(f"   Moving the gate to level 40 RAISES 7-day retention.")
        else:
            print(f"   No significant 7-day retention difference between gates.")

    # ========================================================================
    # STEP 5: Survival
    # ========================================================================
    if verbose:
        print(f"\n[5/9] Kaplan-Meier survival (time = rounds, event = churn by day 7)...")

    surv = _run_stage('survival', survival.fit_retention_survival, df, alpha=config.alpha)

    if verbose:
        for label, median in surv.median_survival.items():
            print(f"   ✓ {label}: {surv.n_events[label]:,} churned, {surv.n_censored[label]:,} censored, "
                  f"median survival {median:g} rounds")
        print(f"   ✓ Log-rank χ² = {surv.logrank['chi2_statistic']:.3f}, p = {surv.logrank['p_value']:.4f}")

    # ========================================================================
    # STEP 6: Causal estimates
    # ========================================================================
    if verbose:
        print(f"\n[6/9] Propensity-score matching and inverse probability weighting...")

    matching = _run_stage(
        'causal', causal.propensity_score_matching, df,
        alpha=config.alpha, caliper=config.caliper, random_state=config.random_state,
    )
    ipw = _run_stage(
        'causal', causal.inverse_probability_weighting, df,
        alpha=config.alpha, clip=config.propensity_clip, random_state=config.random_state,
    )

    if verbose:
        print(f"   ✓ Matched {matching.n_pairs:,} pairs ({matching.n_unmatched_treated:,} treated unmatched)")
        print(f"   ✓ SMD(rounds): {matching.smd_before:+.4f} before → {matching.smd_after:+.4f} after")
        print(f"   ✓ Matched day-7 diff: {matching.ttest['difference']:+.4f} (p={matching.ttest['p_value']:.4f})")
        print(f"   ✓ IPW odds ratio: {ipw.odds_ratio:.4f} "
              f"[{ipw.odds_ratio_ci[0]:.4f}, {ipw.odds_ratio_ci[1]:.4f}], p={ipw.p_value:.4f}")
        print(f"   ✓ Weighted retention: " +
              ", ".join(f"{k} {v:.2%}" for k, v in ipw.weighted_retention.items()))
        if ipw.n_clipped:
            print(f"   ⚠️  {ipw.n_clipped:,} propensity scores clipped to {config.propensity_clip}")

    # ========================================================================
    # STEP 7: Bayesian
    # ========================================================================
    if verbose:
        print(f"\n[7/9] Beta-Binomial posteriors (prior Beta({config.prior_alpha:g}, {config.prior_beta:g}))...")

    posteriors = {}
    for offset, metric in enumerate(RETENTION_COLUMNS):
        seed = None if config.random_state is None else config.random_state + offset
        posteriors[metric] = _run_stage(
            'bayesian', bayesian.posterior_retention, df,
            metric=metric,
            prior_alpha=config.prior_alpha,
            prior_beta=config.prior_beta,
            n_samples=config.n_posterior_samples,
            random_state=seed,
        )

    if verbose:
        for metric, post in posteriors.items():
            print(f"   ✓ {metric}: P({post.labels[1]} > {post.labels[0]}) = {post.comparison['prob_treatment_better']:.3f}, "
                  f"expected lift {post.comparison['expected_lift']:+.2%}")

    # ========================================================================
    # STEP 8: Segments
    # ========================================================================
    if verbose:
        print(f"\n[8/9] Segmenting players by engagement (median split)...")

    segments = _run_stage('segmenter', segmentation.segment_by_engagement, df)

    if verbose:
        print(f"   ✓ Median rounds: {segments.median:g}")
        print(f"   ✓ Band sizes: " + ", ".join(f"{k} {v:,}" for k, v in segments.band_counts.items()))

    # ========================================================================
    # STEP 9: Predictive model
    # ========================================================================
    if verbose:
        print(f"\n[9/9] Logistic model of day-7 retention...")

    model = _run_stage(
        'predictive', predictive.fit_retention_model, segments.data,
        threshold=config.classification_threshold, alpha=config.alpha,
    )

    if verbose:
        conf = model.confusion
        print(f"   ✓ Coefficients (odds ratios): " +
              ", ".join(f"{term} {row['odds_ratio']:.4f}" for term, row in model.coefficients.iterrows()))
        print(f"   ✓ Accuracy {conf['accuracy']:.4f} vs NIR {conf['no_information_rate']:.4f} "
              f"(p={conf['accuracy_p_value']:.4f}), kappa {conf['kappa']:.4f}")
        print(f"   ✓ AUC = {model.roc['auc']:.4f}")
        if conf['imbalance_warning']:
            print(f"\n   💡 INTERPRETATION:")
            print(f"   Accuracy does not beat always predicting the majority class;")
            print(f"   read sensitivity ({conf['sensitivity']:.3f}) and AUC instead.")

    result = PipelineResult(
        config=config,
        cleaning=cleaned,
        summary=summary,
        srm_check=srm,
        retention_tests=tests,
        multiple_testing=adjusted,
        survival=surv,
        matching=matching,
        ipw=ipw,
        bayesian=posteriors,
        segmentation=segments,
        predictive=model,
    )

    if output_dir is not None:
        from gate_experiment.reporting import plots

        figures = _run_stage('reporting', _build_figures, result, config.random_state)
        result.figure_paths = plots.save_figures(figures, output_dir)
        if verbose:
            print(f"\n   ✓ Wrote {len(result.figure_paths)} figures to {output_dir}")

    if verbose:
        print("\n" + "="*70)
        print("✅ Analysis complete")
        print("="*70)

    return result


if __name__ == "__main__":
    run_cookie_cats_analysis(verbose=True)
