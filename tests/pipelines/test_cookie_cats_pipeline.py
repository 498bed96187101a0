"""End-to-end tests for the gate placement pipeline."""

import pytest
import numpy as np

from gate_experiment.config import AnalysisConfig
from gate_experiment.exceptions import AnalysisError, DataFormatError, SchemaError
from gate_experiment.pipelines import run_cookie_cats_analysis

FAST = AnalysisConfig(n_posterior_samples=2000)


def _irls(X, y, n_iter=50):
    """Newton-Raphson logistic regression from a zero start."""
    beta = np.zeros(X.shape[1])
    for _ in range(n_iter):
        p = 1 / (1 + np.exp(-X @ beta))
        hessian = X.T @ ((p * (1 - p))[:, None] * X)
        beta = beta + np.linalg.solve(hessian, X.T @ (y - p))
    return beta


class TestTenPlayerScenario:
    """The hand-checked ten-player table run through every stage."""

    @pytest.fixture
    def result(self, tiny_raw, write_csv):
        return run_cookie_cats_analysis(path=write_csv(tiny_raw), config=FAST, verbose=False)

    def test_cleaning(self, result):
        """Test that no rows are dropped."""
        assert result.cleaning.n_dropped == 0
        assert result.summary.n_users == 10

    def test_welch_statistics(self, result):
        """Test the hand-computed Welch statistics for both horizons."""
        day1 = result.retention_tests['retained_day1']
        day7 = result.retention_tests['retained_day7']

        assert day1.diff == pytest.approx(-0.2)
        assert day1.t_stat == pytest.approx(-0.632456, abs=1e-6)
        assert day1.df == pytest.approx(7.6923, abs=1e-4)
        assert day7.t_stat == 0
        assert day7.p_value == pytest.approx(1.0)

    def test_survival_values(self, result):
        """Test the hand-computed Kaplan-Meier values."""
        gate_30 = result.survival.curves['gate_30']
        gate_40 = result.survival.curves['gate_40']

        np.testing.assert_allclose(gate_30['survival'].iloc[1:], [0.8, 0.8, 0.53333, 0.26667, 0.26667], atol=1e-5)
        np.testing.assert_allclose(gate_40['survival'].iloc[1:], [0.8, 0.8, 0.53333, 0.53333, 0.0], atol=1e-5)

    def test_srm_balanced(self, result):
        """Test that a 5/5 split passes the SRM check."""
        assert not result.srm_check['srm_detected']

    def test_every_stage_present(self, result):
        """Test that each stage produced its record."""
        assert result.matching.n_pairs == 5
        assert set(result.bayesian) == {'retained_day1', 'retained_day7'}
        assert result.segmentation.median == pytest.approx(22.5)
        assert result.predictive.n_obs == 10
        assert set(result.multiple_testing) == {'retained_day1', 'retained_day7'}

    def test_logistic_model_matches_reference_fit(self, result):
        """Test coefficients, confusion cells and AUC against a plain IRLS fit."""
        # const, gate_40, rounds_played, engagement_high (median 22.5)
        X = np.array([
            [1, 0, 5, 0], [1, 0, 10, 0], [1, 0, 20, 0], [1, 0, 40, 1], [1, 0, 80, 1],
            [1, 1, 3, 0], [1, 1, 15, 0], [1, 1, 25, 1], [1, 1, 50, 1], [1, 1, 60, 1],
        ], dtype=float)
        y = np.array([0, 1, 0, 0, 1, 0, 1, 0, 1, 0], dtype=float)
        beta = _irls(X, y)
        p_ref = 1 / (1 + np.exp(-X @ beta))

        model = result.predictive
        np.testing.assert_allclose(model.coefficients['coef'].to_numpy(), beta, rtol=1e-4, atol=1e-6)

        # Score equations of the maximum-likelihood fit
        p = result.data['predicted_probability'].to_numpy()
        np.testing.assert_allclose(X.T @ p, [4, 2, 155, 2], atol=1e-5)
        np.testing.assert_allclose(p, p_ref, atol=1e-6)

        predicted = p_ref > 0.5
        assert model.confusion['true_positive'] == int(np.sum(predicted & (y == 1)))
        assert model.confusion['false_positive'] == int(np.sum(predicted & (y == 0)))
        assert model.confusion['false_negative'] == int(np.sum(~predicted & (y == 1)))
        assert model.confusion['true_negative'] == int(np.sum(~predicted & (y == 0)))

        # AUC as the share of (retained, churned) pairs ranked correctly
        pos, neg = p_ref[y == 1], p_ref[y == 0]
        diffs = pos[:, None] - neg[None, :]
        expected_auc = (np.sum(diffs > 0) + 0.5 * np.sum(diffs == 0)) / diffs.size
        assert model.roc['auc'] == pytest.approx(expected_auc)

    def test_row_count_never_grows(self, result):
        """Test that enriched outputs keep one row per player."""
        assert len(result.data) == 10
        assert len(result.ipw.data) == 10
        assert {'engagement_band', 'predicted_probability'} <= set(result.data.columns)


class TestSyntheticRun:
    """Pipeline run on the 2,000-player synthetic table."""

    def test_outliers_reported(self, synthetic_raw, write_csv):
        """Test that the five outliers are dropped before analysis."""
        result = run_cookie_cats_analysis(path=write_csv(synthetic_raw), config=FAST, verbose=False)

        assert result.cleaning.n_dropped == 5
        assert result.summary.n_users == 1995

    def test_sampling(self, synthetic_raw, write_csv):
        """Test that sample_frac reduces the analysed table."""
        result = run_cookie_cats_analysis(
            path=write_csv(synthetic_raw), config=FAST, sample_frac=0.5, verbose=False
        )

        assert result.cleaning.n_before == 1000

    def test_figures_written(self, synthetic_raw, write_csv, tmp_path):
        """Test that output_dir receives one PNG per figure."""
        out = tmp_path / 'figures'
        result = run_cookie_cats_analysis(
            path=write_csv(synthetic_raw), config=FAST, verbose=False, output_dir=out
        )

        assert len(result.figure_paths) == 8
        assert all(p.exists() and p.suffix == '.png' for p in result.figure_paths)

    def test_verbose_output(self, synthetic_raw, write_csv, capsys):
        """Test that verbose mode prints numbered stage headers."""
        run_cookie_cats_analysis(path=write_csv(synthetic_raw), config=FAST, verbose=True)
        out = capsys.readouterr().out

        assert '[1/9]' in out
        assert '[9/9]' in out
        assert 'Dropped 5 rows' in out

    def test_custom_group_labels(self, tiny_raw, write_csv, capsys):
        """Test that printed comparisons use the configured gate names."""
        raw = tiny_raw.assign(version=tiny_raw['version'].map({'gate_30': 'level_30', 'gate_40': 'level_40'}))
        config = AnalysisConfig(n_posterior_samples=2000, control_label='level_30', treatment_label='level_40')

        result = run_cookie_cats_analysis(path=write_csv(raw), config=config, verbose=True)
        out = capsys.readouterr().out

        assert set(result.survival.curves) == {'level_30', 'level_40'}
        assert 'P(level_40 > level_30)' in out
        assert 'gate_40 > gate_30' not in out

    def test_quiet_output(self, synthetic_raw, write_csv, capsys):
        """Test that verbose=False prints nothing."""
        run_cookie_cats_analysis(path=write_csv(synthetic_raw), config=FAST, verbose=False)

        assert capsys.readouterr().out == ''


class TestStageErrors:
    """Tests for fail-fast errors tagged with the stage name."""

    def test_loader_stage(self, tiny_raw, write_csv):
        """Test that a missing column fails in the loader."""
        path = write_csv(tiny_raw.drop(columns=['version']))

        with pytest.raises(DataFormatError) as exc_info:
            run_cookie_cats_analysis(path=path, config=FAST, verbose=False)

        assert exc_info.value.stage == 'loader'
        assert str(exc_info.value).startswith('[loader]')

    def test_cleaner_stage(self, tiny_raw, write_csv):
        """Test that a third group fails in the cleaner."""
        bad = tiny_raw.copy()
        bad.loc[9, 'version'] = 'gate_50'

        with pytest.raises(SchemaError) as exc_info:
            run_cookie_cats_analysis(path=write_csv(bad), config=FAST, verbose=False)

        assert exc_info.value.stage == 'cleaner'

    def test_all_outliers_in_one_group(self, tiny_raw, write_csv):
        """Test that a group emptied by cleaning stops the run."""
        bad = tiny_raw.copy()
        bad.loc[bad['version'] == 'gate_40', 'sum_gamerounds'] = 5000

        with pytest.raises(AnalysisError) as exc_info:
            run_cookie_cats_analysis(path=write_csv(bad), config=FAST, verbose=False)

        assert exc_info.value.stage == 'randomization'

    def test_errors_are_value_errors(self, tiny_raw, write_csv):
        """Test that stage errors can be caught as ValueError."""
        path = write_csv(tiny_raw.drop(columns=['retention_1']))

        with pytest.raises(ValueError, match=r"\[loader\] Missing required columns"):
            run_cookie_cats_analysis(path=path, config=FAST, verbose=False)

    def test_missing_file(self, tmp_path):
        """Test that a missing input file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            run_cookie_cats_analysis(path=tmp_path / 'missing.csv', config=FAST, verbose=False)
