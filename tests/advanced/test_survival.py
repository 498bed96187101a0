"""Unit tests for Kaplan-Meier survival and the log-rank test."""

import pytest
import numpy as np

from gate_experiment.advanced import survival
from gate_experiment.exceptions import InsufficientDataError


class TestKaplanMeier:
    """Tests for the Kaplan-Meier table."""

    def test_origin_row(self):
        """Test that the table starts at time 0 with survival 1."""
        curve = survival.kaplan_meier([5, 10], [1, 0])

        assert curve['time'].iloc[0] == 0
        assert curve['survival'].iloc[0] == 1.0
        assert curve['at_risk'].iloc[0] == 2

    def test_hand_computed_curve(self):
        """Test gate_30 of the ten-player table (events = churned by day 7)."""
        curve = survival.kaplan_meier([5, 10, 20, 40, 80], [1, 0, 1, 1, 0])

        assert curve['time'].tolist() == [0, 5, 10, 20, 40, 80]
        assert curve['at_risk'].tolist() == [5, 5, 4, 3, 2, 1]
        np.testing.assert_allclose(
            curve['survival'],
            [1.0, 0.8, 0.8, 0.8 * 2 / 3, 0.8 * 2 / 3 * 0.5, 0.8 * 2 / 3 * 0.5],
        )

    def test_censoring_does_not_reduce_survival(self):
        """Test that a censored time leaves survival unchanged."""
        curve = survival.kaplan_meier([1, 2, 3], [1, 0, 1])

        assert curve.loc[curve['time'] == 2, 'survival'].iloc[0] == pytest.approx(2 / 3)
        assert curve.loc[curve['time'] == 2, 'censored'].iloc[0] == 1

    def test_ties_pooled(self):
        """Test that tied times form one row."""
        curve = survival.kaplan_meier([4, 4, 4, 9], [1, 1, 0, 1])

        row = curve[curve['time'] == 4].iloc[0]
        assert len(curve) == 3
        assert row['events'] == 2
        assert row['censored'] == 1
        assert row['survival'] == pytest.approx(0.5)

    def test_non_increasing(self):
        """Test that survival never rises."""
        np.random.seed(42)
        durations = np.random.geometric(0.05, 300)
        events = np.random.binomial(1, 0.7, 300)

        curve = survival.kaplan_meier(durations, events)

        assert np.all(np.diff(curve['survival']) <= 1e-12)
        assert curve['survival'].between(0, 1).all()

    def test_invalid_inputs(self):
        """Test error handling for invalid inputs."""
        with pytest.raises(ValueError, match="same length"):
            survival.kaplan_meier([1, 2], [1])

        with pytest.raises(ValueError, match="non-negative"):
            survival.kaplan_meier([-1, 2], [1, 1])

        with pytest.raises(ValueError, match="binary"):
            survival.kaplan_meier([1, 2], [1, 2])

        with pytest.raises(InsufficientDataError):
            survival.kaplan_meier([], [])


class TestSurvivalAt:
    """Tests for the step lookup."""

    def test_right_continuous(self):
        """Test lookups at, between and after event times."""
        curve = survival.kaplan_meier([5, 10, 20, 40, 80], [1, 0, 1, 1, 0])

        assert survival.survival_at(curve, 4.9) == 1.0
        assert survival.survival_at(curve, 5) == pytest.approx(0.8)
        assert survival.survival_at(curve, 19) == pytest.approx(0.8)
        assert survival.survival_at(curve, 20) == pytest.approx(0.8 * 2 / 3)
        assert survival.survival_at(curve, 500) == pytest.approx(0.8 * 2 / 3 * 0.5)

    def test_negative_time(self):
        """Test that survival before the origin is 1."""
        curve = survival.kaplan_meier([5], [1])

        assert survival.survival_at(curve, -1) == 1.0

    def test_churn_at_time_zero(self):
        """Test that zero-round churners lower S(0) below the origin row."""
        curve = survival.kaplan_meier([0, 0, 3, 5], [1, 1, 0, 1])

        assert curve['time'].tolist() == [0, 0, 3, 5]
        assert curve['survival'].iloc[0] == 1.0
        assert curve['events'].iloc[1] == 2
        assert survival.survival_at(curve, 0) == pytest.approx(0.5)
        assert survival.survival_at(curve, 5) == pytest.approx(0.0)


class TestMedianSurvivalTime:
    """Tests for the median survival time."""

    def test_median_reached(self):
        """Test the first time with survival at or below one half."""
        curve = survival.kaplan_meier([5, 10, 20, 40, 80], [1, 0, 1, 1, 0])

        assert survival.median_survival_time(curve) == 40

    def test_median_not_reached(self):
        """Test NaN when survival stays above one half."""
        curve = survival.kaplan_meier([5, 10, 20], [1, 0, 0])

        assert np.isnan(survival.median_survival_time(curve))


class TestLogrankTest:
    """Tests for the two-group log-rank test."""

    def test_hand_computed_statistic(self):
        """Test the ten-player statistic: O - E = 2/45, V = 1.24 + 20/81."""
        durations = [5, 10, 20, 40, 80, 3, 15, 25, 50, 60]
        events = [1, 0, 1, 1, 0, 1, 0, 1, 0, 1]
        groups = [0] * 5 + [1] * 5

        result = survival.logrank_test(durations, events, groups)

        assert result['observed_control'] == 3
        assert result['expected_control'] == pytest.approx(2.955556, abs=1e-6)
        assert result['variance'] == pytest.approx(1.24 + 20 / 81)
        assert result['chi2_statistic'] == pytest.approx((2 / 45) ** 2 / (1.24 + 20 / 81))
        assert result['df'] == 1
        assert result['p_value'] > 0.9

    def test_observed_expected_totals(self):
        """Test that observed and expected events each sum to the total."""
        np.random.seed(1)
        durations = np.random.geometric(0.1, 200)
        events = np.random.binomial(1, 0.8, 200)
        groups = np.random.binomial(1, 0.5, 200)

        result = survival.logrank_test(durations, events, groups)

        total = events.sum()
        assert result['observed_control'] + result['observed_treatment'] == pytest.approx(total)
        assert result['expected_control'] + result['expected_treatment'] == pytest.approx(total)

    def test_different_curves_detected(self):
        """Test that clearly different hazards give a small p-value."""
        np.random.seed(42)
        durations = np.concatenate([np.random.geometric(0.2, 300), np.random.geometric(0.05, 300)])
        events = np.ones(600, dtype=int)
        groups = np.repeat([0, 1], 300)

        result = survival.logrank_test(durations, events, groups)

        assert result['p_value'] < 0.001

    def test_no_events(self):
        """Test that an all-censored sample reports no difference."""
        result = survival.logrank_test([1, 2, 3, 4], [0, 0, 0, 0], [0, 0, 1, 1])

        assert result['chi2_statistic'] == 0.0
        assert result['p_value'] == 1.0
        assert result['expected_control'] == 0.0

    def test_single_group(self):
        """Test that one group alone cannot be compared."""
        with pytest.raises(InsufficientDataError, match="both groups"):
            survival.logrank_test([1, 2, 3], [1, 1, 0], [0, 0, 0])


class TestFitRetentionSurvival:
    """Tests for the table-level survival analysis."""

    def test_curves_per_group(self, tiny_records):
        """Test curves, medians and event counts for the ten players."""
        result = survival.fit_retention_survival(tiny_records)

        assert set(result.curves) == {'gate_30', 'gate_40'}
        assert result.median_survival['gate_30'] == 40
        assert result.median_survival['gate_40'] == 60
        assert result.n_events == {'gate_30': 3, 'gate_40': 3}
        assert result.n_censored == {'gate_30': 2, 'gate_40': 2}

    def test_gate_40_curve(self, tiny_records):
        """Test the hand-computed gate_40 survival values."""
        curve = survival.fit_retention_survival(tiny_records).curves['gate_40']

        np.testing.assert_allclose(
            curve['survival'].iloc[1:],
            [0.8, 0.8, 0.8 * 2 / 3, 0.8 * 2 / 3, 0.0],
        )

    def test_logrank_attached(self, tiny_records):
        """Test that the log-rank result carries a significance flag."""
        result = survival.fit_retention_survival(tiny_records)

        assert result.logrank['chi2_statistic'] == pytest.approx(0.0013284, abs=1e-6)
        assert result.logrank['significant'] is False
