"""Tests for report figures."""

import pytest
from matplotlib.figure import Figure

from gate_experiment.advanced import predictive, segmentation, survival
from gate_experiment.core import bayesian, descriptive
from gate_experiment.data.cleaning import clean_user_records
from gate_experiment.data.schema import RAW_COLUMN_MAP
from gate_experiment.reporting import plots


@pytest.fixture
def summary(tiny_records):
    return descriptive.describe_experiment(tiny_records)


class TestFigureBuilders:
    """Tests that every builder returns a drawable figure."""

    def test_rounds_histogram(self, summary):
        """Test one bar per histogram bin."""
        fig = plots.plot_rounds_histogram(summary)

        assert isinstance(fig, Figure)
        assert len(fig.axes[0].patches) == 50

    def test_retention_by_group(self, summary):
        """Test two bars (day 1, day 7) per gate."""
        fig = plots.plot_retention_by_group(summary)

        assert len(fig.axes[0].patches) == 4

    def test_rounds_vs_retention(self, tiny_records):
        """Test one scatter layer per gate."""
        fig = plots.plot_rounds_vs_retention(tiny_records, random_state=0)

        assert len(fig.axes[0].collections) == 2

    def test_survival_curves(self, tiny_records):
        """Test one step line per gate."""
        fig = plots.plot_survival_curves(survival.fit_retention_survival(tiny_records))

        assert len(fig.axes[0].lines) == 2

    def test_posterior_densities(self, tiny_records):
        """Test density and mean lines for both gates."""
        result = bayesian.posterior_retention(tiny_records, n_samples=500, random_state=0)
        fig = plots.plot_posterior_densities(result)

        assert len(fig.axes[0].lines) == 4

    def test_segment_retention(self, tiny_records):
        """Test one bar per gate and band."""
        fig = plots.plot_segment_retention(segmentation.segment_by_engagement(tiny_records))

        assert len(fig.axes[0].patches) == 4

    def test_roc_curve(self):
        """Test curve plus chance diagonal."""
        roc = predictive.roc_analysis([0, 0, 1, 1], [0.1, 0.4, 0.35, 0.8])
        fig = plots.plot_roc_curve(roc)

        assert len(fig.axes[0].lines) == 2


class TestSaveFigures:
    """Tests for writing figures to disk."""

    def test_writes_png_files(self, summary, tmp_path):
        """Test one PNG per named figure, creating the directory."""
        out = tmp_path / 'nested' / 'figures'
        paths = plots.save_figures({
            'histogram': plots.plot_rounds_histogram(summary),
            'retention': plots.plot_retention_by_group(summary),
        }, out)

        assert [p.name for p in paths] == ['histogram.png', 'retention.png']
        assert all(p.stat().st_size > 0 for p in paths)


class TestGroupLabels:
    """Tests that figures follow the configured group names."""

    def test_posterior_uses_result_labels(self, tiny_raw):
        """Test legend and title with renamed gates."""
        raw = tiny_raw.rename(columns=RAW_COLUMN_MAP)
        raw['group'] = raw['group'].map({'gate_30': 'level_30', 'gate_40': 'level_40'})
        df = clean_user_records(raw, control_label='level_30', treatment_label='level_40').data

        result = bayesian.posterior_retention(df, n_samples=500, random_state=0)
        ax = plots.plot_posterior_densities(result).axes[0]

        assert result.labels == ('level_30', 'level_40')
        assert 'P(level_40 > level_30)' in ax.get_title()
        assert [t.get_text() for t in ax.get_legend().get_texts()] == ['level_30', 'level_40']
