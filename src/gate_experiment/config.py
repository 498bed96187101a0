"""
Analysis Configuration
======================

Named defaults for every fixed threshold used by the Cookie Cats analysis.
Stage functions take these as keyword defaults; the pipeline groups them in
an ``AnalysisConfig`` so a whole run can be re-parameterised in one place.

Example Usage:
--------------
>>> from gate_experiment.config import AnalysisConfig
>>> config = AnalysisConfig(outlier_threshold=500, n_posterior_samples=20_000)
>>> config.classification_threshold
0.5
"""

from dataclasses import dataclass
from typing import Optional, Tuple


# Rows above this many game rounds are treated as bot/anomalous activity
OUTLIER_THRESHOLD = 1000

HISTOGRAM_BINS = 50

ALPHA = 0.05

# Beta(1, 1) = uniform prior on retention probability
PRIOR_ALPHA = 1.0
PRIOR_BETA = 1.0
N_POSTERIOR_SAMPLES = 100_000

# Propensity scores are clipped into this interval before weighting
PROPENSITY_CLIP = (0.01, 0.99)

CLASSIFICATION_THRESHOLD = 0.5

RANDOM_STATE = 42

CONTROL_LABEL = "gate_30"
TREATMENT_LABEL = "gate_40"

DEFAULT_DATA_DIR = "./data/raw/cookie_cats"
DEFAULT_FILENAME = "cookie_cats.csv"


@dataclass(frozen=True)
class AnalysisConfig:
    """Container for pipeline-wide analysis settings."""
    outlier_threshold: int = OUTLIER_THRESHOLD
    histogram_bins: int = HISTOGRAM_BINS
    alpha: float = ALPHA
    prior_alpha: float = PRIOR_ALPHA
    prior_beta: float = PRIOR_BETA
    n_posterior_samples: int = N_POSTERIOR_SAMPLES
    propensity_clip: Optional[Tuple[float, float]] = PROPENSITY_CLIP
    caliper: Optional[float] = None
    classification_threshold: float = CLASSIFICATION_THRESHOLD
    random_state: Optional[int] = RANDOM_STATE
    control_label: str = CONTROL_LABEL
    treatment_label: str = TREATMENT_LABEL

    def __post_init__(self):
        if self.outlier_threshold < 0:
            raise ValueError("outlier_threshold must be non-negative")
        if self.histogram_bins < 1:
            raise ValueError("histogram_bins must be at least 1")
        if not (0 < self.alpha < 1):
            raise ValueError(f"alpha must be between 0 and 1, got {self.alpha}")
        if self.prior_alpha <= 0 or self.prior_beta <= 0:
            raise ValueError("Prior parameters must be positive")
        if self.n_posterior_samples < 1:
            raise ValueError("n_posterior_samples must be positive")
        if not (0 < self.classification_threshold < 1):
            raise ValueError("classification_threshold must be between 0 and 1")
        if self.propensity_clip is not None:
            low, high = self.propensity_clip
            if not (0 < low < high < 1):
                raise ValueError("propensity_clip must satisfy 0 < low < high < 1")
        if self.control_label == self.treatment_label:
            raise ValueError("control_label and treatment_label must differ")
