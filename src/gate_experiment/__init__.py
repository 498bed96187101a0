"""
Gate Experiment - Cookie Cats Retention Analysis
================================================

Statistical analysis of the Cookie Cats gate placement experiment: does moving
the first progression gate from level 30 to level 40 change player retention?

Modules:
--------
- data: Loading, schema and cleaning of player records
- core: Descriptive statistics, Welch/z tests, SRM check, Beta-Binomial posteriors
- advanced: Survival, propensity-score causal estimates, segmentation,
  predictive model, multiple testing correction
- reporting: Figures for the analysis report
- pipelines: End-to-end analysis run

Example Usage:
--------------
>>> from gate_experiment.data import loaders, cleaning
>>> from gate_experiment.core import frequentist
>>>
>>> df = cleaning.clean_user_records(loaders.load_cookie_cats()).data
>>> tests = frequentist.retention_tests(df)
>>> print(tests['retained_day7'].p_value)

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
__license__ = "MIT"

from gate_experiment.data import loaders, cleaning
from gate_experiment.core import descriptive, frequentist, bayesian, randomization

__all__ = [
    "loaders",
    "cleaning",
    "descriptive",
    "frequentist",
    "bayesian",
    "randomization",
]
