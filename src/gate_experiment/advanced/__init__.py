"""Survival, causal, segmentation and predictive analyses."""

from gate_experiment.advanced import (
    causal,
    multiple_testing,
    predictive,
    segmentation,
    survival,
)

__all__ = [
    "causal",
    "multiple_testing",
    "predictive",
    "segmentation",
    "survival",
]
