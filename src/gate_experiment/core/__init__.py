"""Core statistical methods for the gate experiment."""

from gate_experiment.core import descriptive, frequentist, bayesian, randomization

__all__ = ["descriptive", "frequentist", "bayesian", "randomization"]
