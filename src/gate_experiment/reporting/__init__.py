"""Report figures."""

from gate_experiment.reporting import plots

__all__ = ["plots"]
