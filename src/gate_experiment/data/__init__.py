"""Player record loading, schema and cleaning."""

from gate_experiment.data import schema, loaders, cleaning

__all__ = ["schema", "loaders", "cleaning"]
