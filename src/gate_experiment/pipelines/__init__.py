"""
End-to-end analysis pipelines.

Available pipelines:
- cookie_cats_pipeline: Gate placement retention analysis (90K players)
"""

# Lazy import so ``python -m gate_experiment.pipelines.cookie_cats_pipeline``
# does not find the module already imported through the package

__all__ = [
    'run_cookie_cats_analysis',
]


def __getattr__(name: str):
    """
    Lazy import pipeline functions on first access.

    Parameters
    ----------
    name : str
        The attribute/function name being accessed

    Returns
    -------
    Any
        The imported function

    Raises
    ------
    AttributeError
        If the requested attribute doesn't exist
    """
    if name == 'run_cookie_cats_analysis':
        from gate_experiment.pipelines.cookie_cats_pipeline import run_cookie_cats_analysis
        return run_cookie_cats_analysis
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
