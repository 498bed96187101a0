"""
Data Loading Utilities for the Cookie Cats A/B Test
===================================================

Reads the per-player CSV exported from the Cookie Cats gate-placement
experiment and maps the raw header onto UserRecord field names.

Dataset:
--------
Cookie Cats (90K rows)
   - Source: Kaggle / DataCamp
   - Use: Product/growth experiments, retention

Example Usage:
--------------
>>> from gate_experiment.data import loaders
>>>
>>> # Load from the default location (./data/raw/cookie_cats/cookie_cats.csv)
>>> df = loaders.load_cookie_cats()
>>>
>>> # Load an explicit file, 10% sample
>>> df = loaders.load_user_records("exports/cookie_cats.csv", sample_frac=0.1)
>>>
>>> # Get dataset metadata
>>> info = loaders.get_dataset_info('cookie_cats')
>>> print(info['description'])
"""

from pathlib import Path
from typing import Optional, Dict, Any, Union

import pandas as pd

from gate_experiment.config import DEFAULT_DATA_DIR, DEFAULT_FILENAME, RANDOM_STATE
from gate_experiment.data.schema import RAW_COLUMN_MAP, REQUIRED_RAW_COLUMNS, USER_ID
from gate_experiment.exceptions import DataFormatError


# Dataset metadata registry
DATASETS = {
    "cookie_cats": {
        "name": "Cookie Cats Mobile Game A/B Test",
        "source_url": "https://www.kaggle.com/datasets/mursideyarkin/mobile-games-ab-testing-cookie-cats",
        "size": 90189,
        "description": "Mobile game retention experiment testing gate placement",
        "features": ["userid", "version", "sum_gamerounds", "retention_1", "retention_7"],
        "citation": "DataCamp / Kaggle Cookie Cats Dataset",
    },
}


def get_dataset_info(dataset_name: str) -> Dict[str, Any]:
    """
    Get metadata about available datasets.

    Parameters
    ----------
    dataset_name : str
        Currently only 'cookie_cats'

    Returns
    -------
    dict
        Dataset metadata including source URL, size, citation
    """
    if dataset_name not in DATASETS:
        raise ValueError(
            f"Unknown dataset '{dataset_name}'. "
            f"Available: {list(DATASETS.keys())}"
        )
    return DATASETS[dataset_name]


def load_user_records(
    path: Union[str, Path],
    sample_frac: float = 1.0,
    random_state: int = RANDOM_STATE,
    verbose: bool = False,
) -> pd.DataFrame:
    """
    Load a delimited file of per-user experiment records.

    Parameters
    ----------
    path : str or Path
        CSV file whose header contains userid, version, sum_gamerounds,
        retention_1 and retention_7
    sample_frac : float, default=1.0
        Fraction of rows to keep (0.0-1.0]
    random_state : int, default=42
        Random seed for reproducible sampling when sample_frac < 1.0
    verbose : bool, default=False
        Print loading progress

    Returns
    -------
    pd.DataFrame
        Columns renamed to user_id, group, rounds_played, retained_day1,
        retained_day7. Values are not coerced here (see data.cleaning).

    Raises
    ------
    FileNotFoundError
        If the file does not exist
    DataFormatError
        If required columns are missing, the file has no rows, or user ids
        are duplicated
    """
    if not (0 < sample_frac <= 1.0):
        raise ValueError(f"sample_frac must be in (0, 1], got {sample_frac}")

    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(
            f"Dataset not found at: {file_path}\n\n"
            "Please download from Kaggle:\n"
            "  https://www.kaggle.com/datasets/mursideyarkin/mobile-games-ab-testing-cookie-cats\n\n"
            f"And place in: {DEFAULT_DATA_DIR}/{DEFAULT_FILENAME}"
        )

    if verbose:
        print(f"Loading Cookie Cats dataset from {file_path}...")

    try:
        df = pd.read_csv(file_path, encoding="utf-8")
    except pd.errors.EmptyDataError:
        raise DataFormatError(f"{file_path} is empty (no header row)")

    # Standardize column names (remove spaces, lowercase)
    df.columns = df.columns.str.strip().str.lower()

    missing = [col for col in REQUIRED_RAW_COLUMNS if col not in df.columns]
    if missing:
        raise DataFormatError(
            f"Missing required columns: {missing}. Found: {df.columns.tolist()}"
        )
    if len(df) == 0:
        raise DataFormatError(f"{file_path} contains a header but no rows")

    df = df[REQUIRED_RAW_COLUMNS].rename(columns=RAW_COLUMN_MAP)

    duplicated = df[USER_ID].duplicated()
    if duplicated.any():
        examples = df.loc[duplicated, USER_ID].head(5).tolist()
        raise DataFormatError(
            f"user_id must be unique; found {int(duplicated.sum())} duplicates (e.g. {examples})"
        )

    if verbose:
        print(f"Loaded Cookie Cats dataset: {len(df):,} rows, {len(df.columns)} columns")

    # Apply sampling if requested
    if sample_frac < 1.0:
        df = df.sample(frac=sample_frac, random_state=random_state)
        if verbose:
            print(f"  Sampled to {len(df):,} rows ({sample_frac:.1%} of full dataset)")

    return df.reset_index(drop=True)


def load_cookie_cats(
    sample_frac: float = 1.0,
    random_state: int = RANDOM_STATE,
    cache_dir: Optional[str] = None,
    verbose: bool = False,
) -> pd.DataFrame:
    """
    Load Cookie Cats mobile game A/B test dataset from the data directory.

    Parameters
    ----------
    sample_frac : float, default=1.0
        Fraction of data to load (0.0-1.0). Use smaller values for faster testing.
    random_state : int, default=42
        Random seed for reproducible sampling when sample_frac < 1.0
    cache_dir : str, optional
        Directory containing the CSV file. Default: './data/raw/cookie_cats'
        Expected file: cookie_cats.csv
    verbose : bool, default=False
        Print loading progress

    Returns
    -------
    pd.DataFrame
        See ``load_user_records``.

    Notes
    -----
    - Size: ~3MB
    - Download from: https://www.kaggle.com/datasets/mursideyarkin/mobile-games-ab-testing-cookie-cats
    - Result: gate_30 performed better than gate_40
    """
    if cache_dir is None:
        cache_dir = DEFAULT_DATA_DIR

    return load_user_records(
        Path(cache_dir) / DEFAULT_FILENAME,
        sample_frac=sample_frac,
        random_state=random_state,
        verbose=verbose,
    )
