"""
Source Table Loader
===================

Reads pipe-delimited (or parquet) EHR extracts and renames raw columns to
the canonical names used by the evaluators.
"""

import logging
from pathlib import Path
from typing import Dict, Mapping, Optional, Union

import pandas as pd

from ihd_cohort.config.cohort_config import SourceConfig

logger = logging.getLogger(__name__)


def load_source_table(
    path: Union[str, Path],
    sep: str = "|",
    column_map: Optional[Mapping[str, str]] = None,
) -> pd.DataFrame:
    """
    Load one source table.

    Args:
        path: Path to a .parquet file or a delimited text file
        sep: Field separator for text files
        column_map: Raw column name -> canonical column name

    Returns:
        DataFrame with canonical column names; text files are read as strings
    """
    path = Path(path)
    if path.suffix == ".parquet":
        df = pd.read_parquet(path)
    else:
        df = pd.read_csv(
            path,
            sep=sep,
            dtype=str,
            keep_default_na=False,
            na_values=[""],
            low_memory=False,
        )

    if column_map:
        df = df.rename(columns=dict(column_map))

    logger.info(f"Loaded {len(df):,} rows from {path.name}")
    return df


def load_sources(
    data_dir: Union[str, Path],
    source_configs: Mapping[str, SourceConfig],
) -> Dict[str, pd.DataFrame]:
    """
    Load every configured source present in data_dir.

    Args:
        data_dir: Directory holding the extracts
        source_configs: Source name -> SourceConfig

    Returns:
        Source name -> DataFrame, missing files skipped with a warning
    """
    data_dir = Path(data_dir)
    tables = {}
    for name, source in source_configs.items():
        path = data_dir / source.filename
        if not path.exists():
            logger.warning(f"Source '{name}' not found at {path}, skipping")
            continue
        tables[name] = load_source_table(path, sep=source.sep, column_map=source.columns)
    return tables
