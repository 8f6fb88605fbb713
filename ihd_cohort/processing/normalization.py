"""Criterion hit tables: normalization and deduplication."""
from typing import List, Optional
import pandas as pd
from ihd_cohort.processing.events import with_patient_ids
from ihd_cohort.processing.temporal_window import to_calendar_dates

# Hit table schema
HIT_COLUMNS = ["patient_id", "index_date", "date_criterion", "flag"]
HIT_KEYS = ["patient_id", "index_date", "date_criterion"]
JOIN_KEYS = ["patient_id", "index_date"]


def empty_hits() -> pd.DataFrame:
    """Empty hit table with the hit schema."""
    return pd.DataFrame({
        "patient_id": pd.Series(dtype="object"),
        "index_date": pd.Series(dtype="datetime64[ns]"),
        "date_criterion": pd.Series(dtype="datetime64[ns]"),
        "flag": pd.Series(dtype="int64"),
    })


def deduplicate_hits(hits: pd.DataFrame, keys: Optional[List[str]] = None) -> pd.DataFrame:
    """Keep one hit per key.

    Args:
        hits: Hit table
        keys: Identity columns (default: patient_id, index_date, date_criterion)

    Returns:
        Deduplicated hit table sorted by keys
    """
    keys = keys or HIT_KEYS
    result = hits.drop_duplicates(subset=keys)
    result = result.sort_values(keys, kind="mergesort")
    return result.reset_index(drop=True)


def to_hit_table(rows: pd.DataFrame, flag_column: Optional[str] = None) -> pd.DataFrame:
    """Normalize matched event rows to the hit schema.

    Args:
        rows: Event rows with patient_id, index_date and event_date
        flag_column: Column holding the flag; constant 1 if None

    Returns:
        DataFrame with HIT_COLUMNS
    """
    rows = rows[rows["patient_id"].notna()]
    if rows.empty:
        return empty_hits()

    hits = pd.DataFrame({
        "patient_id": rows["patient_id"].astype(str),
        "index_date": rows["index_date"],
        "date_criterion": rows["event_date"],
    })
    hits["flag"] = rows[flag_column].astype("int64") if flag_column else 1
    hits["flag"] = hits["flag"].astype("int64")
    return hits[HIT_COLUMNS].reset_index(drop=True)


def normalize_keys(
    df: pd.DataFrame,
    dayfirst: bool = False,
    date_format: Optional[str] = None,
) -> pd.DataFrame:
    """Cast join keys to string patient_id and calendar-day index_date.

    Rows without a patient_id are dropped.
    """
    result = with_patient_ids(df)
    result["index_date"] = to_calendar_dates(result["index_date"], dayfirst, date_format)
    return result
