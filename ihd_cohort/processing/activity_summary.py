"""Activity covariates: per-patient event counts inside the temporal window."""
import logging
from typing import Optional
import pandas as pd
from ihd_cohort.processing.events import prepare_events, require_columns
from ihd_cohort.processing.normalization import JOIN_KEYS
from ihd_cohort.processing.temporal_window import DEFAULT_WINDOW, TemporalWindow, window_mask

logger = logging.getLogger(__name__)


def empty_activity(name: str) -> pd.DataFrame:
    return pd.DataFrame({
        "patient_id": pd.Series(dtype="object"),
        "index_date": pd.Series(dtype="datetime64[ns]"),
        name: pd.Series(dtype="Int64"),
    })


def summarize_activity(
    table: pd.DataFrame,
    name: str,
    column: Optional[str] = None,
    distinct: bool = True,
    window: TemporalWindow = DEFAULT_WINDOW,
    patient_index: Optional[pd.DataFrame] = None,
    dayfirst: bool = False,
    date_format: Optional[str] = None,
) -> pd.DataFrame:
    """Count events per (patient_id, index_date) inside the window.

    Args:
        table: Raw source table
        name: Output count column name
        column: Column whose distinct values are counted (total row count if None)
        distinct: Count distinct values of `column`, otherwise count rows
        window: Temporal window around the index date
        patient_index: Patient index, used when the table has no index_date
        dayfirst: Read ambiguous dates day first
        date_format: Explicit date format of the table

    Returns:
        DataFrame with patient_id, index_date and the count column; patients
        without windowed events are absent
    """
    events = prepare_events(
        table, patient_index, name=f"activity {name}", dayfirst=dayfirst, date_format=date_format
    )
    if column is not None and distinct:
        require_columns(events, [column], f"activity {name}")

    events = events[window_mask(events["event_date"], events["index_date"], window)]
    if events.empty:
        return empty_activity(name)

    grouped = events.groupby(JOIN_KEYS, sort=True)
    if column is not None and distinct:
        counts = grouped[column].nunique(dropna=True)
    else:
        counts = grouped.size()

    result = counts.rename(name).reset_index()
    result[name] = result[name].astype("Int64")
    logger.info(f"{name}: {len(result):,} patients with activity")
    return result
