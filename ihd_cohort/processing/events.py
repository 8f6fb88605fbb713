"""Raw event tables keyed on (patient_id, index_date)."""
import logging
from typing import Iterable, Optional
import pandas as pd
from ihd_cohort.processing.temporal_window import to_calendar_dates

logger = logging.getLogger(__name__)

EVENT_COLUMNS = ["patient_id", "event_date"]


class SourceSchemaError(KeyError):
    """Source table lacks a column the criterion needs."""


def require_columns(df: pd.DataFrame, columns: Iterable[str], name: str):
    """Raise SourceSchemaError if any column is missing."""
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise SourceSchemaError(f"{name} missing columns: {missing}")


def with_patient_ids(df: pd.DataFrame) -> pd.DataFrame:
    """Copy with string patient_id; rows without a patient_id are dropped."""
    result = df[df["patient_id"].notna()].copy()
    result["patient_id"] = result["patient_id"].astype(str)
    return result


def prepare_events(
    table: pd.DataFrame,
    patient_index: Optional[pd.DataFrame] = None,
    name: str = "source table",
    dayfirst: bool = False,
    date_format: Optional[str] = None,
) -> pd.DataFrame:
    """
    Bring a raw event table to calendar-day dates keyed on (patient_id, index_date).

    Tables without an index_date column get one from the patient index; a
    patient with several index dates yields one row per index date.
    Rows with a missing patient_id or a missing or unparseable date are dropped.

    Args:
        table: Raw event table with patient_id and event_date
        patient_index: Patient index with patient_id and index_date
        name: Table name used in error messages
        dayfirst: Read ambiguous dates in the table day first
        date_format: Explicit date format of the table

    Returns:
        Copy of the table with parsed event_date and index_date
    """
    require_columns(table, EVENT_COLUMNS, name)
    events = with_patient_ids(table)
    n_no_id = len(table) - len(events)
    if n_no_id:
        logger.debug(f"{name}: dropped {n_no_id:,} rows without patient_id")

    if "index_date" not in events.columns:
        if patient_index is None:
            raise SourceSchemaError(f"{name} has no index_date and no patient index was given")
        require_columns(patient_index, ["patient_id", "index_date"], "patient index")
        index = with_patient_ids(patient_index[["patient_id", "index_date"]].drop_duplicates())
        index["index_date"] = to_calendar_dates(index["index_date"], dayfirst, date_format)
        events = events.merge(index, on="patient_id", how="inner", validate="many_to_many")
    else:
        events["index_date"] = to_calendar_dates(events["index_date"], dayfirst, date_format)

    events["event_date"] = to_calendar_dates(events["event_date"], dayfirst, date_format)

    valid = events["event_date"].notna() & events["index_date"].notna()
    n_dropped = int((~valid).sum())
    if n_dropped:
        logger.debug(f"{name}: dropped {n_dropped:,} rows with missing or unparseable dates")

    return events[valid].reset_index(drop=True)
