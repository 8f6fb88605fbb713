"""
Cohort Aggregator
=================

Unions the per-criterion hit streams into one cohort membership table and
attaches demographics and activity covariates.

Joins are keyed on (patient_id, index_date). Duplicate keys on either side
produce a cross-product which is kept as is, so that duplicated source rows
stay visible in cohort sizes instead of being collapsed silently. Patients
without activity in a source get a missing covariate, never zero.
"""

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ihd_cohort.processing.events import require_columns
from ihd_cohort.processing.normalization import JOIN_KEYS, normalize_keys
from ihd_cohort.processing.temporal_window import to_calendar_dates

logger = logging.getLogger(__name__)

DEMOGRAPHIC_COLUMNS = ["age", "gender", "index_creation_date"]
MEMBERSHIP_COLUMNS = JOIN_KEYS + ["cohort_label", "date_criterion", "n_events"]

HitStream = Tuple[str, pd.DataFrame]
ActivityTable = Tuple[str, pd.DataFrame]


def stamp_cohort(label: str, hits: pd.DataFrame) -> pd.DataFrame:
    """
    Reduce one hit stream to a row per (patient_id, index_date) and label it.

    Args:
        label: Cohort label of the originating criterion
        hits: Hit table (patient_id, index_date, date_criterion, flag)

    Returns:
        DataFrame with MEMBERSHIP_COLUMNS; date_criterion is the first hit
        in the window and n_events the number of hits
    """
    if hits.empty:
        return pd.DataFrame({
            "patient_id": pd.Series(dtype="object"),
            "index_date": pd.Series(dtype="datetime64[ns]"),
            "cohort_label": pd.Series(dtype="object"),
            "date_criterion": pd.Series(dtype="datetime64[ns]"),
            "n_events": pd.Series(dtype="int64"),
        })

    keyed = normalize_keys(hits)
    stamped = (
        keyed.groupby(JOIN_KEYS, sort=True)
        .agg(date_criterion=("date_criterion", "min"), n_events=("date_criterion", "size"))
        .reset_index()
    )
    stamped["cohort_label"] = label
    stamped["n_events"] = stamped["n_events"].astype("int64")
    return stamped[MEMBERSHIP_COLUMNS]


def _warn_duplicate_keys(df: pd.DataFrame, name: str):
    n_duplicated = int(df.duplicated(subset=JOIN_KEYS).sum())
    if n_duplicated:
        logger.warning(
            f"{name}: {n_duplicated:,} duplicate (patient_id, index_date) rows; "
            f"joined rows are multiplied accordingly"
        )


def prepare_patient_index(
    patient_index: pd.DataFrame,
    dayfirst: bool = False,
    date_format: Optional[str] = None,
) -> pd.DataFrame:
    """
    Normalize keys and demographics of the patient index.

    Idempotent: already parsed dates and ages pass through unchanged.

    Args:
        patient_index: Raw patient index
        dayfirst: Read ambiguous dates day first
        date_format: Explicit date format of the index extract

    Returns:
        Copy with string patient_id, calendar-day dates and Int64 age
    """
    require_columns(patient_index, JOIN_KEYS, "patient index")
    index = normalize_keys(patient_index, dayfirst, date_format)
    if "index_creation_date" in index.columns:
        index["index_creation_date"] = to_calendar_dates(
            index["index_creation_date"], dayfirst, date_format
        )
    if "age" in index.columns:
        age = pd.to_numeric(index["age"], errors="coerce").astype("float64")
        index["age"] = np.floor(age).astype("Int64")
    return index


def join_patient_index(membership: pd.DataFrame, patient_index: pd.DataFrame) -> pd.DataFrame:
    """Left-join demographics on (patient_id, index_date), many-to-many."""
    index = prepare_patient_index(patient_index)
    demographic = [c for c in DEMOGRAPHIC_COLUMNS if c in index.columns]
    index = index[JOIN_KEYS + demographic]
    _warn_duplicate_keys(index, "patient index")

    result = membership.merge(index, on=JOIN_KEYS, how="left", validate="many_to_many")

    for col in DEMOGRAPHIC_COLUMNS:
        if col not in result.columns:
            result[col] = pd.NA
    return result


def join_activity(membership: pd.DataFrame, name: str, activity: pd.DataFrame) -> pd.DataFrame:
    """Left-join one activity covariate; no activity stays missing."""
    counts = normalize_keys(activity)
    if name not in counts.columns:
        value_columns = [c for c in counts.columns if c not in JOIN_KEYS]
        if len(value_columns) != 1:
            raise ValueError(f"Activity table '{name}' must have exactly one count column")
        counts = counts.rename(columns={value_columns[0]: name})
    _warn_duplicate_keys(counts, f"activity {name}")

    result = membership.merge(counts[JOIN_KEYS + [name]], on=JOIN_KEYS, how="left", validate="many_to_many")
    result[name] = result[name].astype("Int64")
    return result


def aggregate(
    hit_streams: Sequence[HitStream],
    patient_index: Optional[pd.DataFrame] = None,
    activity_summaries: Sequence[ActivityTable] = (),
) -> pd.DataFrame:
    """
    Build the unified cohort membership table.

    Args:
        hit_streams: (cohort_label, hit table) pairs; not deduplicated across cohorts
        patient_index: Patient index with patient_id, index_date and demographics
        activity_summaries: (covariate name, count table) pairs

    Returns:
        One row per (patient_id, index_date, cohort_label) with demographics
        and one column per activity covariate
    """
    stamped = [stamp_cohort(label, hits) for label, hits in hit_streams]
    stamped = [s for s in stamped if not s.empty]
    if stamped:
        membership = pd.concat(stamped, ignore_index=True)
    else:
        membership = stamp_cohort("", pd.DataFrame())

    if patient_index is not None:
        membership = join_patient_index(membership, patient_index)
    else:
        for col in DEMOGRAPHIC_COLUMNS:
            membership[col] = pd.NA

    covariates: List[str] = []
    for name, activity in activity_summaries:
        membership = join_activity(membership, name, activity)
        covariates.append(name)

    output_cols = MEMBERSHIP_COLUMNS + DEMOGRAPHIC_COLUMNS + covariates
    membership = membership[output_cols].sort_values(
        ["cohort_label"] + JOIN_KEYS, kind="mergesort"
    ).reset_index(drop=True)

    logger.info(
        f"Aggregated {len(membership):,} cohort rows across "
        f"{membership['cohort_label'].nunique()} cohorts"
    )
    return membership
