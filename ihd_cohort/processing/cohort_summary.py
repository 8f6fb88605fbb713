"""Per-cohort descriptive statistics and set overlap."""
from typing import Optional, Sequence
import numpy as np
import pandas as pd
from ihd_cohort.processing.normalization import JOIN_KEYS


def summarize_cohorts(
    membership: pd.DataFrame,
    covariates: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """Descriptive statistics per cohort label.

    Args:
        membership: Unified cohort membership table
        covariates: Activity covariate columns to describe

    Returns:
        DataFrame indexed by cohort_label with patient counts, age
        statistics, gender proportions and per-covariate median and
        fraction missing
    """
    covariates = list(covariates or [])
    rows = []
    for label, group in membership.groupby("cohort_label", sort=True):
        row = {
            "cohort_label": label,
            "n_patients": len(group[JOIN_KEYS].drop_duplicates()),
            "n_rows": len(group),
        }

        age = pd.to_numeric(group["age"], errors="coerce").astype("float64")
        row["age_mean"] = age.mean()
        row["age_sd"] = age.std()
        row["age_median"] = age.median()

        gender = group["gender"].dropna().astype(str)
        if len(gender):
            for value, share in gender.value_counts(normalize=True).sort_index().items():
                row[f"gender_{value}"] = share

        for cov in covariates:
            values = group[cov].astype("Float64")
            row[f"{cov}_median"] = values.median() if values.notna().any() else np.nan
            row[f"{cov}_missing"] = values.isna().mean()

        rows.append(row)

    if not rows:
        return pd.DataFrame(columns=["n_patients", "n_rows"]).rename_axis("cohort_label")

    summary = pd.DataFrame(rows).set_index("cohort_label")
    gender_cols = [c for c in summary.columns if c.startswith("gender_")]
    if gender_cols:
        summary[gender_cols] = summary[gender_cols].fillna(0.0)
    return summary


def membership_matrix(membership: pd.DataFrame) -> pd.DataFrame:
    """One row per (patient_id, index_date), one boolean column per cohort."""
    keys = membership[JOIN_KEYS + ["cohort_label"]].drop_duplicates()
    if keys.empty:
        return pd.DataFrame(columns=JOIN_KEYS)

    matrix = pd.crosstab([keys["patient_id"], keys["index_date"]], keys["cohort_label"]) > 0
    matrix.columns.name = None
    return matrix.reset_index()


def cohort_overlap(membership: pd.DataFrame) -> pd.DataFrame:
    """Shared (patient_id, index_date) pairs for every pair of cohorts.

    The diagonal holds each cohort's size.
    """
    matrix = membership_matrix(membership)
    labels = [c for c in matrix.columns if c not in JOIN_KEYS]
    flags = matrix[labels].astype("int64")
    overlap = flags.T.dot(flags)
    overlap.index.name = "cohort_label"
    return overlap
