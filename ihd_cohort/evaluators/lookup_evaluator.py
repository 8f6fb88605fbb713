"""Procedure code allow-list criteria."""
import logging
from typing import FrozenSet, Iterable, List, Optional

import pandas as pd

from ihd_cohort.config.cohort_config import LOOKUP, CriteriaConfigurationError
from ihd_cohort.evaluators.base import CriterionEvaluator, require_columns
from ihd_cohort.evaluators.pattern_evaluator import as_text
from ihd_cohort.processing.temporal_window import DEFAULT_WINDOW, TemporalWindow

logger = logging.getLogger(__name__)

REFERENCE_COLUMNS = ["code", "category"]


def normalize_procedure_code(values: pd.Series) -> pd.Series:
    """Strip and uppercase procedure codes."""
    return as_text(values).map(lambda v: v.strip().upper() if v is not None else None)


def build_allow_list(
    reference: pd.DataFrame,
    excluded_categories: Iterable[str],
    label: str = "procedure",
    warnings: Optional[List[str]] = None,
) -> FrozenSet[str]:
    """Build the procedure allow-list from a (code, category) reference.

    Rows in an excluded category are removed first; the remaining codes form
    the allow-list. A code listed under both an excluded and a kept category
    is a configuration error.

    Args:
        reference: Reference list with code and category columns
        excluded_categories: Category labels to exclude (case-insensitive)
        label: Criterion label for messages
        warnings: Optional list collecting configuration warnings

    Returns:
        Frozen set of normalized allowed codes
    """
    require_columns(reference, REFERENCE_COLUMNS, "procedure reference")

    codes = normalize_procedure_code(reference["code"])
    categories = as_text(reference["category"]).map(
        lambda v: v.strip().lower() if v is not None else None
    )
    excluded = {c.strip().lower() for c in excluded_categories}

    unknown = sorted(excluded - set(categories.dropna()))
    if unknown:
        message = f"{label}: excluded categories not in reference list: {unknown}"
        logger.warning(message)
        if warnings is not None:
            warnings.append(message)

    is_excluded = categories.isin(excluded)
    excluded_codes = set(codes[is_excluded].dropna())
    kept_codes = set(codes[~is_excluded].dropna())

    conflicts = sorted(excluded_codes & kept_codes)
    if conflicts:
        raise CriteriaConfigurationError(
            f"{label}: codes listed under both excluded and included categories: {conflicts}"
        )

    return frozenset(kept_codes)


class LookupEvaluator(CriterionEvaluator):
    """Keep source rows whose code is on the allow-list."""

    kind = LOOKUP

    def __init__(
        self,
        label: str,
        source: str,
        reference: pd.DataFrame,
        excluded_categories: Iterable[str] = (),
        code_field: str = "procedure_code",
        window: TemporalWindow = DEFAULT_WINDOW,
    ):
        super().__init__(label, source, window)
        self.code_field = code_field
        self.excluded_categories = tuple(excluded_categories)
        self.allow_list = build_allow_list(
            reference, self.excluded_categories, label, warnings=self.config_warnings
        )
        logger.info(f"{label}: allow-list of {len(self.allow_list):,} codes")

    def match(self, events: pd.DataFrame, warnings: List[str]) -> pd.DataFrame:
        require_columns(events, [self.code_field], f"{self.label} ({self.source})")

        allowed = normalize_procedure_code(events[self.code_field]).isin(list(self.allow_list))
        if not events.empty and not allowed.any():
            self.warn(warnings, f"no {self.code_field} values on the allow-list")
        return events[allowed.astype(bool)]
