"""
Lab Threshold Criteria
======================

Troponin and CKMB: test-name pattern plus a numeric cutoff on a text-typed
result column. Results that fail the strict numeric format are excluded
entirely; they are neither positive nor negative.
"""

import logging
import operator
from typing import List

import pandas as pd

from ihd_cohort.config.cohort_config import COMPARISONS, THRESHOLD, CriteriaConfigurationError
from ihd_cohort.evaluators.base import CriterionEvaluator, require_columns
from ihd_cohort.evaluators.pattern_evaluator import as_text, compile_pattern
from ihd_cohort.processing.normalization import HIT_KEYS
from ihd_cohort.processing.temporal_window import DEFAULT_WINDOW, TemporalWindow
from ihd_cohort.processing.value_parser import parse_numeric_results

logger = logging.getLogger(__name__)

COMPARISON_OPERATORS = {
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
}


class ThresholdEvaluator(CriterionEvaluator):
    """Flag lab results beyond a cutoff."""

    kind = THRESHOLD
    dedup_keys = HIT_KEYS + ["flag"]

    def __init__(
        self,
        label: str,
        source: str,
        test_pattern: str,
        cutoff: float,
        comparison: str = ">",
        allow_decimal: bool = True,
        test_field: str = "test_name",
        value_field: str = "result_value",
        window: TemporalWindow = DEFAULT_WINDOW,
    ):
        """
        Initialize evaluator.

        Args:
            label: Cohort label
            source: Source table name
            test_pattern: Case-insensitive pattern on the test name
            cutoff: Numeric cutoff
            comparison: One of >, >=, <, <=
            allow_decimal: Accept decimal results, otherwise integers only
            test_field: Column holding the test name
            value_field: Column holding the raw result text
            window: Temporal window around the index date
        """
        super().__init__(label, source, window)
        if comparison not in COMPARISONS:
            raise CriteriaConfigurationError(f"{label}: unknown comparison {comparison!r}")
        self.test_pattern = test_pattern
        self.cutoff = float(cutoff)
        self.comparison = comparison
        self.allow_decimal = allow_decimal
        self.test_field = test_field
        self.value_field = value_field
        self._test_regex = compile_pattern(test_pattern, label)

    def match(self, events: pd.DataFrame, warnings: List[str]) -> pd.DataFrame:
        require_columns(events, [self.test_field, self.value_field], f"{self.label} ({self.source})")

        is_test = as_text(events[self.test_field]).map(
            lambda v: v is not None and self._test_regex.search(v) is not None
        ).astype(bool)
        if not events.empty and not is_test.any():
            self.warn(warnings, f"test pattern {self.test_pattern!r} matched no rows")

        values = parse_numeric_results(events[self.value_field], self.allow_decimal)
        n_rejected = int((is_test & values.isna()).sum())
        if n_rejected:
            logger.debug(f"{self.label}: {n_rejected:,} results rejected by numeric format")

        matched = events[is_test & values.notna()].copy()
        matched["value"] = values[matched.index]
        return matched

    def flag(self, rows: pd.DataFrame) -> pd.Series:
        compare = COMPARISON_OPERATORS[self.comparison]
        return compare(rows["value"], self.cutoff).astype("int64")
