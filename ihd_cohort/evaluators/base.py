"""
Criterion Evaluator Base
========================

Shared scan -> window -> flag -> deduplicate flow for all criteria.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import pandas as pd

from ihd_cohort.processing.normalization import (
    HIT_KEYS,
    deduplicate_hits,
    empty_hits,
    to_hit_table,
)
from ihd_cohort.processing.events import SourceSchemaError, prepare_events, require_columns
from ihd_cohort.processing.temporal_window import DEFAULT_WINDOW, TemporalWindow, window_mask

logger = logging.getLogger(__name__)


@dataclass
class EvaluationResult:
    """Output of one evaluator run."""

    label: str
    source: str
    hits: pd.DataFrame = field(default_factory=empty_hits)
    warnings: List[str] = field(default_factory=list)
    n_source_rows: int = 0
    n_matched_rows: int = 0

    @property
    def n_patients(self) -> int:
        if self.hits.empty:
            return 0
        return len(self.hits[["patient_id", "index_date"]].drop_duplicates())


class CriterionEvaluator:
    """Base class for IHD criterion evaluators.

    Subclasses implement `match` (row selection) and may override `flag`
    (per-row flag) and `dedup_keys`.
    """

    kind: str = ""
    dedup_keys = HIT_KEYS

    def __init__(self, label: str, source: str, window: TemporalWindow = DEFAULT_WINDOW):
        self.label = label
        self.source = source
        self.window = window
        self.config_warnings: List[str] = []

    def match(self, events: pd.DataFrame, warnings: List[str]) -> pd.DataFrame:
        """Select candidate rows; append configuration warnings to `warnings`."""
        raise NotImplementedError

    def flag(self, rows: pd.DataFrame) -> pd.Series:
        return pd.Series(1, index=rows.index, dtype="int64")

    def warn(self, warnings: List[str], message: str):
        message = f"{self.label}: {message}"
        logger.warning(message)
        warnings.append(message)

    def evaluate(
        self,
        table: pd.DataFrame,
        patient_index: Optional[pd.DataFrame] = None,
        dayfirst: bool = False,
        date_format: Optional[str] = None,
    ) -> EvaluationResult:
        """
        Scan a source table and emit deduplicated criterion hits.

        Args:
            table: Raw source table
            patient_index: Patient index, used when the table has no index_date
            dayfirst: Read ambiguous dates in the table day first
            date_format: Explicit date format of the table

        Returns:
            EvaluationResult with the hit table and any warnings
        """
        result = EvaluationResult(label=self.label, source=self.source)
        result.warnings.extend(self.config_warnings)
        events = prepare_events(
            table,
            patient_index,
            name=f"{self.label} ({self.source})",
            dayfirst=dayfirst,
            date_format=date_format,
        )
        result.n_source_rows = len(events)

        matched = self.match(events, result.warnings)
        result.n_matched_rows = len(matched)

        windowed = matched[window_mask(matched["event_date"], matched["index_date"], self.window)].copy()
        windowed["flag"] = self.flag(windowed)
        flagged = windowed[windowed["flag"] == 1]

        result.hits = deduplicate_hits(to_hit_table(flagged, flag_column="flag"), keys=self.dedup_keys)

        logger.info(
            f"{self.label}: {result.n_matched_rows:,} matching rows, "
            f"{len(result.hits):,} hits, {result.n_patients:,} patients"
        )
        return result
