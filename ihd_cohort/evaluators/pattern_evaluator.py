"""Code and free-text pattern criteria (diagnoses, DBC, discharge letters)."""
import logging
import re
from typing import List, Sequence, Tuple

import pandas as pd

from ihd_cohort.config.cohort_config import (
    CODE_PATTERN,
    TEXT_PATTERN,
    CriteriaConfigurationError,
    PatternRule,
)
from ihd_cohort.evaluators.base import CriterionEvaluator, require_columns
from ihd_cohort.processing.temporal_window import DEFAULT_WINDOW, TemporalWindow

logger = logging.getLogger(__name__)

CODE_SEPARATORS = re.compile(r"[\s.]")


def compile_pattern(pattern: str, label: str) -> re.Pattern:
    """Compile a case-insensitive criterion pattern."""
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        raise CriteriaConfigurationError(f"{label}: invalid pattern {pattern!r}: {e}") from e


def as_text(values: pd.Series) -> pd.Series:
    """Object-dtype strings, missing values kept as None."""
    return values.astype(object).map(lambda v: str(v) if pd.notna(v) else None)


def normalize_code(values: pd.Series) -> pd.Series:
    """Uppercase codes and drop dots and whitespace (I21.9 -> I219)."""
    return as_text(values).map(lambda v: CODE_SEPARATORS.sub("", v.upper()) if v is not None else None)


class PatternEvaluator(CriterionEvaluator):
    """Select rows where any (field, pattern) rule matches."""

    def __init__(
        self,
        label: str,
        source: str,
        rules: Sequence[PatternRule],
        window: TemporalWindow = DEFAULT_WINDOW,
    ):
        super().__init__(label, source, window)
        if not rules:
            raise CriteriaConfigurationError(f"{label}: no pattern rules configured")
        self.rules: Tuple[PatternRule, ...] = tuple(rules)
        self._compiled = [(rule, compile_pattern(rule.pattern, label)) for rule in self.rules]

    @property
    def fields(self) -> List[str]:
        return sorted({rule.field for rule in self.rules})

    def prepare_field(self, values: pd.Series) -> pd.Series:
        return as_text(values)

    def match(self, events: pd.DataFrame, warnings: List[str]) -> pd.DataFrame:
        require_columns(events, self.fields, f"{self.label} ({self.source})")

        prepared = {f: self.prepare_field(events[f]) for f in self.fields}
        selected = pd.Series(False, index=events.index)
        for rule, pattern in self._compiled:
            hit = prepared[rule.field].map(lambda v, p=pattern: v is not None and p.search(v) is not None).astype(bool)
            if not events.empty and not hit.any():
                self.warn(warnings, f"pattern {rule.pattern!r} on field '{rule.field}' matched no rows")
            selected |= hit

        return events[selected]


class CodePatternEvaluator(PatternEvaluator):
    """Pattern rules over normalized code fields (ICD-10, DBC codes)."""

    kind = CODE_PATTERN

    def prepare_field(self, values: pd.Series) -> pd.Series:
        return normalize_code(values)


class TextPatternEvaluator(PatternEvaluator):
    """Pattern rules over free-text description fields."""

    kind = TEXT_PATTERN
