"""Criterion evaluators."""

from typing import Optional

import pandas as pd

from ihd_cohort.config.cohort_config import (
    CODE_PATTERN,
    LOOKUP,
    TEXT_PATTERN,
    THRESHOLD,
    CriteriaConfigurationError,
    CriterionConfig,
)
from ihd_cohort.processing.temporal_window import DEFAULT_WINDOW, TemporalWindow

from .base import CriterionEvaluator, EvaluationResult, SourceSchemaError, prepare_events
from .pattern_evaluator import CodePatternEvaluator, TextPatternEvaluator
from .threshold_evaluator import ThresholdEvaluator
from .lookup_evaluator import LookupEvaluator, build_allow_list


def build_evaluator(
    criterion: CriterionConfig,
    window: TemporalWindow = DEFAULT_WINDOW,
    procedure_reference: Optional[pd.DataFrame] = None,
) -> CriterionEvaluator:
    """Construct the evaluator for one configured criterion."""
    if criterion.kind == CODE_PATTERN:
        return CodePatternEvaluator(criterion.label, criterion.source, criterion.rules, window)
    if criterion.kind == TEXT_PATTERN:
        return TextPatternEvaluator(criterion.label, criterion.source, criterion.rules, window)
    if criterion.kind == THRESHOLD:
        return ThresholdEvaluator(
            criterion.label,
            criterion.source,
            test_pattern=criterion.test_pattern,
            cutoff=criterion.cutoff,
            comparison=criterion.comparison,
            allow_decimal=criterion.allow_decimal,
            test_field=criterion.test_field,
            value_field=criterion.value_field,
            window=window,
        )
    if criterion.kind == LOOKUP:
        if procedure_reference is None:
            raise CriteriaConfigurationError(
                f"{criterion.label}: lookup criterion needs a procedure reference list"
            )
        return LookupEvaluator(
            criterion.label,
            criterion.source,
            reference=procedure_reference,
            excluded_categories=criterion.excluded_categories,
            code_field=criterion.code_field,
            window=window,
        )
    raise CriteriaConfigurationError(f"{criterion.label}: unknown criterion kind {criterion.kind!r}")


__all__ = [
    'CriterionEvaluator',
    'EvaluationResult',
    'SourceSchemaError',
    'prepare_events',
    'CodePatternEvaluator',
    'TextPatternEvaluator',
    'ThresholdEvaluator',
    'LookupEvaluator',
    'build_allow_list',
    'build_evaluator',
]
