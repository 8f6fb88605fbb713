"""Tests for criteria configuration loading."""

import pytest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from ihd_cohort.config.cohort_config import (
    CriteriaConfigurationError,
    ensure_directories,
    load_criteria,
    parse_criteria,
)
from ihd_cohort.processing.temporal_window import TemporalWindow


class TestBundledCriteria:
    """Test the shipped criteria.yaml."""

    def test_loads(self):
        """Bundled criteria parse into a versioned config."""
        config = load_criteria()

        assert config.version
        assert config.window == TemporalWindow(-1, 365)
        assert set(config.labels) >= {'diagnosis_icd10', 'troponin', 'ckmb', 'procedure'}

    def test_threshold_cutoffs(self):
        """Troponin and CKMB cutoffs are explicit."""
        criteria = {c.label: c for c in load_criteria().criteria}

        assert criteria['troponin'].cutoff == 45.0
        assert criteria['troponin'].allow_decimal is False
        assert criteria['ckmb'].cutoff == 8.0

    def test_procedure_exclusions(self):
        """Cardioversion is excluded from the procedure criterion."""
        criteria = {c.label: c for c in load_criteria().criteria}

        assert 'cardioversie' in criteria['procedure'].excluded_categories

    def test_sources_and_activity(self):
        """Every activity covariate refers to a configured source."""
        config = load_criteria()

        for activity in config.activity:
            assert activity.source in config.sources
        assert 'patient_index' in config.sources


class TestInvalidCriteria:
    """Test configuration validation."""

    def test_missing_version(self):
        """Criteria sets must be versioned."""
        with pytest.raises(CriteriaConfigurationError):
            parse_criteria({'criteria': []})

    def test_unknown_kind(self):
        """Only the four criterion kinds exist."""
        raw = {'version': '1', 'criteria': [{'label': 'x', 'kind': 'fuzzy', 'source': 'labs'}]}

        with pytest.raises(CriteriaConfigurationError):
            parse_criteria(raw)

    def test_threshold_without_cutoff(self):
        """Threshold criteria need a cutoff."""
        raw = {'version': '1', 'criteria': [
            {'label': 'troponin', 'kind': 'threshold', 'source': 'labs', 'test_pattern': 'trop'},
        ]}

        with pytest.raises(CriteriaConfigurationError):
            parse_criteria(raw)

    def test_pattern_without_rules(self):
        """Pattern criteria need at least one rule."""
        raw = {'version': '1', 'criteria': [{'label': 'dbc', 'kind': 'text_pattern', 'source': 'dbc'}]}

        with pytest.raises(CriteriaConfigurationError):
            parse_criteria(raw)

    def test_duplicate_labels(self):
        """Labels identify cohorts and must be unique."""
        rule = {'rules': [{'field': 'description', 'pattern': 'angina'}]}
        raw = {'version': '1', 'criteria': [
            {'label': 'dx', 'kind': 'text_pattern', 'source': 'diagnoses', **rule},
            {'label': 'dx', 'kind': 'text_pattern', 'source': 'diagnoses', **rule},
        ]}

        with pytest.raises(CriteriaConfigurationError):
            parse_criteria(raw)

    def test_configuration_error_is_value_error(self):
        """Callers can catch ValueError."""
        assert issubclass(CriteriaConfigurationError, ValueError)


class TestEnsureDirectories:
    """Test output directory creation."""

    def test_creates_hits_dir(self, tmp_path):
        """Output and hits directories are created."""
        ensure_directories(tmp_path / "out")

        assert (tmp_path / "out" / "hits").is_dir()


class TestSourceDateOptions:
    """Test date parsing options of sources."""

    def test_bundled_sources_are_dayfirst(self):
        """Dutch extracts are configured day first."""
        sources = load_criteria().sources

        assert sources['diagnoses'].dayfirst is True
        assert sources['patient_index'].dayfirst is True

    def test_explicit_date_format(self):
        """A source can pin its date format."""
        raw = {'version': '1', 'sources': {
            'labs': {'filename': 'labs.txt', 'date_format': '%d-%m-%Y %H:%M'},
        }}

        labs = parse_criteria(raw).sources['labs']

        assert labs.date_format == '%d-%m-%Y %H:%M'
        assert labs.dayfirst is False
