"""Tests for hit normalization and event preparation."""

import pytest
import pandas as pd
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from ihd_cohort.processing.events import SourceSchemaError, prepare_events
from ihd_cohort.processing.normalization import (
    HIT_COLUMNS,
    deduplicate_hits,
    empty_hits,
    normalize_keys,
    to_hit_table,
)


class TestHitTable:
    """Test hit table construction."""

    def test_empty_hits_schema(self):
        """Empty hit tables still carry the hit columns."""
        assert empty_hits().columns.tolist() == HIT_COLUMNS

    def test_to_hit_table_renames_event_date(self):
        """event_date becomes date_criterion with constant flag 1."""
        rows = pd.DataFrame({
            'patient_id': [7],
            'index_date': [pd.Timestamp('2020-01-01')],
            'event_date': [pd.Timestamp('2020-01-05')],
            'extra': ['dropped'],
        })

        hits = to_hit_table(rows)

        assert hits.columns.tolist() == HIT_COLUMNS
        assert hits.loc[0, 'patient_id'] == '7'
        assert hits.loc[0, 'date_criterion'] == pd.Timestamp('2020-01-05')
        assert hits.loc[0, 'flag'] == 1

    def test_deduplicate_on_custom_keys(self):
        """Flag can be part of the hit identity."""
        hits = pd.DataFrame({
            'patient_id': ['1', '1', '1'],
            'index_date': [pd.Timestamp('2020-01-01')] * 3,
            'date_criterion': [pd.Timestamp('2020-01-02')] * 3,
            'flag': [1, 0, 1],
        })

        assert len(deduplicate_hits(hits)) == 1
        assert len(deduplicate_hits(hits, keys=['patient_id', 'index_date', 'date_criterion', 'flag'])) == 2


class TestPrepareEvents:
    """Test event table preparation."""

    def test_unparseable_dates_dropped(self):
        """Rows with garbage dates are excluded silently."""
        table = pd.DataFrame({
            'patient_id': ['1', '2'],
            'index_date': ['2020-01-01', '2020-01-01'],
            'event_date': ['2020-01-02', 'unknown'],
        })

        events = prepare_events(table)

        assert events['patient_id'].tolist() == ['1']

    def test_multiple_index_dates_expand(self):
        """A patient with two index dates gets one event row per index date."""
        table = pd.DataFrame({'patient_id': ['1'], 'event_date': ['2020-06-01']})
        patient_index = pd.DataFrame({
            'patient_id': ['1', '1'],
            'index_date': ['2020-01-01', '2020-05-01'],
        })

        events = prepare_events(table, patient_index)

        assert len(events) == 2

    def test_no_index_date_and_no_patient_index_raises(self):
        """index_date must come from somewhere."""
        table = pd.DataFrame({'patient_id': ['1'], 'event_date': ['2020-06-01']})

        with pytest.raises(SourceSchemaError):
            prepare_events(table)

    def test_missing_event_date_raises(self):
        """event_date is required."""
        with pytest.raises(KeyError):
            prepare_events(pd.DataFrame({'patient_id': ['1'], 'index_date': ['2020-01-01']}))


class TestMissingPatientIds:
    """Rows without a patient_id never form a patient."""

    def test_prepare_events_drops_missing_ids(self):
        """Missing ids are dropped, not turned into 'nan'."""
        table = pd.DataFrame({
            'patient_id': ['1', None, float('nan')],
            'index_date': ['2020-01-01'] * 3,
            'event_date': ['2020-01-02'] * 3,
        })

        events = prepare_events(table)

        assert events['patient_id'].tolist() == ['1']

    def test_patient_index_missing_ids_not_joined(self):
        """A patient index row without id does not match event rows."""
        table = pd.DataFrame({'patient_id': ['1', None], 'event_date': ['2020-01-02', '2020-01-02']})
        patient_index = pd.DataFrame({'patient_id': ['1', None], 'index_date': ['2020-01-01', '2020-01-01']})

        events = prepare_events(table, patient_index)

        assert events['patient_id'].tolist() == ['1']

    def test_normalize_keys_drops_missing_ids(self):
        """Join keys never contain a missing patient_id."""
        df = pd.DataFrame({'patient_id': ['1', None], 'index_date': ['2020-01-01', '2020-01-01']})

        assert normalize_keys(df)['patient_id'].tolist() == ['1']

    def test_to_hit_table_skips_missing_ids(self):
        """Hits require a patient_id."""
        rows = pd.DataFrame({
            'patient_id': [None],
            'index_date': [pd.Timestamp('2020-01-01')],
            'event_date': [pd.Timestamp('2020-01-05')],
        })

        assert to_hit_table(rows).empty
