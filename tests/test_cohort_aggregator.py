"""Tests for cohort aggregation."""

import pandas as pd
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from ihd_cohort.processing.cohort_aggregator import (
    MEMBERSHIP_COLUMNS,
    aggregate,
    prepare_patient_index,
    stamp_cohort,
)


def make_hits(patient_ids, dates, index_date='2020-01-01'):
    """Hit table for the given patients."""
    return pd.DataFrame({
        'patient_id': patient_ids,
        'index_date': pd.to_datetime([index_date] * len(patient_ids)),
        'date_criterion': pd.to_datetime(dates),
        'flag': [1] * len(patient_ids),
    })


def make_index(patient_ids, ages):
    """Patient index with demographics."""
    return pd.DataFrame({
        'patient_id': patient_ids,
        'index_date': ['2020-01-01'] * len(patient_ids),
        'age': ages,
        'gender': ['M'] * len(patient_ids),
        'index_creation_date': ['2019-12-31'] * len(patient_ids),
    })


class TestStampCohort:
    """Test per-cohort reduction."""

    def test_first_hit_and_event_count(self):
        """Several hits collapse to the earliest date with a count."""
        stamped = stamp_cohort('troponin', make_hits(['1', '1'], ['2020-03-01', '2020-02-01']))

        assert stamped.columns.tolist() == MEMBERSHIP_COLUMNS
        assert len(stamped) == 1
        assert stamped.loc[0, 'date_criterion'] == pd.Timestamp('2020-02-01')
        assert stamped.loc[0, 'n_events'] == 2


class TestAggregate:
    """Test the unified membership table."""

    def test_one_row_per_cohort_label(self):
        """A patient in two cohorts appears twice, once per label."""
        streams = [
            ('diagnosis_icd10', make_hits(['1'], ['2020-02-01'])),
            ('troponin', make_hits(['1'], ['2020-02-03'])),
        ]

        membership = aggregate(streams, make_index(['1'], ['64']))

        assert len(membership) == 2
        assert sorted(membership['cohort_label']) == ['diagnosis_icd10', 'troponin']
        assert membership['age'].tolist() == [64, 64]

    def test_no_lab_activity_is_missing_not_zero(self):
        """Patients without lab activity get <NA>."""
        streams = [('diagnosis_icd10', make_hits(['1', '2'], ['2020-02-01', '2020-02-01']))]
        activity = pd.DataFrame({
            'patient_id': ['1'],
            'index_date': pd.to_datetime(['2020-01-01']),
            'n_lab_panels': pd.array([5], dtype='Int64'),
        })

        membership = aggregate(streams, make_index(['1', '2'], ['60', '70']), [('n_lab_panels', activity)])
        counts = membership.set_index('patient_id')['n_lab_panels']

        assert counts['1'] == 5
        assert pd.isna(counts['2'])

    def test_missing_patient_index_row_gives_missing_demographics(self):
        """Hits survive without a patient index row."""
        streams = [('diagnosis_icd10', make_hits(['9'], ['2020-02-01']))]

        membership = aggregate(streams, make_index(['1'], ['60']))

        assert len(membership) == 1
        assert pd.isna(membership.loc[0, 'age'])

    def test_duplicate_index_rows_multiply(self):
        """Many-to-many joins keep duplicated patient index rows visible."""
        streams = [('diagnosis_icd10', make_hits(['1'], ['2020-02-01']))]
        index = pd.concat([make_index(['1'], ['60']), make_index(['1'], ['60'])], ignore_index=True)

        membership = aggregate(streams, index)

        assert len(membership) == 2

    def test_empty_streams(self):
        """No hits gives an empty table with the output columns."""
        membership = aggregate([('troponin', make_hits([], []))])

        assert membership.empty
        assert 'cohort_label' in membership.columns


class TestPatientIndex:
    """Test patient index preparation."""

    def test_fractional_age_floored(self):
        """Ages in decimal years become completed years."""
        index = make_index(['1', '2'], ['64.7', 'unknown'])

        prepared = prepare_patient_index(index)

        assert prepared.loc[0, 'age'] == 64
        assert pd.isna(prepared.loc[1, 'age'])

    def test_dayfirst_index_dates(self):
        """Day-first index extracts parse consistently."""
        index = make_index(['1', '2'], ['60', '70'])
        index['index_date'] = ['01-03-2020', '13-03-2020']

        prepared = prepare_patient_index(index, dayfirst=True)

        assert prepared['index_date'].tolist() == [pd.Timestamp('2020-03-01'), pd.Timestamp('2020-03-13')]
