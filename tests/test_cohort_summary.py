"""Tests for cohort summary statistics and overlap."""

import pytest
import pandas as pd
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from ihd_cohort.processing.cohort_summary import cohort_overlap, membership_matrix, summarize_cohorts


@pytest.fixture
def membership():
    """Patient 1 in both cohorts, patient 2 in diagnosis only."""
    return pd.DataFrame({
        'patient_id': ['1', '2', '1'],
        'index_date': pd.to_datetime(['2020-01-01'] * 3),
        'cohort_label': ['diagnosis_icd10', 'diagnosis_icd10', 'troponin'],
        'date_criterion': pd.to_datetime(['2020-02-01'] * 3),
        'n_events': [1, 2, 1],
        'age': pd.array([60, 70, 60], dtype='Int64'),
        'gender': ['M', 'F', 'M'],
        'index_creation_date': pd.to_datetime(['2019-12-31'] * 3),
        'n_lab_panels': pd.array([4, pd.NA, 4], dtype='Int64'),
    })


class TestSummarizeCohorts:
    """Test per-cohort statistics."""

    def test_counts_and_age(self, membership):
        """Patient counts and age statistics per label."""
        summary = summarize_cohorts(membership, ['n_lab_panels'])

        assert summary.loc['diagnosis_icd10', 'n_patients'] == 2
        assert summary.loc['diagnosis_icd10', 'age_mean'] == 65.0
        assert summary.loc['troponin', 'n_patients'] == 1

    def test_gender_proportions(self, membership):
        """Absent gender values are 0, not missing."""
        summary = summarize_cohorts(membership)

        assert summary.loc['diagnosis_icd10', 'gender_F'] == 0.5
        assert summary.loc['troponin', 'gender_F'] == 0.0

    def test_covariate_missingness(self, membership):
        """Missing covariates are reported as a fraction."""
        summary = summarize_cohorts(membership, ['n_lab_panels'])

        assert summary.loc['diagnosis_icd10', 'n_lab_panels_missing'] == 0.5
        assert summary.loc['diagnosis_icd10', 'n_lab_panels_median'] == 4.0


class TestOverlap:
    """Test cohort overlap."""

    def test_membership_matrix(self, membership):
        """One row per patient-index pair, one flag per cohort."""
        matrix = membership_matrix(membership).set_index('patient_id')

        assert bool(matrix.loc['1', 'troponin']) is True
        assert bool(matrix.loc['2', 'troponin']) is False

    def test_overlap_diagonal_is_cohort_size(self, membership):
        """Diagonal holds sizes, off-diagonal the shared pairs."""
        overlap = cohort_overlap(membership)

        assert overlap.loc['diagnosis_icd10', 'diagnosis_icd10'] == 2
        assert overlap.loc['troponin', 'troponin'] == 1
        assert overlap.loc['diagnosis_icd10', 'troponin'] == 1
