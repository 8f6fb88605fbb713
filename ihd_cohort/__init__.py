"""IHD cohort selection from longitudinal EHR extracts."""

__version__ = "0.1.0"
