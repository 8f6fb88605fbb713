"""Criteria configuration."""
