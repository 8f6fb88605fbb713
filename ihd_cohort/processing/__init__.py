"""Shared table processing: temporal window, parsing, hits, aggregation."""
