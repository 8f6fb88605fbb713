"""Source table loading."""

from .source_loader import load_source_table, load_sources

__all__ = ['load_source_table', 'load_sources']
