"""Search: query grammar and fuzzy ranking."""

from .fuzzy import Match, fuzzy_score
from .filter import FilterTerm, ItemProjection, parse_query, filter_items, filter_indexes

__all__ = [
    "Match", "fuzzy_score",
    "FilterTerm", "ItemProjection", "parse_query", "filter_items", "filter_indexes",
]
