"""Fuzzy matching used by attribute search."""

from certindex.matching.fuzzy import fuzzy_clause, fuzzy_matches, fuzzy_pattern

__all__ = [
    "fuzzy_pattern",
    "fuzzy_clause",
    "fuzzy_matches",
]
