"""
Fuzzy subsequence matching for free-text attribute search.

The query's characters must appear in the target in the same order, with
anything in between (line breaks included), case-insensitively: "alcSm"
matches "Alice Smith".
"""

import re

from certindex.core.predicates import PatternMatch, compile_pattern

# Placed between query characters
_GAP = ".*"


def fuzzy_pattern(text: str) -> str:
    """Build the subsequence pattern for ``text``.

    Every character is escaped on its own before joining, so regex
    metacharacters in user input are always literal.

    Examples:
        "ab"  -> "a.*b"
        "a.b" -> "a.*\\..*b"
        ""    -> ""  (matches everything)
    """
    return _GAP.join(re.escape(char) for char in text)


def fuzzy_clause(field: str, text: str) -> PatternMatch:
    """Case-insensitive fuzzy clause on a document field."""
    return PatternMatch(field=field, pattern=fuzzy_pattern(text), ignore_case=True)


def fuzzy_matches(text: str, target: str) -> bool:
    """True when ``text`` is a case-insensitive subsequence of ``target``."""
    return compile_pattern(fuzzy_pattern(text), True).search(target) is not None
