"""
Predicate tree handed from IdentityIndex to a RecordStore.

Query methods build these explicitly; each store either evaluates them
in-process (``evaluate``) or translates them into its own query language.

Field names are dotted paths into a record document, e.g.
``certificate.fields.name``.
"""

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Mapping, Tuple, Union

MISSING = object()


@dataclass(frozen=True)
class EqualsField:
    """Field value equals ``value`` exactly."""

    field: str
    value: Any


@dataclass(frozen=True)
class MemberOf:
    """Field value is one of ``values``. An empty set matches nothing."""

    field: str
    values: Tuple[Any, ...]

    def __post_init__(self):
        # Accept any iterable but store a hashable tuple
        object.__setattr__(self, "values", tuple(self.values))


@dataclass(frozen=True)
class PatternMatch:
    """Field value (a string) contains a match for ``pattern`` (unanchored search, "." matches newlines)."""

    field: str
    pattern: str
    ignore_case: bool = True


@dataclass(frozen=True)
class And:
    """All clauses hold."""

    clauses: Tuple["Predicate", ...]

    def __post_init__(self):
        object.__setattr__(self, "clauses", tuple(self.clauses))


Predicate = Union[EqualsField, MemberOf, PatternMatch, And]


def all_of(*clauses: Predicate) -> Predicate:
    """Combine clauses, skipping the And wrapper for a single clause."""
    if len(clauses) == 1:
        return clauses[0]
    return And(clauses)


def get_path(doc: Mapping[str, Any], path: str) -> Any:
    """Resolve a dotted path, returning a sentinel when any step is absent."""
    current: Any = doc
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return MISSING
        current = current[part]
    return current


@lru_cache(maxsize=256)
def compile_pattern(pattern: str, ignore_case: bool = True) -> "re.Pattern[str]":
    """Compile with "." spanning newlines, so gaps cross line breaks in multi-line values."""
    flags = re.DOTALL
    if ignore_case:
        flags |= re.IGNORECASE
    return re.compile(pattern, flags)


def evaluate(predicate: Predicate, doc: Mapping[str, Any]) -> bool:
    """Evaluate a predicate against a document in-process.

    Missing fields never match; pattern clauses only match string values.
    """
    if isinstance(predicate, And):
        return all(evaluate(clause, doc) for clause in predicate.clauses)

    value = get_path(doc, predicate.field)
    if value is MISSING:
        return False

    if isinstance(predicate, EqualsField):
        return value == predicate.value
    if isinstance(predicate, MemberOf):
        return value in predicate.values
    if isinstance(predicate, PatternMatch):
        if not isinstance(value, str):
            return False
        return compile_pattern(predicate.pattern, predicate.ignore_case).search(value) is not None

    raise TypeError(f"Unknown predicate: {predicate!r}")


def describe(predicate: Predicate) -> Any:
    """JSON-friendly rendering used for logging."""
    if isinstance(predicate, And):
        return {"and": [describe(c) for c in predicate.clauses]}
    if isinstance(predicate, EqualsField):
        return {predicate.field: predicate.value}
    if isinstance(predicate, MemberOf):
        return {predicate.field: {"in": list(predicate.values)}}
    if isinstance(predicate, PatternMatch):
        return {predicate.field: {"regex": predicate.pattern, "ignore_case": predicate.ignore_case}}
    raise TypeError(f"Unknown predicate: {predicate!r}")
