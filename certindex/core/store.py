"""
RecordStore - abstract document collection used by IdentityIndex.

A store persists plain dict documents and answers predicate queries
(see ``certindex.core.predicates``). Each operation is atomic on its own;
nothing spans several documents.
"""

import copy
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from certindex.core.predicates import Predicate, evaluate, get_path, MISSING


class RecordStore(ABC):
    """Abstract persistent collection with predicate queries."""

    @abstractmethod
    def insert_one(self, document: Mapping[str, Any]) -> None:
        """Insert a single document."""
        pass

    @abstractmethod
    def delete_one(self, predicate: Predicate) -> int:
        """Delete the first document matching ``predicate``.

        Returns:
            Number of documents deleted (0 or 1)
        """
        pass

    @abstractmethod
    def find(
        self, predicate: Predicate, projection: Optional[Iterable[str]] = None
    ) -> List[Dict[str, Any]]:
        """Return matching documents in insertion order.

        Args:
            predicate: Predicate tree to match
            projection: Top-level keys to return (all keys when None)
        """
        pass

    @abstractmethod
    def create_text_index(self, field: str) -> None:
        """Declare ``field`` as text-indexed.

        Raises:
            StoreError: If the index cannot be created
        """
        pass

    def count(self) -> int:
        """Number of stored documents."""
        raise NotImplementedError


def project(doc: Mapping[str, Any], projection: Optional[Iterable[str]]) -> Dict[str, Any]:
    """Keep only the requested keys (dotted paths allowed)."""
    if projection is None:
        return copy.deepcopy(dict(doc))

    result: Dict[str, Any] = {}
    for path in projection:
        value = get_path(doc, path)
        if value is not MISSING:
            result[path] = copy.deepcopy(value)
    return result


class MemoryRecordStore(RecordStore):
    """In-process store that evaluates predicates directly.

    Useful for tests and for embedding where persistence isn't needed.
    """

    def __init__(self) -> None:
        self._docs: List[Dict[str, Any]] = []
        self._lock = threading.Lock()
        self.text_indexed_fields: Set[str] = set()

    def insert_one(self, document: Mapping[str, Any]) -> None:
        # Deep copy so callers can't mutate stored state
        stored = copy.deepcopy(dict(document))
        with self._lock:
            self._docs.append(stored)

    def delete_one(self, predicate: Predicate) -> int:
        with self._lock:
            for i, doc in enumerate(self._docs):
                if evaluate(predicate, doc):
                    del self._docs[i]
                    return 1
        return 0

    def find(
        self, predicate: Predicate, projection: Optional[Iterable[str]] = None
    ) -> List[Dict[str, Any]]:
        projection = list(projection) if projection is not None else None
        with self._lock:
            snapshot = list(self._docs)
        return [project(doc, projection) for doc in snapshot if evaluate(predicate, doc)]

    def create_text_index(self, field: str) -> None:
        self.text_indexed_fields.add(field)

    def count(self) -> int:
        with self._lock:
            return len(self._docs)
