"""Core abstractions for certindex."""

from certindex.core.identity_index import IdentityIndex
from certindex.core.models import Certificate, IdentityRecord, UTXOReference
from certindex.core.observability import LogEntry, ObservabilityLogger
from certindex.core.predicates import And, EqualsField, MemberOf, PatternMatch
from certindex.core.sqlite_store import SQLiteRecordStore
from certindex.core.store import MemoryRecordStore, RecordStore

__all__ = [
    # Index
    "IdentityIndex",
    # Models
    "Certificate",
    "IdentityRecord",
    "UTXOReference",
    # Predicates
    "And",
    "EqualsField",
    "MemberOf",
    "PatternMatch",
    # Stores
    "RecordStore",
    "MemoryRecordStore",
    "SQLiteRecordStore",
    # Observability
    "ObservabilityLogger",
    "LogEntry",
]
