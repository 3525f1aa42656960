"""
certindex - lookup storage for identity certificates on transaction outputs

Stores certificate records keyed by (txid, outputIndex) and answers
attribute, identity key, certifier, certificate type and serial number
queries with the output references to resolve.

Core components:
- IdentityIndex: Record lifecycle and the five lookup queries
- RecordStore: Abstract document collection (MemoryRecordStore, SQLiteRecordStore)
- ObservabilityLogger: Phase-based audit log of index operations

Matching:
- fuzzy_pattern: Case-insensitive subsequence pattern for attribute search
"""

__version__ = "0.1.0"

from certindex.core.config import CertIndexConfig, load_config
from certindex.core.factory import build_index
from certindex.core.identity_index import IdentityIndex
from certindex.core.models import Certificate, IdentityRecord, UTXOReference
from certindex.core.observability import LogEntry, ObservabilityLogger
from certindex.core.sqlite_store import SQLiteRecordStore
from certindex.core.store import MemoryRecordStore, RecordStore
from certindex.errors import CertIndexError, ConfigError, StoreError
from certindex.matching import fuzzy_matches, fuzzy_pattern

__all__ = [
    # Core
    "IdentityIndex",
    "Certificate",
    "IdentityRecord",
    "UTXOReference",
    "RecordStore",
    "MemoryRecordStore",
    "SQLiteRecordStore",
    "ObservabilityLogger",
    "LogEntry",
    # Config
    "CertIndexConfig",
    "load_config",
    "build_index",
    # Errors
    "CertIndexError",
    "StoreError",
    "ConfigError",
    # Matching
    "fuzzy_pattern",
    "fuzzy_matches",
]
