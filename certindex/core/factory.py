"""Build an IdentityIndex from configuration."""

from typing import Optional

from certindex.core.config import CertIndexConfig
from certindex.core.identity_index import IdentityIndex
from certindex.core.observability import ObservabilityLogger
from certindex.core.sqlite_store import SQLiteRecordStore
from certindex.core.store import MemoryRecordStore, RecordStore


def build_store(config: CertIndexConfig) -> RecordStore:
    storage = config.storage
    if storage.backend == "memory":
        return MemoryRecordStore()
    return SQLiteRecordStore(storage.db_path, table=storage.collection, timeout=storage.timeout)


def build_index(
    config: CertIndexConfig,
    store: Optional[RecordStore] = None,
) -> IdentityIndex:
    """Wire store, audit log and index according to config.

    Args:
        config: Loaded configuration
        store: Use this store instead of building one from config
    """
    observability = None
    if config.logging.audit_db:
        observability = ObservabilityLogger(config.logging.audit_db)

    return IdentityIndex(
        store or build_store(config),
        excluded_fields=config.search.excluded_fields,
        observability=observability,
    )
