"""
Shared pytest fixtures for certindex tests.

Provides fixtures for:
- Record stores (memory and SQLite, parametrized)
- IdentityIndex over each store
- Sample certificates
"""

from pathlib import Path
from typing import Any, Dict

import pytest

from certindex import IdentityIndex, MemoryRecordStore, SQLiteRecordStore


def make_certificate(
    subject: str = "pub1",
    certifier: str = "cert1",
    type: str = "typeA",
    serial_number: str = "sn1",
    **fields: str,
) -> Dict[str, Any]:
    """Certificate dict in stored (camelCase) form."""
    return {
        "type": type,
        "serialNumber": serial_number,
        "subject": subject,
        "certifier": certifier,
        "revocationOutpoint": "00" * 32 + ".0",
        "signature": "3045022100deadbeef",
        "fields": fields,
    }


@pytest.fixture
def sqlite_db(tmp_path: Path) -> Path:
    """Path to a fresh SQLite database file."""
    return tmp_path / "identity.db"


@pytest.fixture(params=["memory", "sqlite"])
def store(request, sqlite_db: Path):
    """Each test using this runs against both store backends."""
    if request.param == "memory":
        return MemoryRecordStore()
    return SQLiteRecordStore(sqlite_db)


@pytest.fixture
def index(store) -> IdentityIndex:
    return IdentityIndex(store)


@pytest.fixture
def alice_certificate() -> Dict[str, Any]:
    """Record A from the reference scenario."""
    return make_certificate(name="Alice Smith")


@pytest.fixture
def populated_index(index: IdentityIndex) -> IdentityIndex:
    """Index holding three certificates across two subjects and certifiers."""
    index.store_record(
        "t1",
        0,
        make_certificate(name="Alice Smith", email="alice@example.com", profilePhoto="iVBORw0KGgo"),
    )
    index.store_record(
        "t2",
        1,
        make_certificate(
            subject="pub2",
            certifier="cert2",
            type="typeB",
            serial_number="sn2",
            name="Bob Jones",
            icon="PHN2Zz4=",
        ),
    )
    index.store_record(
        "t3",
        0,
        make_certificate(type="typeB", serial_number="sn3", name="Alice S.", phone="+15551234567"),
    )
    return index
