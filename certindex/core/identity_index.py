"""
IdentityIndex - lookup storage for identity certificates.

Stores certificate records keyed by the transaction output that carries
them and resolves search criteria into output references. Callers use the
returned references to fetch live certificate state elsewhere; no query
path exposes stored certificate contents.

Missing or empty criteria never raise: the query returns []. Store
failures propagate as StoreError.
"""

import logging
import sqlite3
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from certindex.core.models import (
    CERTIFIER_PATH,
    DEFAULT_EXCLUDED_FIELDS,
    FIELDS_PATH,
    OUTPUT_INDEX,
    SEARCHABLE_ATTRIBUTES,
    SERIAL_NUMBER_PATH,
    SUBJECT_PATH,
    TXID,
    TYPE_PATH,
    Certificate,
    IdentityAttributes,
    IdentityRecord,
    UTXOReference,
)
from certindex.core.observability import ObservabilityLogger
from certindex.core.predicates import EqualsField, MemberOf, Predicate, all_of, describe
from certindex.core.store import RecordStore
from certindex.errors import StoreError
from certindex.matching.fuzzy import fuzzy_clause

logger = logging.getLogger(__name__)

# Free-text mode key in IdentityAttributes
ANY_ATTRIBUTE = "any"

_REFERENCE_PROJECTION = (TXID, OUTPUT_INDEX)


class IdentityIndex:
    """Certificate record lifecycle and lookup queries over a RecordStore."""

    def __init__(
        self,
        store: RecordStore,
        excluded_fields: Iterable[str] = DEFAULT_EXCLUDED_FIELDS,
        observability: Optional[ObservabilityLogger] = None,
    ):
        """Initialize the index and declare the text index.

        A failed text-index declaration is logged and otherwise ignored;
        queries keep working without it.

        Args:
            store: Backing record store
            excluded_fields: Certificate fields left out of searchable text
            observability: Optional audit log
        """
        self.store = store
        self.excluded_fields = tuple(excluded_fields)
        self.observability = observability
        self._ensure_text_index()

    def _ensure_text_index(self) -> None:
        try:
            self.store.create_text_index(SEARCHABLE_ATTRIBUTES)
        except StoreError as exc:
            logger.warning("Text index on %s unavailable: %s", SEARCHABLE_ATTRIBUTES, exc)
            self._audit(
                "log_error",
                "text_index_failed",
                details={"field": SEARCHABLE_ATTRIBUTES, "error": str(exc)},
                resolution="continuing without text index",
            )
            return

        self._audit("log_index", SEARCHABLE_ATTRIBUTES, "ready")

    # --- lifecycle -------------------------------------------------------

    def store_record(
        self,
        txid: str,
        output_index: int,
        certificate: Union[Certificate, Mapping[str, Any]],
    ) -> None:
        """Store a certificate record for an output.

        No duplicate check is made: storing the same reference twice
        creates two records.

        Raises:
            ValueError: If the reference or certificate is malformed
            StoreError: If the insert fails
        """
        record = IdentityRecord.create(txid, output_index, certificate, self.excluded_fields)
        self.store.insert_one(record.to_document())

        logger.debug("Stored record %s:%d", txid, output_index)
        self._audit("log_store", txid, output_index, record.certificate.serial_number)

    def delete_record(self, txid: str, output_index: int) -> None:
        """Delete one record for the output, if any exists."""
        deleted = self.store.delete_one(
            all_of(EqualsField(TXID, txid), EqualsField(OUTPUT_INDEX, output_index))
        )

        logger.debug("Deleted %d record(s) for %s:%s", deleted, txid, output_index)
        self._audit("log_delete", txid, output_index, deleted)

    # --- queries ---------------------------------------------------------

    def find_by_attribute(
        self,
        attributes: Optional[IdentityAttributes],
        certifiers: Optional[Sequence[str]] = None,
    ) -> List[UTXOReference]:
        """Find records whose attributes fuzzy-match the given text.

        With an ``any`` key, its text is matched against the combined
        searchable attributes and every other key is ignored. Otherwise each
        key is matched against the certificate field of that name.

        The certifier allow-list is mandatory here: without certifiers
        nothing can match. Search text must be a string.

        Args:
            attributes: {"any": text} or {field_name: text, ...}
            certifiers: Acceptable certifier keys
        """
        certifiers = _as_keys(certifiers)
        if not attributes or not isinstance(attributes, Mapping) or not certifiers:
            return self._rejected("find_by_attribute")

        if ANY_ATTRIBUTE in attributes:
            searches = [(SEARCHABLE_ATTRIBUTES, attributes[ANY_ATTRIBUTE])]
        else:
            searches = [(f"{FIELDS_PATH}.{key}", value) for key, value in attributes.items()]

        if not all(isinstance(text, str) for _, text in searches):
            return self._rejected("find_by_attribute")

        clauses: List[Predicate] = [MemberOf(CERTIFIER_PATH, certifiers)]
        clauses.extend(fuzzy_clause(field, text) for field, text in searches)

        return self._find_references("find_by_attribute", all_of(*clauses))

    def find_by_identity_key(
        self,
        identity_key: Optional[str],
        certifiers: Optional[Sequence[str]] = None,
    ) -> List[UTXOReference]:
        """Find records about a subject, optionally limited to certifiers."""
        if not _is_key(identity_key):
            return self._rejected("find_by_identity_key")

        clauses: List[Predicate] = [EqualsField(SUBJECT_PATH, identity_key)]
        if certifiers is not None:
            keys = _as_keys(certifiers)
            if keys is None:
                return self._rejected("find_by_identity_key")
            if keys:
                clauses.append(MemberOf(CERTIFIER_PATH, keys))

        return self._find_references("find_by_identity_key", all_of(*clauses))

    def find_by_certifier(self, certifiers: Optional[Sequence[str]]) -> List[UTXOReference]:
        """Find records issued by any of the certifiers."""
        certifiers = _as_keys(certifiers)
        if not certifiers:
            return self._rejected("find_by_certifier")

        return self._find_references("find_by_certifier", MemberOf(CERTIFIER_PATH, certifiers))

    def find_by_certificate_type(
        self,
        certificate_types: Optional[Sequence[str]],
        identity_key: Optional[str],
        certifiers: Optional[Sequence[str]],
    ) -> List[UTXOReference]:
        """Find a subject's certificates of the given types from the given certifiers.

        All three inputs are required.
        """
        certificate_types = _as_keys(certificate_types)
        certifiers = _as_keys(certifiers)
        if not certificate_types or not _is_key(identity_key) or not certifiers:
            return self._rejected("find_by_certificate_type")

        predicate = all_of(
            EqualsField(SUBJECT_PATH, identity_key),
            MemberOf(CERTIFIER_PATH, certifiers),
            MemberOf(TYPE_PATH, certificate_types),
        )
        return self._find_references("find_by_certificate_type", predicate)

    def find_by_certificate_serial_number(
        self, serial_number: Optional[str]
    ) -> List[UTXOReference]:
        """Find records by certificate serial number."""
        logger.debug("Serial number lookup: %r", serial_number)

        if not _is_key(serial_number):
            return self._rejected("find_by_certificate_serial_number")

        return self._find_references(
            "find_by_certificate_serial_number",
            EqualsField(SERIAL_NUMBER_PATH, serial_number),
        )

    # --- internal helpers ------------------------------------------------

    def _audit(self, method: str, *args: Any, **kwargs: Any) -> None:
        """Write to the audit log, if any. Audit failures are logged, never raised."""
        if self.observability is None:
            return
        try:
            getattr(self.observability, method)(*args, **kwargs)
        except (sqlite3.Error, OSError) as exc:
            logger.warning("Audit log write failed (%s): %s", method, exc)

    def _rejected(self, operation: str) -> List[UTXOReference]:
        logger.debug("%s: missing or malformed criteria, returning no results", operation)
        self._audit("log_query", operation, None, 0)
        return []

    def _find_references(self, operation: str, predicate: Predicate) -> List[UTXOReference]:
        """Run a predicate and project each hit to a UTXOReference."""
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("%s query: %s", operation, describe(predicate))

        documents = self.store.find(predicate, projection=_REFERENCE_PROJECTION)
        references = [UTXOReference.from_document(doc) for doc in documents]

        self._audit("log_query", operation, describe(predicate), len(references))
        return references


def _is_key(value: Any) -> bool:
    return isinstance(value, str) and bool(value)


def _as_keys(values: Any) -> Optional[Tuple[str, ...]]:
    """Normalize a collection of string keys; None when malformed.

    A bare string is not a collection of keys.
    """
    if values is None or isinstance(values, (str, bytes, Mapping)):
        return None
    if not isinstance(values, Iterable):
        return None
    keys = tuple(values)
    if not all(isinstance(key, str) for key in keys):
        return None
    return keys
