"""
Record and reference types for the identity certificate index.

A stored record is a plain document (dict) so any RecordStore can persist it.
The dataclasses here build and read those documents.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Mapping, Optional, Union

# Certificate fields that carry binary-ish payloads (images) and are never
# part of the free-text search blob.
DEFAULT_EXCLUDED_FIELDS = ("profilePhoto", "icon")

# Document keys
TXID = "txid"
OUTPUT_INDEX = "outputIndex"
CERTIFICATE = "certificate"
CREATED_AT = "createdAt"
SEARCHABLE_ATTRIBUTES = "searchableAttributes"

# Dotted paths into a record document
SUBJECT_PATH = "certificate.subject"
CERTIFIER_PATH = "certificate.certifier"
TYPE_PATH = "certificate.type"
SERIAL_NUMBER_PATH = "certificate.serialNumber"
FIELDS_PATH = "certificate.fields"

# Query input: {"any": "text"} or {"fieldName": "text", ...}
IdentityAttributes = Mapping[str, str]


@dataclass(frozen=True)
class UTXOReference:
    """Minimal pointer to the transaction output carrying a certificate."""

    txid: str
    output_index: int

    def to_dict(self) -> Dict[str, Any]:
        return {TXID: self.txid, OUTPUT_INDEX: self.output_index}

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "UTXOReference":
        return cls(txid=doc[TXID], output_index=int(doc[OUTPUT_INDEX]))


@dataclass
class Certificate:
    """Identity certificate as stored alongside a reference.

    Only the keys the index queries on are modelled; everything else
    (revocationOutpoint, signature, ...) is carried through in ``extra``.
    """

    type: str
    serial_number: str
    subject: str
    certifier: str
    fields: Dict[str, str] = field(default_factory=dict)
    extra: Dict[str, Any] = field(default_factory=dict)

    _KEYS = ("type", "serialNumber", "subject", "certifier", "fields")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Certificate":
        """Build from a camelCase mapping (the stored/wire form).

        Raises:
            ValueError: If a required key is missing
        """
        missing = [k for k in ("type", "serialNumber", "subject", "certifier") if k not in data]
        if missing:
            raise ValueError(f"Certificate missing required keys: {missing}")

        return cls(
            type=data["type"],
            serial_number=data["serialNumber"],
            subject=data["subject"],
            certifier=data["certifier"],
            fields=dict(data.get("fields") or {}),
            extra={k: v for k, v in data.items() if k not in cls._KEYS},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.extra,
            "type": self.type,
            "serialNumber": self.serial_number,
            "subject": self.subject,
            "certifier": self.certifier,
            "fields": dict(self.fields),
        }


def searchable_attributes(
    fields: Mapping[str, Any],
    excluded: Iterable[str] = DEFAULT_EXCLUDED_FIELDS,
) -> str:
    """Join every non-excluded field value with single spaces.

    Examples:
        {"name": "Alice", "icon": "<png>", "email": "a@x.io"} -> "Alice a@x.io"
    """
    excluded = set(excluded)
    return " ".join(str(value) for key, value in fields.items() if key not in excluded)


@dataclass
class IdentityRecord:
    """A certificate record keyed by the output that carries it."""

    txid: str
    output_index: int
    certificate: Certificate
    created_at: datetime
    searchable_attributes: str

    @classmethod
    def create(
        cls,
        txid: str,
        output_index: int,
        certificate: Union[Certificate, Mapping[str, Any]],
        excluded_fields: Iterable[str] = DEFAULT_EXCLUDED_FIELDS,
        now: Optional[datetime] = None,
    ) -> "IdentityRecord":
        """Build a new record, deriving the searchable text and timestamp.

        Raises:
            ValueError: If txid is empty or output_index is not a non-negative int
        """
        if not txid or not isinstance(txid, str):
            raise ValueError("txid must be a non-empty string")
        if isinstance(output_index, bool) or not isinstance(output_index, int) or output_index < 0:
            raise ValueError(f"output_index must be a non-negative integer, got {output_index!r}")

        if not isinstance(certificate, Certificate):
            certificate = Certificate.from_dict(certificate)

        return cls(
            txid=txid,
            output_index=output_index,
            certificate=certificate,
            created_at=now or datetime.now(timezone.utc),
            searchable_attributes=searchable_attributes(certificate.fields, excluded_fields),
        )

    @property
    def reference(self) -> UTXOReference:
        return UTXOReference(self.txid, self.output_index)

    def to_document(self) -> Dict[str, Any]:
        return {
            TXID: self.txid,
            OUTPUT_INDEX: self.output_index,
            CERTIFICATE: self.certificate.to_dict(),
            CREATED_AT: self.created_at.isoformat(),
            SEARCHABLE_ATTRIBUTES: self.searchable_attributes,
        }

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "IdentityRecord":
        return cls(
            txid=doc[TXID],
            output_index=int(doc[OUTPUT_INDEX]),
            certificate=Certificate.from_dict(doc[CERTIFICATE]),
            created_at=datetime.fromisoformat(doc[CREATED_AT]),
            searchable_attributes=doc.get(SEARCHABLE_ATTRIBUTES, ""),
        )
