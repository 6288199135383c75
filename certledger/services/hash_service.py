# services/hash_service.py
"""
Content hashing for certificate records.

The hash is the tamper-evidence anchor of a record: issuance stores it and
verification recomputes it from the stored fields. Both paths MUST build the
hashed mapping with `essential_fields()` so the same field set is digested.
"""
import hashlib
import json
from typing import Any, Dict, Mapping

HASH_PREFIX = "0x"

# Fixed field set (and order) of the hashed payload.
ESSENTIAL_FIELDS = (
    "institutionName",
    "studentName",
    "universityId",
    "degree",
    "major",
    "generalGrade",
    "issueDate",
    "graduationDate",
    "issuedAt",
)


def essential_fields(source: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Picks the essential fields out of any certificate-shaped mapping.
    Unknown keys are dropped and missing ones become None.
    """
    return {field: source.get(field) for field in ESSENTIAL_FIELDS}


def sha256_of_data(data: Dict[str, Any]) -> str:
    """
    Computes a deterministic SHA-256 hash of a Python dictionary.
    """
    canonical_string = json.dumps(data, sort_keys=True, separators=(',', ':'), ensure_ascii=False)
    return hashlib.sha256(canonical_string.encode('utf-8')).hexdigest()


def certificate_hash(fields: Mapping[str, Any]) -> str:
    """Returns the `0x`-prefixed content hash of a certificate's essential fields."""
    return HASH_PREFIX + sha256_of_data(essential_fields(fields))


def hashes_match(expected: str, actual: str) -> bool:
    # Plain equality; both sides are public values.
    return isinstance(expected, str) and expected == actual
