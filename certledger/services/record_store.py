# services/record_store.py
"""
The only reader and writer of certificate and institution records.

Key layout in the key-value store:
    certificate:<certificateId>              -> full certificate record
    certificate-hash:<blockchainHash>        -> certificateId (lookup index)
    institution:<userId>                     -> institution sidecar metadata
    institution:<userId>:certificates        -> ids issued by that user, in order
"""
import logging
from typing import Iterator, List, Optional

from certledger.errors import CertLedgerError, NotFoundError, StorageError
from certledger.models import CertificateRecord, InstitutionRecord
from certledger.services.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

CERTIFICATE_PREFIX = "certificate:"
CERTIFICATE_SCAN_PREFIX = "certificate:CERT-"
HASH_INDEX_PREFIX = "certificate-hash:"
INSTITUTION_PREFIX = "institution:"


class RecordStore:

    def __init__(self, store: KeyValueStore):
        self.store = store

    def _call(self, operation, *args):
        try:
            return operation(*args)
        except CertLedgerError:
            raise
        except Exception as e:
            logger.exception(f"Key-value store {operation.__name__} failed for '{args[0]}'")
            raise StorageError("The record store is unavailable.") from e

    # --- certificates ---

    def get_certificate(self, certificate_id: str) -> Optional[CertificateRecord]:
        data = self._call(self.store.get, CERTIFICATE_PREFIX + certificate_id)
        return CertificateRecord.from_dict(data) if data else None

    def require_certificate(self, certificate_id: str) -> CertificateRecord:
        record = self.get_certificate(certificate_id)
        if record is None:
            raise NotFoundError(f"No certificate with id '{certificate_id}'.")
        return record

    def add_certificate(self, record: CertificateRecord) -> bool:
        """Persists a new record. Returns False if the id is already taken."""
        return self._call(self.store.add, CERTIFICATE_PREFIX + record.certificate_id, record.to_dict())

    def index_hash(self, blockchain_hash: str, certificate_id: str) -> None:
        self._call(self.store.set, HASH_INDEX_PREFIX + blockchain_hash, certificate_id)

    def iter_certificates(self) -> Iterator[CertificateRecord]:
        for data in self._call(self.store.get_by_prefix, CERTIFICATE_SCAN_PREFIX):
            if isinstance(data, dict):
                yield CertificateRecord.from_dict(data)

    def find_by_hash(self, blockchain_hash: str) -> Optional[CertificateRecord]:
        """
        Resolves a content hash to a record through the hash index, falling back
        to a linear scan for records written before the index existed.
        """
        certificate_id = self._call(self.store.get, HASH_INDEX_PREFIX + blockchain_hash)
        if certificate_id:
            record = self.get_certificate(certificate_id)
            if record is not None and record.blockchain_hash == blockchain_hash:
                return record
            logger.warning(f"Stale hash index entry for '{blockchain_hash}' -> '{certificate_id}'")

        for record in self.iter_certificates():
            if record.blockchain_hash == blockchain_hash:
                return record
        return None

    # --- institutions ---

    def get_institution(self, user_id: str) -> Optional[InstitutionRecord]:
        data = self._call(self.store.get, INSTITUTION_PREFIX + user_id)
        return InstitutionRecord.from_dict(data) if data else None

    def save_institution(self, user_id: str, institution: InstitutionRecord) -> None:
        self._call(self.store.set, INSTITUTION_PREFIX + user_id, institution.to_dict())

    def owned_certificate_ids(self, user_id: str) -> List[str]:
        return self._call(self.store.get, f"{INSTITUTION_PREFIX}{user_id}:certificates") or []

    def add_owned_certificate(self, user_id: str, certificate_id: str) -> None:
        # Read-modify-write; concurrent issuances by one user can drop an entry.
        ids = self.owned_certificate_ids(user_id)
        ids.append(certificate_id)
        self._call(self.store.set, f"{INSTITUTION_PREFIX}{user_id}:certificates", ids)

    def list_owned_certificates(self, user_id: str) -> List[CertificateRecord]:
        records = []
        for certificate_id in self.owned_certificate_ids(user_id):
            record = self.get_certificate(certificate_id)
            if record is not None:
                records.append(record)
        return records
