# services/verification_service.py
"""
Tamper-evident verification of issued certificates.

A candidate record is located by id or by the content hash of caller-supplied
data, then its hash is recomputed from its own stored fields and compared with
the stored `blockchainHash`. That self-consistency check is the only integrity
guarantee; the ledger fields are not consulted.

"Not verified" is a business outcome, so not-found and tampered records come
back as an invalid result rather than an exception.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from certledger.errors import BadRequestError, IntegrityError, NotFoundError
from certledger.models import CertificateRecord, VerificationStatus
from certledger.services import hash_service
from certledger.services.record_store import RecordStore

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "Certificate not found in blockchain records"
TAMPERED_MESSAGE = "Certificate data has been tampered with"


@dataclass(frozen=True)
class VerificationResult:
    status: VerificationStatus
    message: Optional[str] = None
    certificate: Optional[CertificateRecord] = None

    @property
    def is_valid(self) -> bool:
        return self.status is VerificationStatus.VALID

    def to_dict(self) -> Dict[str, Any]:
        if self.is_valid:
            return {"status": self.status.value, "certificate": self.certificate.to_verification_dict()}
        return {"status": self.status.value, "message": self.message}


def check_integrity(record: CertificateRecord) -> None:
    """Raises IntegrityError if the record's fields no longer match its stored hash."""
    recomputed = hash_service.certificate_hash(record.essential_fields())
    if not hash_service.hashes_match(record.blockchain_hash, recomputed):
        raise IntegrityError(f"Certificate '{record.certificate_id}' no longer matches its stored hash.")


class VerificationService:

    def __init__(self, records: RecordStore):
        self.records = records

    def _locate(self, certificate_id: Optional[str], certificate_data: Optional[Mapping[str, Any]]) -> CertificateRecord:
        if certificate_id:
            logger.info(f"Looking for certificate: {certificate_id}")
            record = self.records.require_certificate(certificate_id)
            if record.certificate_id != certificate_id:
                raise IntegrityError(f"Record stored under '{certificate_id}' claims id '{record.certificate_id}'.")
            return record

        if not isinstance(certificate_data, Mapping):
            raise BadRequestError("Field 'certificateData' must be a JSON object.")
        provided_hash = hash_service.certificate_hash(certificate_data)
        record = self.records.find_by_hash(provided_hash)
        if record is None:
            raise NotFoundError(f"No certificate with hash '{provided_hash}'.")
        return record

    def verify(self, certificate_id: Optional[str] = None,
               certificate_data: Optional[Mapping[str, Any]] = None) -> VerificationResult:
        if not certificate_id and not certificate_data:
            raise BadRequestError("Certificate ID or data required")
        if certificate_id is not None and not isinstance(certificate_id, str):
            raise BadRequestError("Field 'certificateId' must be a string.")

        try:
            record = self._locate(certificate_id, certificate_data)
            check_integrity(record)
        except NotFoundError as e:
            logger.info(f"Verification failed: {e.message}")
            return VerificationResult(VerificationStatus.INVALID, NOT_FOUND_MESSAGE)
        except IntegrityError as e:
            logger.warning(f"Tampering detected: {e.message}")
            return VerificationResult(VerificationStatus.INVALID, TAMPERED_MESSAGE)

        logger.info(f"Certificate '{record.certificate_id}' verified")
        return VerificationResult(VerificationStatus.VALID, certificate=record)
