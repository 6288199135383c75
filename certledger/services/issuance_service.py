# services/issuance_service.py
"""
Certificate issuance: the only path that creates certificate records.

Steps: validate -> allocate id -> stamp issuedAt -> hash essential fields ->
synthesize ledger metadata -> persist. A record is written with an
insert-if-absent call, so a random id that is already taken is retried with a
fresh id instead of overwriting an existing certificate.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

from dateutil import parser

from certledger.errors import StorageError, ValidationError
from certledger.models import CertificateRecord
from certledger.services import hash_service
from certledger.services.id_service import CertificateIdGenerator
from certledger.services.ledger_service import LedgerSimulator
from certledger.services.record_store import RecordStore
from certledger.utils import iso_timestamp

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = tuple(f for f in hash_service.ESSENTIAL_FIELDS if f != "issuedAt")
DATE_FIELDS = ("issueDate", "graduationDate")
DEFAULT_MAX_ID_ATTEMPTS = 10


@dataclass(frozen=True)
class IssuedCertificate:
    certificate_id: str
    blockchain_hash: str
    transaction_id: str
    block_height: int
    channel_name: str
    chaincode_name: str
    timestamp: str
    network: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "certificateId": self.certificate_id,
            "blockchainHash": self.blockchain_hash,
            "transactionId": self.transaction_id,
            "blockHeight": self.block_height,
            "channelName": self.channel_name,
            "chaincodeName": self.chaincode_name,
            "timestamp": self.timestamp,
            "network": self.network,
        }


def validate_issue_request(payload: Mapping[str, Any]) -> None:
    if not isinstance(payload, Mapping):
        raise ValidationError("Request body must be a JSON object.")

    missing = [f for f in REQUIRED_FIELDS
               if not isinstance(payload.get(f), str) or not payload.get(f).strip()]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    for field in DATE_FIELDS:
        try:
            parser.parse(payload[field])
        except (parser.ParserError, ValueError, OverflowError):
            raise ValidationError(f"Field '{field}' is not a valid date: '{payload[field]}'")

    file_name = payload.get("fileName")
    if file_name is not None and not isinstance(file_name, str):
        raise ValidationError("Field 'fileName' must be a string.")

    file_size = payload.get("fileSize")
    if file_size is not None and (isinstance(file_size, bool) or not isinstance(file_size, int) or file_size < 0):
        raise ValidationError("Field 'fileSize' must be a non-negative integer.")


class IssuanceService:

    def __init__(self, records: RecordStore,
                 ledger: Optional[LedgerSimulator] = None,
                 id_generator: Optional[CertificateIdGenerator] = None,
                 timestamp: Callable[[], str] = iso_timestamp,
                 max_id_attempts: int = DEFAULT_MAX_ID_ATTEMPTS):
        self.records = records
        self.ledger = ledger or LedgerSimulator()
        self.id_generator = id_generator or CertificateIdGenerator()
        self.timestamp = timestamp
        self.max_id_attempts = max_id_attempts

    def _build_record(self, payload: Mapping[str, Any], owner_id: Optional[str]) -> CertificateRecord:
        fields = hash_service.essential_fields(payload)
        fields["issuedAt"] = self.timestamp()
        content_hash = hash_service.certificate_hash(fields)
        ledger = self.ledger.commit()
        return CertificateRecord(
            certificate_id=self.id_generator.next_id(),
            institution_name=fields["institutionName"],
            student_name=fields["studentName"],
            university_id=fields["universityId"],
            degree=fields["degree"],
            major=fields["major"],
            general_grade=fields["generalGrade"],
            issue_date=fields["issueDate"],
            graduation_date=fields["graduationDate"],
            issued_at=fields["issuedAt"],
            blockchain_hash=content_hash,
            transaction_id=ledger.transactionId,
            block_height=ledger.blockHeight,
            channel_name=ledger.channelName,
            chaincode_name=ledger.chaincodeName,
            network=ledger.network,
            file_name=payload.get("fileName") or None,
            file_size=payload.get("fileSize"),
            issued_by=owner_id,
        )

    def issue(self, payload: Mapping[str, Any], owner_id: Optional[str] = None) -> IssuedCertificate:
        validate_issue_request(payload)

        for attempt in range(1, self.max_id_attempts + 1):
            record = self._build_record(payload, owner_id)
            if self.records.add_certificate(record):
                break
            logger.warning(f"Certificate id collision on '{record.certificate_id}' (attempt {attempt})")
        else:
            raise StorageError("Could not allocate a unique certificate id.")

        self.records.index_hash(record.blockchain_hash, record.certificate_id)
        if owner_id:
            self.records.add_owned_certificate(owner_id, record.certificate_id)

        logger.info(f"Certificate stored successfully: {record.certificate_id} (tx {record.transaction_id})")
        return IssuedCertificate(
            certificate_id=record.certificate_id,
            blockchain_hash=record.blockchain_hash,
            transaction_id=record.transaction_id,
            block_height=record.block_height,
            channel_name=record.channel_name,
            chaincode_name=record.chaincode_name,
            timestamp=record.issued_at,
            network=record.network,
        )
