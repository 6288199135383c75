# certledger/models.py
import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


class KvEntry(db.Model):
    """One row of the key-value store that backs certificate and institution records."""
    __tablename__ = "kv_store"
    key = db.Column(db.String(255), primary_key=True)
    value = db.Column(db.JSON, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class VerificationStatus(str, enum.Enum):
    VALID = "valid"
    INVALID = "invalid"


@dataclass
class CertificateRecord:
    certificate_id: str
    institution_name: str
    student_name: str
    university_id: str
    degree: str
    major: str
    general_grade: str
    issue_date: str
    graduation_date: str
    issued_at: str
    blockchain_hash: str
    transaction_id: str
    block_height: int
    channel_name: str
    chaincode_name: str
    network: str
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    issued_by: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CertificateRecord":
        return cls(
            certificate_id=data.get("certificateId"),
            institution_name=data.get("institutionName"),
            student_name=data.get("studentName"),
            university_id=data.get("universityId"),
            degree=data.get("degree"),
            major=data.get("major"),
            general_grade=data.get("generalGrade"),
            issue_date=data.get("issueDate"),
            graduation_date=data.get("graduationDate"),
            issued_at=data.get("issuedAt"),
            blockchain_hash=data.get("blockchainHash"),
            transaction_id=data.get("transactionId"),
            block_height=data.get("blockHeight"),
            channel_name=data.get("channelName"),
            chaincode_name=data.get("chaincodeName"),
            network=data.get("network"),
            file_name=data.get("fileName"),
            file_size=data.get("fileSize"),
            issued_by=data.get("issuedBy"),
        )

    def essential_fields(self) -> Dict[str, Any]:
        """The hashed part of the record, keyed the way it is stored."""
        return {
            "institutionName": self.institution_name,
            "studentName": self.student_name,
            "universityId": self.university_id,
            "degree": self.degree,
            "major": self.major,
            "generalGrade": self.general_grade,
            "issueDate": self.issue_date,
            "graduationDate": self.graduation_date,
            "issuedAt": self.issued_at,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Full stored form."""
        return {
            "certificateId": self.certificate_id,
            **self.essential_fields(),
            "fileName": self.file_name,
            "fileSize": self.file_size,
            "issuedBy": self.issued_by,
            "blockchainHash": self.blockchain_hash,
            "transactionId": self.transaction_id,
            "blockHeight": self.block_height,
            "channelName": self.channel_name,
            "chaincodeName": self.chaincode_name,
            "network": self.network,
        }

    def to_verification_dict(self) -> Dict[str, Any]:
        return {
            "certificateId": self.certificate_id,
            "studentName": self.student_name,
            "universityId": self.university_id,
            "institution": self.institution_name,
            "institutionName": self.institution_name,
            "degree": self.degree,
            "major": self.major,
            "generalGrade": self.general_grade,
            "issueDate": self.issue_date,
            "graduationDate": self.graduation_date,
            "issuedAt": self.issued_at,
            "blockchainHash": self.blockchain_hash,
            "transactionId": self.transaction_id,
            "blockHeight": self.block_height,
            "channelName": self.channel_name,
            "chaincodeName": self.chaincode_name,
            "network": self.network,
            "timestamp": self.issued_at,
        }

    def to_listing_dict(self) -> Dict[str, Any]:
        return {
            "certificateId": self.certificate_id,
            "studentName": self.student_name,
            "universityId": self.university_id,
            "degree": self.degree,
            "major": self.major,
            "issueDate": self.issue_date,
            "graduationDate": self.graduation_date,
            "blockHeight": self.block_height,
            "issuedAt": self.issued_at,
        }


@dataclass
class InstitutionRecord:
    institution_name: str
    country: Optional[str] = None
    institution_type: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InstitutionRecord":
        return cls(
            institution_name=data.get("institutionName"),
            country=data.get("country"),
            institution_type=data.get("institutionType"),
            created_at=data.get("createdAt"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "institutionName": self.institution_name,
            "country": self.country,
            "institutionType": self.institution_type,
            "createdAt": self.created_at,
        }
