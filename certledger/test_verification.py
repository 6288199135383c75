# test_verification.py
# Round-trip, tamper detection and lookup paths of the verification service.

import unittest

from certledger.errors import BadRequestError, StorageError
from certledger.models import VerificationStatus
from certledger.services import hash_service
from certledger.services.issuance_service import IssuanceService
from certledger.services.kv_store import MemoryKeyValueStore
from certledger.services.record_store import RecordStore
from certledger.services.verification_service import (
    NOT_FOUND_MESSAGE,
    TAMPERED_MESSAGE,
    VerificationService,
)

ISSUE_REQUEST = {
    "institutionName": "Stanford",
    "studentName": "Jane Doe",
    "universityId": "STU-1",
    "degree": "Bachelor",
    "major": "CS",
    "generalGrade": "Excellent",
    "issueDate": "2025-01-01",
    "graduationDate": "2024-12-01",
}


class BrokenReadStore(MemoryKeyValueStore):
    def get(self, key):
        raise ConnectionError("store offline")


class TestVerificationService(unittest.TestCase):

    def setUp(self):
        self.store = MemoryKeyValueStore()
        self.records = RecordStore(self.store)
        self.issuance = IssuanceService(self.records)
        self.service = VerificationService(self.records)
        self.issued = self.issuance.issue(ISSUE_REQUEST)
        self.key = f"certificate:{self.issued.certificate_id}"

    def test_round_trip_by_id_is_valid(self):
        result = self.service.verify(certificate_id=self.issued.certificate_id)

        self.assertIs(result.status, VerificationStatus.VALID)
        body = result.to_dict()
        self.assertEqual(body["status"], "valid")
        certificate = body["certificate"]
        for field, value in ISSUE_REQUEST.items():
            self.assertEqual(certificate[field], value, field)
        self.assertEqual(certificate["institution"], "Stanford")
        self.assertEqual(certificate["blockchainHash"], self.issued.blockchain_hash)
        self.assertEqual(certificate["timestamp"], self.issued.timestamp)

    def test_unknown_id_is_invalid_not_an_exception(self):
        result = self.service.verify(certificate_id="CERT-1999-00000")
        self.assertEqual(result.to_dict(), {"status": "invalid", "message": NOT_FOUND_MESSAGE})

    def test_mutated_field_is_detected_as_tampering(self):
        for field in ("studentName", "generalGrade", "issuedAt"):
            with self.subTest(field=field):
                record = self.store.get(self.key)
                original = dict(record)
                record[field] = record[field] + " (edited)"
                self.store.set(self.key, record)

                result = self.service.verify(certificate_id=self.issued.certificate_id)
                self.assertEqual(result.to_dict(), {"status": "invalid", "message": TAMPERED_MESSAGE})

                self.store.set(self.key, original)

    def test_replaced_hash_is_detected_as_tampering(self):
        record = self.store.get(self.key)
        record["blockchainHash"] = "0x" + "0" * 64
        self.store.set(self.key, record)

        result = self.service.verify(certificate_id=self.issued.certificate_id)
        self.assertEqual(result.status, VerificationStatus.INVALID)
        self.assertEqual(result.message, TAMPERED_MESSAGE)

    def test_non_hashed_metadata_can_change(self):
        record = self.store.get(self.key)
        record["fileName"] = "renamed.pdf"
        self.store.set(self.key, record)
        self.assertTrue(self.service.verify(certificate_id=self.issued.certificate_id).is_valid)

    def test_verify_by_raw_data_finds_the_record(self):
        stored = self.store.get(self.key)
        raw = hash_service.essential_fields(stored)

        result = self.service.verify(certificate_data=raw)

        self.assertTrue(result.is_valid)
        self.assertEqual(result.certificate.certificate_id, self.issued.certificate_id)

    def test_verify_by_raw_data_falls_back_to_scan(self):
        # A record written without a hash index entry.
        legacy = dict(ISSUE_REQUEST, certificateId="CERT-2020-00001", issuedAt="2020-06-01T00:00:00.000Z")
        legacy["blockchainHash"] = hash_service.certificate_hash(legacy)
        self.store.set("certificate:CERT-2020-00001", legacy)

        result = self.service.verify(certificate_data=hash_service.essential_fields(legacy))

        self.assertTrue(result.is_valid)
        self.assertEqual(result.certificate.certificate_id, "CERT-2020-00001")

    def test_raw_data_with_a_changed_field_is_not_found(self):
        raw = hash_service.essential_fields(self.store.get(self.key))
        raw["studentName"] = "John Doe"
        result = self.service.verify(certificate_data=raw)
        self.assertEqual(result.message, NOT_FOUND_MESSAGE)

    def test_rehashed_record_does_not_answer_for_its_old_hash(self):
        submitted = hash_service.essential_fields(self.store.get(self.key))
        record = self.store.get(self.key)
        record["generalGrade"] = "Good"
        record["blockchainHash"] = hash_service.certificate_hash(record)
        self.store.set(self.key, record)

        result = self.service.verify(certificate_data=submitted)

        self.assertEqual(result.to_dict(), {"status": "invalid", "message": NOT_FOUND_MESSAGE})
        # The rewritten record is still self-consistent when looked up by its own data.
        self.assertTrue(self.service.verify(certificate_data=hash_service.essential_fields(record)).is_valid)

    def test_record_copied_under_another_id_is_tampering(self):
        self.store.set("certificate:CERT-2025-99999", self.store.get(self.key))

        result = self.service.verify(certificate_id="CERT-2025-99999")

        self.assertEqual(result.to_dict(), {"status": "invalid", "message": TAMPERED_MESSAGE})
        self.assertTrue(self.service.verify(certificate_id=self.issued.certificate_id).is_valid)

    def test_identifier_wins_when_both_are_given(self):
        result = self.service.verify(certificate_id=self.issued.certificate_id,
                                     certificate_data={"studentName": "nobody"})
        self.assertTrue(result.is_valid)

    def test_neither_input_is_a_bad_request(self):
        for kwargs in ({}, {"certificate_id": ""}, {"certificate_data": {}}):
            with self.subTest(kwargs=kwargs):
                with self.assertRaises(BadRequestError) as ctx:
                    self.service.verify(**kwargs)
                self.assertEqual(ctx.exception.status_code, 400)

    def test_malformed_inputs_are_bad_requests(self):
        with self.assertRaises(BadRequestError):
            self.service.verify(certificate_data=["not", "an", "object"])
        with self.assertRaises(BadRequestError):
            self.service.verify(certificate_id=12345)

    def test_store_failure_propagates(self):
        service = VerificationService(RecordStore(BrokenReadStore()))
        with self.assertRaises(StorageError):
            service.verify(certificate_id="CERT-2025-00001")


if __name__ == "__main__":
    unittest.main(verbosity=2)
