# test_api.py
# End-to-end checks of the HTTP surface through Flask's test client.

import base64
import io
import json
import logging
import re
import unittest

from flask.logging import default_handler, has_level_handler
from flask_jwt_extended import create_access_token
from PIL import Image

from certledger.app import create_app
from certledger.errors import ExternalServiceError
from certledger.models import InstitutionRecord
from certledger.services.kv_store import MemoryKeyValueStore, SqlKeyValueStore
from certledger.services.vision_service import InstructionKind, VisionClient

SCENARIO = {
    "institutionName": "Stanford",
    "studentName": "Jane Doe",
    "universityId": "STU-1",
    "degree": "Bachelor",
    "major": "CS",
    "generalGrade": "Excellent",
    "issueDate": "2025-01-01",
    "graduationDate": "2024-12-01",
}

GATE_PASS = json.dumps({"hasStamps": True, "hasSignatures": True, "isAuthentic": True,
                        "confidence": 90, "details": "Seal found"})
GATE_FAIL = json.dumps({"hasStamps": False, "hasSignatures": False, "isAuthentic": False,
                        "confidence": 20, "details": "Nothing official"})
EXTRACTION_REPLY = "```json\n" + json.dumps({
    "institutionName": "Stanford", "studentName": "Jane Doe", "universityId": "STU-1",
    "degree": "Bachelor", "major": "CS", "graduationDate": "2024-12-01",
    "generalGrade": "Very Good", "confidence": 81,
}) + "\n```"


class ScriptedVision(VisionClient):
    def __init__(self):
        self.replies = {InstructionKind.AUTHENTICITY_GATE: GATE_PASS,
                        InstructionKind.FIELD_EXTRACTION: EXTRACTION_REPLY}
        self.calls = []

    def analyze(self, image_base64, kind, media_type="image/jpeg"):
        self.calls.append(kind)
        reply = self.replies[kind]
        if isinstance(reply, Exception):
            raise reply
        return reply


def _png_base64():
    buffer = io.BytesIO()
    Image.new("RGB", (40, 30), "white").save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode("ascii")


class ApiTestCase(unittest.TestCase):

    def setUp(self):
        self.store = MemoryKeyValueStore()
        self.vision = ScriptedVision()
        self.app = create_app('testing', store=self.store, vision_client=self.vision)
        self.client = self.app.test_client()

    def token(self, user_id="inst-1", **claims):
        with self.app.app_context():
            return create_access_token(identity=user_id, additional_claims=claims)

    def auth(self, user_id="inst-1", **claims):
        return {"Authorization": f"Bearer {self.token(user_id, **claims)}"}

    def issue(self, payload=None, headers=None):
        return self.client.post("/certificates/issue", json=payload or SCENARIO, headers=headers)


class TestHealth(ApiTestCase):

    def test_health(self):
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["status"], "ok")
        self.assertTrue(response.get_json()["timestamp"].endswith("Z"))

    def test_unknown_route_is_json_404(self):
        response = self.client.get("/nope")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.get_json()["error"], "Not Found")


class TestIssueAndVerify(ApiTestCase):

    def test_scenario_issue_then_verify_by_id(self):
        response = self.issue()
        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertTrue(body["success"])
        certificate = body["certificate"]
        self.assertRegex(certificate["certificateId"], r"^CERT-\d{4}-\d{5}$")
        self.assertRegex(certificate["blockchainHash"], r"^0x[0-9a-f]{64}$")
        self.assertEqual(certificate["network"], "hyperledger-fabric")
        self.assertEqual(certificate["channelName"], "certificate-channel")

        verify = self.client.post("/certificates/verify", json={"certificateId": certificate["certificateId"]})
        self.assertEqual(verify.status_code, 200)
        result = verify.get_json()
        self.assertEqual(result["status"], "valid")
        self.assertEqual(result["certificate"]["studentName"], "Jane Doe")
        self.assertEqual(result["certificate"]["transactionId"], certificate["transactionId"])

    def test_verify_by_certificate_data(self):
        issued = self.issue().get_json()["certificate"]
        data = dict(SCENARIO, issuedAt=issued["timestamp"])

        result = self.client.post("/certificates/verify", json={"certificateData": data}).get_json()

        self.assertEqual(result["status"], "valid")
        self.assertEqual(result["certificate"]["certificateId"], issued["certificateId"])

    def test_tampered_storage_is_reported(self):
        certificate_id = self.issue().get_json()["certificate"]["certificateId"]
        record = self.store.get(f"certificate:{certificate_id}")
        record["generalGrade"] = "Good"
        self.store.set(f"certificate:{certificate_id}", record)

        result = self.client.post("/certificates/verify", json={"certificateId": certificate_id}).get_json()

        self.assertEqual(result["status"], "invalid")
        self.assertIn("tampered", result["message"])

    def test_unknown_id_is_invalid(self):
        response = self.client.post("/certificates/verify", json={"certificateId": "CERT-2000-00000"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["status"], "invalid")
        self.assertIn("not found", response.get_json()["message"])

    def test_verify_without_inputs_is_400(self):
        response = self.client.post("/certificates/verify", json={})
        self.assertEqual(response.status_code, 400)
        self.assertIn("error", response.get_json())

    def test_issue_missing_fields_is_400(self):
        payload = {k: v for k, v in SCENARIO.items() if k != "studentName"}
        response = self.issue(payload)
        self.assertEqual(response.status_code, 400)
        self.assertIn("studentName", response.get_json()["error"])

    def test_issue_non_json_body_is_400(self):
        response = self.client.post("/certificates/issue", data="not json", content_type="text/plain")
        self.assertEqual(response.status_code, 400)

    def test_issue_with_garbage_token_is_still_public(self):
        response = self.issue(headers={"Authorization": "Bearer not-a-jwt"})
        self.assertEqual(response.status_code, 200)


class TestListing(ApiTestCase):

    def test_list_requires_token(self):
        response = self.client.get("/certificates/list")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.get_json()["error"], "No access token provided")

    def test_list_rejects_invalid_token(self):
        response = self.client.get("/certificates/list", headers={"Authorization": "Bearer abc.def.ghi"})
        self.assertEqual(response.status_code, 401)

    def test_list_returns_only_own_certificates(self):
        mine = self.issue(headers=self.auth("inst-1")).get_json()["certificate"]["certificateId"]
        self.issue(headers=self.auth("inst-2"))
        self.issue()
        with self.app.app_context():
            self.app.extensions["certledger"].records.save_institution(
                "inst-1", InstitutionRecord("Stanford", "US", "University", "2025-01-01T00:00:00.000Z"))

        body = self.client.get("/certificates/list", headers=self.auth("inst-1")).get_json()

        self.assertEqual([c["certificateId"] for c in body["certificates"]], [mine])
        self.assertEqual(body["certificates"][0]["studentName"], "Jane Doe")
        self.assertEqual(body["institution"]["institutionName"], "Stanford")

    def test_me_merges_claims_and_institution(self):
        with self.app.app_context():
            self.app.extensions["certledger"].records.save_institution(
                "inst-1", InstitutionRecord("Stanford", "US", "University"))
        response = self.client.get("/auth/me", headers=self.auth("inst-1", email="registrar@stanford.edu"))
        user = response.get_json()["user"]
        self.assertEqual(user["id"], "inst-1")
        self.assertEqual(user["email"], "registrar@stanford.edu")
        self.assertEqual(user["country"], "US")


class TestExtraction(ApiTestCase):

    def extract(self, body, headers=None):
        return self.client.post("/certificates/extract", json=body,
                                headers=headers if headers is not None else self.auth())

    def test_extract_requires_token(self):
        response = self.extract({"fileBase64": _png_base64()}, headers={})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(self.vision.calls, [])

    def test_extract_without_file_is_400(self):
        response = self.extract({"fileName": "scan.png"})
        self.assertEqual(response.status_code, 400)

    def test_extract_with_bad_base64_is_400(self):
        response = self.extract({"fileBase64": "%%%", "fileName": "scan.png"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.vision.calls, [])

    def test_successful_extraction(self):
        body = self.extract({"fileBase64": _png_base64(), "fileName": "scan.png"}).get_json()
        self.assertTrue(body["success"])
        self.assertTrue(body["authenticated"])
        self.assertEqual(body["extractedData"]["generalGrade"], "Very Good")
        self.assertEqual(body["stampAnalysis"]["details"], "Seal found")
        self.assertEqual(self.store.get_by_prefix(""), [])

    def test_gate_rejection(self):
        self.vision.replies[InstructionKind.AUTHENTICITY_GATE] = GATE_FAIL
        response = self.extract({"fileBase64": _png_base64(), "fileName": "scan.png"})
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.get_json()["success"])
        self.assertEqual(self.vision.calls, [InstructionKind.AUTHENTICITY_GATE])

    def test_vision_failure_is_500(self):
        self.vision.replies[InstructionKind.AUTHENTICITY_GATE] = ExternalServiceError("Document analysis failed")
        response = self.extract({"fileBase64": _png_base64(), "fileName": "scan.png"})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.get_json()["error"], "Document analysis failed")

    def test_parse_failure_is_500(self):
        self.vision.replies[InstructionKind.FIELD_EXTRACTION] = "no json here"
        response = self.extract({"fileBase64": _png_base64(), "fileName": "scan.png"})
        self.assertEqual(response.status_code, 500)
        self.assertIn("parse", response.get_json()["error"])


class TestDebugLogging(unittest.TestCase):

    def setUp(self):
        self.package_logger = logging.getLogger("certledger")
        self.addCleanup(self.package_logger.setLevel, self.package_logger.level)
        self.addCleanup(self.package_logger.removeHandler, default_handler)

    def test_service_info_lines_reach_a_handler_in_debug(self):
        app = create_app('testing', test_config={'TESTING': False, 'DEBUG': True},
                         store=MemoryKeyValueStore(), vision_client=ScriptedVision())
        self.assertTrue(app.debug)

        service_logger = logging.getLogger("certledger.services.issuance_service")
        self.assertTrue(service_logger.isEnabledFor(logging.INFO))
        self.assertTrue(has_level_handler(service_logger))


class TestSqlBackend(unittest.TestCase):

    def setUp(self):
        self.app = create_app('testing', test_config={'KV_STORE_BACKEND': 'sql'}, vision_client=ScriptedVision())
        self.client = self.app.test_client()

    def test_round_trip_through_the_database(self):
        issued = self.client.post("/certificates/issue", json=SCENARIO).get_json()["certificate"]
        result = self.client.post("/certificates/verify", json={"certificateId": issued["certificateId"]}).get_json()
        self.assertEqual(result["status"], "valid")

        by_data = self.client.post(
            "/certificates/verify", json={"certificateData": dict(SCENARIO, issuedAt=issued["timestamp"])}
        ).get_json()
        self.assertEqual(by_data["certificate"]["certificateId"], issued["certificateId"])

    def test_sql_store_insert_if_absent(self):
        with self.app.app_context():
            store = SqlKeyValueStore()
            self.assertTrue(store.add("certificate:CERT-2025-00001", {"studentName": "Jane Doe"}))
            self.assertFalse(store.add("certificate:CERT-2025-00001", {"studentName": "Impostor"}))
            store.set("certificate:CERT-2025-00002", {"studentName": "John Roe"})
            store.set("institution:inst-1:certificates", ["CERT-2025-00001"])

            self.assertEqual(store.get("certificate:CERT-2025-00001"), {"studentName": "Jane Doe"})
            self.assertEqual(
                [v["studentName"] for v in store.get_by_prefix("certificate:CERT-")],
                ["Jane Doe", "John Roe"],
            )
            self.assertIsNone(store.get("certificate:CERT-2025-99999"))

    def test_register_institution_command(self):
        runner = self.app.test_cli_runner()
        result = runner.invoke(args=["register-institution", "inst-9", "MIT", "--country", "US"])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertTrue(re.search(r"MIT", result.output))

        with self.app.app_context():
            institution = self.app.extensions["certledger"].records.get_institution("inst-9")
        self.assertEqual(institution.institution_name, "MIT")
        self.assertEqual(institution.country, "US")


if __name__ == "__main__":
    unittest.main(verbosity=2)
