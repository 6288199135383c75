# certledger/routes/certificates.py

from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required, get_jwt_identity, verify_jwt_in_request
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError

from certledger.errors import ValidationError
from certledger.extensions import get_services
from certledger.services import pdf_service

certificates_bp = Blueprint("certificates", __name__)


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object.")
    return data


def _optional_identity():
    """Returns the bearer's user id, or None for anonymous (or unusable) credentials."""
    try:
        verify_jwt_in_request(optional=True)
        return get_jwt_identity()
    except (JWTExtendedException, PyJWTError) as e:
        current_app.logger.info(f"Ignoring unusable bearer token on a public route: {e}")
        return None


@certificates_bp.route("/issue", methods=["POST"])
def issue_certificate():
    """Issues a certificate; with a bearer token it is also filed under the issuer's listing."""
    payload = _json_body()
    owner_id = _optional_identity()
    issued = get_services().issuance.issue(payload, owner_id=owner_id)
    return jsonify(success=True, certificate=issued.to_dict())


@certificates_bp.route("/verify", methods=["POST"])
def verify_certificate():
    body = _json_body()
    result = get_services().verification.verify(
        certificate_id=body.get("certificateId"),
        certificate_data=body.get("certificateData"),
    )
    return jsonify(result.to_dict())


@certificates_bp.route("/list", methods=["GET"])
@jwt_required()
def list_certificates():
    """Lists the certificates issued by the current institution."""
    user_id = get_jwt_identity()
    records = get_services().records
    certificates = [record.to_listing_dict() for record in records.list_owned_certificates(user_id)]
    institution = records.get_institution(user_id)
    return jsonify(
        certificates=certificates,
        institution=institution.to_dict() if institution else None,
    )


@certificates_bp.route("/extract", methods=["POST"])
@jwt_required()
def extract_certificate():
    """
    Runs the stamp/signature gate and, if it passes, field extraction on an
    uploaded certificate image or PDF. Returns proposed fields; nothing is stored.
    """
    body = _json_body()
    file_name = body.get("fileName")
    if not body.get("fileBase64"):
        raise ValidationError("No file data provided")

    current_app.logger.info(f"Processing certificate: {file_name}")
    document = pdf_service.prepare_document(body["fileBase64"], file_name)
    outcome = get_services().extraction.run(document.image_base64, document.media_type)
    return jsonify(outcome.to_dict())
