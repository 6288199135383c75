# certledger/routes/auth.py

from flask import Blueprint, jsonify
from flask_jwt_extended import jwt_required, get_jwt_identity, get_jwt

from certledger.extensions import get_services

auth_bp = Blueprint("auth", __name__)


@auth_bp.route('/me', methods=['GET'])
@jwt_required()
def me():
    """
    Returns the identity behind the bearer token, merged with the institution
    sidecar record. Accounts themselves live in the external identity provider.
    """
    claims = get_jwt()
    user_id = get_jwt_identity()

    user = {"id": user_id, "email": claims.get("email")}
    metadata = claims.get("user_metadata")
    if isinstance(metadata, dict):
        user.update(metadata)

    institution = get_services().records.get_institution(user_id)
    if institution:
        user.update(institution.to_dict())

    return jsonify(user=user)
