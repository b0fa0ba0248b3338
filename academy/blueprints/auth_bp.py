"""
Auth Blueprint — signup, login and session token endpoints.

  POST /api/v1/auth/signup          — Member signup → token
  POST /api/v1/auth/admin/signup    — Administrator signup (requires admin_secret)
  POST /api/v1/auth/login           — Email + password → token
  POST /api/v1/auth/logout          — Acknowledge logout (tokens are stateless)
  GET  /api/v1/auth/verify-token    — Identity carried by the presented token
  POST /api/v1/auth/refresh-token   — Fresh token from the current account row
"""

import logging

from flask import Blueprint, jsonify

from academy.blueprints import json_body
from academy.middleware.jwt_auth import current_identity, login_required
from academy.services import auth_service

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth_bp", __name__, url_prefix="/api/v1/auth")


# ═══════════════════════════════════════════════════════════════
# Signup
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/signup", methods=["POST"])
def signup():
    """
    Create a member account.

    Body: { "full_name", "email", "password", "phone"?, "profession"?,
            "college"?, "company"? }. ``role`` / ``is_admin`` are ignored.
    """
    result = auth_service.signup(json_body())
    return jsonify(result), 201


@auth_bp.route("/admin/signup", methods=["POST"])
def admin_signup():
    """Create an administrator account. Body adds ``admin_secret``."""
    result = auth_service.admin_signup(json_body())
    return jsonify(result), 201


# ═══════════════════════════════════════════════════════════════
# Login / logout
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/login", methods=["POST"])
def login():
    """Body: { "email": "...", "password": "..." }"""
    data = json_body()
    result = auth_service.login(data.get("email"), data.get("password"))
    return jsonify(result), 200


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    """Tokens are not revocable server-side; the client discards its copy."""
    identity = current_identity()
    logger.info("Account %s logged out", identity.id)
    return jsonify({"message": "Logged out successfully"}), 200


# ═══════════════════════════════════════════════════════════════
# Token
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/verify-token", methods=["GET"])
@login_required
def verify_token():
    return jsonify({"valid": True, "user": current_identity().to_dict()}), 200


@auth_bp.route("/refresh-token", methods=["POST"])
@login_required
def refresh_token():
    result = auth_service.refresh_identity_token(current_identity())
    return jsonify(result), 200
