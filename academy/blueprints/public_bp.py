"""
Public Blueprint — endpoints reachable without a session token.

  GET  /api/v1/public/health                   — Liveness + database check
  GET  /api/v1/public/info                     — Service metadata
  GET  /api/v1/public/training-programs        — Active catalog
  GET  /api/v1/public/training-programs/<id>   — One active program
  POST /api/v1/public/contact                  — Contact form (identity optional)

Catalog reads run under the anonymous principal, so the storage policies
hide inactive programs here just as they do for members.
"""

import logging
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text

from academy.blueprints import json_body
from academy.core.exceptions import AcademyError
from academy.core.identity import ANONYMOUS
from academy.middleware.jwt_auth import current_identity, optional_auth
from academy.models.enrollment import PAYMENT_WINDOW
from academy.services import catalog_service, contact_service
from academy.storage.context import system_context

logger = logging.getLogger(__name__)

public_bp = Blueprint("public_bp", __name__, url_prefix="/api/v1/public")

API_VERSION = "v1"


@public_bp.route("/health", methods=["GET"])
def health():
    """200 when the database answers, 503 otherwise."""
    checks = {}
    try:
        t0 = time.perf_counter()
        with system_context() as session:
            session.execute(text("SELECT 1"))
        checks["database"] = {
            "status": "ok",
            "latency_ms": round((time.perf_counter() - t0) * 1000, 1),
        }
        status = 200
    except AcademyError as exc:
        logger.error("Health check — database failed: %s", exc.log_detail or exc.message)
        checks["database"] = {"status": "error"}
        status = 503

    return jsonify({
        "status": "ok" if status == 200 else "degraded",
        "checks": checks,
    }), status


@public_bp.route("/info", methods=["GET"])
def info():
    return jsonify({
        "name": current_app.config.get("JWT_ISSUER", "academy-enrollment-api"),
        "version": API_VERSION,
        "payment_methods": ["UPI"],
        "payment_window_seconds": int(PAYMENT_WINDOW.total_seconds()),
    }), 200


# ═══════════════════════════════════════════════════════════════
# Catalog
# ═══════════════════════════════════════════════════════════════
@public_bp.route("/training-programs", methods=["GET"])
def list_training_programs():
    programs = catalog_service.list_programs(ANONYMOUS)
    return jsonify({"training_programs": programs, "count": len(programs)}), 200


@public_bp.route("/training-programs/<program_id>", methods=["GET"])
def get_training_program(program_id):
    return jsonify(catalog_service.get_program(ANONYMOUS, program_id)), 200


# ═══════════════════════════════════════════════════════════════
# Contact
# ═══════════════════════════════════════════════════════════════
@public_bp.route("/contact", methods=["POST"])
@optional_auth
def submit_contact():
    """Body: { "full_name", "email", "subject"?, "message" }"""
    result = contact_service.submit_message(current_identity(), json_body())
    return jsonify({"message": "Message received", "contact": result}), 201
