"""
User Blueprint — member self-service endpoints.

  GET  /api/v1/user/profile                                    — Own profile
  PUT  /api/v1/user/profile                                    — Update own profile fields
  PUT  /api/v1/user/change-password                            — Change own password
  GET  /api/v1/user/accounts/<user_id>                         — Self or administrator
  GET  /api/v1/user/training-programs                          — Active catalog
  GET  /api/v1/user/training-programs/<program_id>             — One active program
  GET  /api/v1/user/enrollments                                — Own enrollments
  POST /api/v1/user/enrollments                                — Enroll (optionally with details)
  GET  /api/v1/user/enrollments/<enrollment_id>                — One own enrollment
  POST /api/v1/user/enrollments/<enrollment_id>/payment/initiate
  POST /api/v1/user/payments/<payment_id>/confirm
  GET  /api/v1/user/payments/<payment_id>/status
  GET  /api/v1/user/payments                                   — Own payments
  GET  /api/v1/user/certificates                               — Own certificates
  GET  /api/v1/user/dashboard                                  — Summary

Every route requires a session token and the member role; routes keyed by a
resource id additionally check ownership before the service runs.
"""

from flask import Blueprint, jsonify

from academy.blueprints import json_body
from academy.core.identity import ROLE_ADMINISTRATOR, ROLE_MEMBER
from academy.middleware.jwt_auth import current_identity, login_required
from academy.middleware.permission_required import (
    require_ownership,
    require_role,
    require_self_or_admin,
)
from academy.models.enrollment import Enrollment, Payment
from academy.services import (
    account_service,
    auth_service,
    catalog_service,
    certificate_service,
    dashboard_service,
    enrollment_service,
    payment_service,
)

user_bp = Blueprint("user_bp", __name__, url_prefix="/api/v1/user")

member_only = require_role(ROLE_MEMBER)


# ═══════════════════════════════════════════════════════════════
# Profile
# ═══════════════════════════════════════════════════════════════
@user_bp.route("/profile", methods=["GET"])
@login_required
@member_only
def get_profile():
    return jsonify({"user": account_service.get_profile(current_identity())}), 200


@user_bp.route("/profile", methods=["PUT"])
@login_required
@member_only
def update_profile():
    """Body: any of full_name, phone, profession, college, company."""
    user = account_service.update_profile(current_identity(), json_body())
    return jsonify({"user": user}), 200


@user_bp.route("/change-password", methods=["PUT"])
@login_required
@require_role(ROLE_MEMBER, ROLE_ADMINISTRATOR)
def change_password():
    """Body: { "current_password", "new_password" }"""
    data = json_body()
    auth_service.change_password(
        current_identity(), data.get("current_password"), data.get("new_password"),
    )
    return jsonify({"message": "Password changed successfully"}), 200


@user_bp.route("/accounts/<user_id>", methods=["GET"])
@login_required
@require_self_or_admin("user_id")
def get_account(user_id):
    return jsonify({"user": account_service.get_account(current_identity(), user_id)}), 200


# ═══════════════════════════════════════════════════════════════
# Catalog
# ═══════════════════════════════════════════════════════════════
@user_bp.route("/training-programs", methods=["GET"])
@login_required
@member_only
def list_training_programs():
    programs = catalog_service.list_programs(current_identity())
    return jsonify({"training_programs": programs, "count": len(programs)}), 200


@user_bp.route("/training-programs/<program_id>", methods=["GET"])
@login_required
@member_only
def get_training_program(program_id):
    return jsonify(catalog_service.get_program(current_identity(), program_id)), 200


# ═══════════════════════════════════════════════════════════════
# Enrollments
# ═══════════════════════════════════════════════════════════════
@user_bp.route("/enrollments", methods=["GET"])
@login_required
@member_only
def list_enrollments():
    enrollments = enrollment_service.list_my_enrollments(current_identity())
    return jsonify({"enrollments": enrollments, "count": len(enrollments)}), 200


@user_bp.route("/enrollments", methods=["POST"])
@login_required
@member_only
def create_enrollment():
    """
    Body: { "training_id", "full_name"?, "phone"? }

    With ``full_name`` the enrollment form details are applied to the
    profile and a retry while awaiting payment returns the same enrollment.
    """
    data = json_body()
    identity = current_identity()
    if "full_name" in data:
        enrollment = enrollment_service.enroll_with_details(identity, data.get("training_id"), data)
        status = 200 if enrollment.pop("retry") else 201
    else:
        enrollment = enrollment_service.create_enrollment(identity, data.get("training_id"))
        status = 201
    return jsonify({"enrollment": enrollment}), status


@user_bp.route("/enrollments/<enrollment_id>", methods=["GET"])
@login_required
@member_only
@require_ownership(Enrollment, "enrollment_id")
def get_enrollment(enrollment_id):
    enrollment = enrollment_service.get_enrollment(current_identity(), enrollment_id)
    return jsonify({"enrollment": enrollment}), 200


# ═══════════════════════════════════════════════════════════════
# Payments
# ═══════════════════════════════════════════════════════════════
@user_bp.route("/enrollments/<enrollment_id>/payment/initiate", methods=["POST"])
@login_required
@member_only
@require_ownership(Enrollment, "enrollment_id")
def initiate_payment(enrollment_id):
    session = payment_service.initiate_payment(current_identity(), enrollment_id)
    return jsonify(session), 200


@user_bp.route("/payments/<payment_id>/confirm", methods=["POST"])
@login_required
@member_only
@require_ownership(Payment, "payment_id")
def confirm_payment(payment_id):
    """Body: { "transaction_reference"? }"""
    payment = payment_service.confirm_payment(
        current_identity(), payment_id, json_body().get("transaction_reference"),
    )
    return jsonify({
        "message": "Payment submitted for verification",
        "payment": payment,
    }), 200


@user_bp.route("/payments/<payment_id>/status", methods=["GET"])
@login_required
@member_only
@require_ownership(Payment, "payment_id")
def payment_status(payment_id):
    return jsonify(payment_service.get_payment_status(current_identity(), payment_id)), 200


@user_bp.route("/payments", methods=["GET"])
@login_required
@member_only
def list_payments():
    payments = payment_service.list_my_payments(current_identity())
    return jsonify({"payments": payments, "count": len(payments)}), 200


# ═══════════════════════════════════════════════════════════════
# Certificates / dashboard
# ═══════════════════════════════════════════════════════════════
@user_bp.route("/certificates", methods=["GET"])
@login_required
@member_only
def list_certificates():
    certificates = certificate_service.list_my_certificates(current_identity())
    return jsonify({"certificates": certificates, "count": len(certificates)}), 200


@user_bp.route("/dashboard", methods=["GET"])
@login_required
@member_only
def dashboard():
    return jsonify({"dashboard": dashboard_service.member_dashboard(current_identity())}), 200
