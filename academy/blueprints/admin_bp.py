"""
Admin Blueprint — administrator endpoints.

  GET    /api/v1/admin/profile
  GET    /api/v1/admin/users                          ?role=&search=
  GET    /api/v1/admin/users/<user_id>
  PUT    /api/v1/admin/users/<user_id>/role
  GET    /api/v1/admin/training-programs
  POST   /api/v1/admin/training-programs
  PUT    /api/v1/admin/training-programs/<program_id>
  DELETE /api/v1/admin/training-programs/<program_id>
  GET    /api/v1/admin/enrollments                    ?status=&user_id=
  PUT    /api/v1/admin/enrollments/<enrollment_id>/status
  GET    /api/v1/admin/payments                       ?status=&user_id=
  PUT    /api/v1/admin/payments/<payment_id>/status
  GET    /api/v1/admin/certificates                   ?user_id=&training_id=
  POST   /api/v1/admin/certificates
  GET    /api/v1/admin/contact-messages               ?status=&search=
  PUT    /api/v1/admin/contact-messages/<message_id>/status
  GET    /api/v1/admin/activity-logs                  ?admin_id=&action=
  GET    /api/v1/admin/dashboard
  GET    /api/v1/admin/system/stats
  GET    /api/v1/admin/security/alerts

Every state-changing endpoint appends an activity record after the change
has committed. The record is best-effort: a failed write is logged and the
response is unaffected.
"""

from flask import Blueprint, jsonify, request

from academy.blueprints import json_body, query_limit
from academy.middleware.jwt_auth import current_identity, login_required
from academy.middleware.permission_required import require_admin
from academy.services import (
    account_service,
    catalog_service,
    certificate_service,
    contact_service,
    dashboard_service,
    enrollment_service,
    payment_service,
)
from academy.services.audit_service import list_admin_activity, record_admin_activity
from academy.services.security_observability import (
    evaluate_security_alerts,
    get_recent_security_events,
)

admin_bp = Blueprint("admin_bp", __name__, url_prefix="/api/v1/admin")


def _audit(action, resource_type, resource_id, details=None):
    record_admin_activity(
        current_identity(),
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        details=details,
    )


# ═══════════════════════════════════════════════════════════════
# Accounts
# ═══════════════════════════════════════════════════════════════
@admin_bp.route("/profile", methods=["GET"])
@login_required
@require_admin
def get_profile():
    return jsonify({"user": account_service.get_profile(current_identity())}), 200


@admin_bp.route("/users", methods=["GET"])
@login_required
@require_admin
def list_users():
    users = account_service.list_accounts(
        current_identity(),
        role=request.args.get("role"),
        search=request.args.get("search"),
    )
    return jsonify({"users": users, "count": len(users)}), 200


@admin_bp.route("/users/<user_id>", methods=["GET"])
@login_required
@require_admin
def get_user(user_id):
    return jsonify({"user": account_service.get_account(current_identity(), user_id)}), 200


@admin_bp.route("/users/<user_id>/role", methods=["PUT"])
@login_required
@require_admin
def update_user_role(user_id):
    """Body: { "role": "member" | "administrator" }"""
    role = json_body().get("role")
    user = account_service.update_role(current_identity(), user_id, role)
    _audit("user.update_role", "user", user_id, {"role": role})
    return jsonify({"user": user}), 200


# ═══════════════════════════════════════════════════════════════
# Training programs
# ═══════════════════════════════════════════════════════════════
@admin_bp.route("/training-programs", methods=["GET"])
@login_required
@require_admin
def list_training_programs():
    programs = catalog_service.list_programs(current_identity(), include_inactive=True)
    return jsonify({"training_programs": programs, "count": len(programs)}), 200


@admin_bp.route("/training-programs", methods=["POST"])
@login_required
@require_admin
def create_training_program():
    """Body: { "title", "price", "description"?, "duration"?, "is_active"? }"""
    data = json_body()
    program = catalog_service.create_program(current_identity(), data)
    _audit("training_program.create", "training_program", program["id"], data)
    return jsonify({"training_program": program}), 201


@admin_bp.route("/training-programs/<program_id>", methods=["PUT"])
@login_required
@require_admin
def update_training_program(program_id):
    data = json_body()
    program = catalog_service.update_program(current_identity(), program_id, data)
    _audit("training_program.update", "training_program", program_id, data)
    return jsonify({"training_program": program}), 200


@admin_bp.route("/training-programs/<program_id>", methods=["DELETE"])
@login_required
@require_admin
def delete_training_program(program_id):
    deleted = catalog_service.delete_program(current_identity(), program_id)
    _audit("training_program.delete", "training_program", program_id, {"title": deleted["title"]})
    return jsonify({"message": "Training program deleted", "id": program_id}), 200


# ═══════════════════════════════════════════════════════════════
# Enrollments / payments
# ═══════════════════════════════════════════════════════════════
@admin_bp.route("/enrollments", methods=["GET"])
@login_required
@require_admin
def list_enrollments():
    enrollments = enrollment_service.list_enrollments(
        current_identity(),
        status=request.args.get("status"),
        user_id=request.args.get("user_id"),
        limit=query_limit(),
    )
    return jsonify({"enrollments": enrollments, "count": len(enrollments)}), 200


@admin_bp.route("/enrollments/<enrollment_id>/status", methods=["PUT"])
@login_required
@require_admin
def update_enrollment_status(enrollment_id):
    """Body: { "status": "completed" }"""
    status = json_body().get("status")
    enrollment = enrollment_service.update_enrollment_status(current_identity(), enrollment_id, status)
    _audit("enrollment.update_status", "enrollment", enrollment_id, {"status": status})
    return jsonify({"enrollment": enrollment}), 200


@admin_bp.route("/payments", methods=["GET"])
@login_required
@require_admin
def list_payments():
    payments = payment_service.list_payments(
        current_identity(),
        status=request.args.get("status"),
        user_id=request.args.get("user_id"),
        limit=query_limit(),
    )
    return jsonify({"payments": payments, "count": len(payments)}), 200


@admin_bp.route("/payments/<payment_id>/status", methods=["PUT"])
@login_required
@require_admin
def update_payment_status(payment_id):
    """Body: { "status": "confirmed" | "rejected" | "refunded" }"""
    status = json_body().get("status")
    payment = payment_service.set_payment_status(current_identity(), payment_id, status)
    _audit("payment.update_status", "payment", payment_id, {
        "status": status,
        "enrollment_updated": payment["enrollment_updated"],
    })
    return jsonify({"payment": payment}), 200


# ═══════════════════════════════════════════════════════════════
# Certificates
# ═══════════════════════════════════════════════════════════════
@admin_bp.route("/certificates", methods=["GET"])
@login_required
@require_admin
def list_certificates():
    certificates = certificate_service.list_certificates(
        current_identity(),
        user_id=request.args.get("user_id"),
        training_id=request.args.get("training_id"),
        limit=query_limit(),
    )
    return jsonify({"certificates": certificates, "count": len(certificates)}), 200


@admin_bp.route("/certificates", methods=["POST"])
@login_required
@require_admin
def create_certificate():
    """Body: { "user_id", "training_id", "issue_date", "file_url"? }"""
    data = json_body()
    certificate = certificate_service.create_certificate(current_identity(), data)
    _audit("certificate.create", "certificate", certificate["id"], data)
    return jsonify({"certificate": certificate}), 201


# ═══════════════════════════════════════════════════════════════
# Contact messages
# ═══════════════════════════════════════════════════════════════
@admin_bp.route("/contact-messages", methods=["GET"])
@login_required
@require_admin
def list_contact_messages():
    messages = contact_service.list_messages(
        current_identity(),
        status=request.args.get("status"),
        search=request.args.get("search"),
        limit=query_limit(),
    )
    return jsonify({"messages": messages, "count": len(messages)}), 200


@admin_bp.route("/contact-messages/<message_id>/status", methods=["PUT"])
@login_required
@require_admin
def update_contact_message_status(message_id):
    status = json_body().get("status")
    message = contact_service.update_message_status(current_identity(), message_id, status)
    _audit("contact_message.update_status", "contact_message", message_id, {"status": status})
    return jsonify({"message": message}), 200


# ═══════════════════════════════════════════════════════════════
# Activity, dashboard, monitoring
# ═══════════════════════════════════════════════════════════════
@admin_bp.route("/activity-logs", methods=["GET"])
@login_required
@require_admin
def activity_logs():
    logs = list_admin_activity(
        current_identity(),
        admin_id=request.args.get("admin_id"),
        action=request.args.get("action"),
        limit=query_limit(default_limit=100),
    )
    return jsonify({"logs": logs, "count": len(logs)}), 200


@admin_bp.route("/dashboard", methods=["GET"])
@login_required
@require_admin
def dashboard():
    return jsonify({"dashboard": dashboard_service.admin_dashboard(current_identity())}), 200


@admin_bp.route("/system/stats", methods=["GET"])
@login_required
@require_admin
def system_stats():
    return jsonify({"stats": dashboard_service.system_stats(current_identity())}), 200


@admin_bp.route("/security/alerts", methods=["GET"])
@login_required
@require_admin
def security_alerts():
    recent = get_recent_security_events(event_type=request.args.get("event_type"))
    return jsonify({
        **evaluate_security_alerts(),
        "recent_events": recent[-query_limit(default_limit=50):],
    }), 200
