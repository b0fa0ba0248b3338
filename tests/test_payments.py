"""
Payment session & verification tests.

Tests cover:
  - Session initiation: UPI link, QR code, timer, reuse while live
  - Verification window boundary (299s live, 300s expired)
  - Member confirmation inside and after the window
  - Administrator decisions and their enrollment cascade
  - Lazy expiry on status reads and bulk reconciliation
"""

import pytest
from sqlalchemy import event, select
from sqlalchemy.exc import OperationalError

from academy.core.exceptions import StorageUnavailable
from academy.models import db
from academy.models.enrollment import Enrollment, Payment
from academy.services import payment_service
from academy.services.payment_service import reconcile_expired_payments
from academy.storage.context import system_context


def _initiate(client, enrollment, headers):
    return client.post(f"/api/v1/user/enrollments/{enrollment.id}/payment/initiate", headers=headers)


def _confirm(client, payment_id, headers, **body):
    return client.post(f"/api/v1/user/payments/{payment_id}/confirm", json=body, headers=headers)


def _status(client, payment_id, headers):
    return client.get(f"/api/v1/user/payments/{payment_id}/status", headers=headers)


def _decide(client, payment_id, status, headers):
    return client.put(
        f"/api/v1/admin/payments/{payment_id}/status", json={"status": status}, headers=headers,
    )


def _payment(payment_id):
    with system_context() as s:
        return s.get(Payment, payment_id)


def _enrollment(enrollment_id):
    with system_context() as s:
        return s.get(Enrollment, enrollment_id)


# ═══════════════════════════════════════════════════════════════
# BLOCK 1: Initiation
# ═══════════════════════════════════════════════════════════════

class TestInitiatePayment:
    def test_session_payload(self, client, clock, enrollment, member_headers):
        res = _initiate(client, enrollment, member_headers)
        assert res.status_code == 200
        data = res.get_json()

        assert data["enrollment_id"] == enrollment.id
        assert data["training_title"] == "Python Foundations"
        assert data["amount"] == 4999.0
        assert data["payment_method"] == "UPI"
        assert data["timer_duration"] == 300
        assert data["expires_at"] == "2026-03-02T10:05:00+00:00"
        assert data["payment_reference"].startswith("TXN-")

        link = data["upi_link"]
        assert link.startswith("upi://pay?")
        assert "pa=academy%40testbank" in link
        assert "pn=Academy+Test" in link
        assert "am=4999.00" in link
        assert f"tr={data['payment_reference']}" in link
        assert data["qr_code"].startswith("data:image/png;base64,")

    def test_reuses_live_session(self, client, clock, enrollment, member_headers):
        first = _initiate(client, enrollment, member_headers).get_json()
        clock.advance(seconds=60)
        second = _initiate(client, enrollment, member_headers).get_json()

        assert second["payment_id"] == first["payment_id"]
        assert second["upi_link"] == first["upi_link"]
        assert second["qr_code"] == first["qr_code"]
        assert second["timer_duration"] == 240

        with system_context() as s:
            assert len(s.execute(select(Payment)).scalars().all()) == 1

    def test_live_at_299_seconds(self, client, clock, enrollment, member_headers):
        first = _initiate(client, enrollment, member_headers).get_json()
        clock.advance(seconds=299)
        second = _initiate(client, enrollment, member_headers).get_json()
        assert second["payment_id"] == first["payment_id"]
        assert second["timer_duration"] == 1

    @pytest.mark.parametrize("elapsed", [300, 301])
    def test_new_session_once_window_elapsed(self, client, clock, enrollment, member_headers, elapsed):
        first = _initiate(client, enrollment, member_headers).get_json()
        clock.advance(seconds=elapsed)
        second = _initiate(client, enrollment, member_headers).get_json()

        assert second["payment_id"] != first["payment_id"]
        assert second["payment_reference"] != first["payment_reference"]
        assert second["timer_duration"] == 300
        assert _payment(first["payment_id"]).status == "rejected"
        assert _payment(second["payment_id"]).status == "awaiting_verification"

    def test_not_awaiting_payment(self, client, member, program, make_enrollment, member_headers):
        enrolled = make_enrollment(member.id, program.id, status="enrolled")
        res = _initiate(client, enrolled, member_headers)
        assert res.status_code == 409
        assert res.get_json()["code"] == "INVALID_STATE"

    def test_other_members_enrollment(self, client, enrollment, other_member, other_headers):
        res = _initiate(client, enrollment, other_headers)
        assert res.status_code == 403


# ═══════════════════════════════════════════════════════════════
# BLOCK 2: Member confirmation
# ═══════════════════════════════════════════════════════════════

class TestConfirmPayment:
    def test_confirm_inside_window(self, client, clock, enrollment, member_headers):
        payment_id = _initiate(client, enrollment, member_headers).get_json()["payment_id"]
        clock.advance(seconds=120)

        res = _confirm(client, payment_id, member_headers, transaction_reference=" 412345678901 ")
        assert res.status_code == 200
        body = res.get_json()
        assert body["message"] == "Payment submitted for verification"
        assert body["payment"]["status"] == "awaiting_verification"
        assert _payment(payment_id).transaction_reference == "412345678901"

    def test_confirm_without_reference(self, client, clock, enrollment, member_headers):
        payment_id = _initiate(client, enrollment, member_headers).get_json()["payment_id"]
        res = _confirm(client, payment_id, member_headers)
        assert res.status_code == 200
        assert _payment(payment_id).transaction_reference is None

    def test_confirm_after_window(self, client, clock, enrollment, member_headers):
        payment_id = _initiate(client, enrollment, member_headers).get_json()["payment_id"]
        clock.advance(minutes=5)

        res = _confirm(client, payment_id, member_headers)
        assert res.status_code == 400
        body = res.get_json()
        assert body["code"] == "SESSION_EXPIRED"
        assert body["error"] == "Payment session expired. Please retry payment."
        assert _payment(payment_id).status == "rejected"

    def test_confirm_decided_payment(self, client, clock, enrollment, member_headers, admin_headers):
        payment_id = _initiate(client, enrollment, member_headers).get_json()["payment_id"]
        _decide(client, payment_id, "confirmed", admin_headers)

        res = _confirm(client, payment_id, member_headers)
        assert res.status_code == 409
        assert res.get_json()["code"] == "INVALID_STATE"

    def test_confirm_other_members_payment(self, client, clock, enrollment, member_headers, other_headers):
        payment_id = _initiate(client, enrollment, member_headers).get_json()["payment_id"]
        res = _confirm(client, payment_id, other_headers)
        assert res.status_code == 403


# ═══════════════════════════════════════════════════════════════
# BLOCK 3: Status reads
# ═══════════════════════════════════════════════════════════════

class TestPaymentStatus:
    def test_live_status(self, client, clock, enrollment, member_headers):
        payment_id = _initiate(client, enrollment, member_headers).get_json()["payment_id"]
        clock.advance(seconds=299)

        data = _status(client, payment_id, member_headers).get_json()
        assert data["status"] == "awaiting_verification"
        assert data["is_expired"] is False
        assert data["seconds_remaining"] == 1

    def test_lazy_expiry(self, client, clock, enrollment, member_headers):
        payment_id = _initiate(client, enrollment, member_headers).get_json()["payment_id"]
        clock.advance(seconds=300)

        data = _status(client, payment_id, member_headers).get_json()
        assert data["status"] == "rejected"
        assert data["is_expired"] is True
        assert data["seconds_remaining"] == 0
        assert _payment(payment_id).status == "rejected"

    def test_my_payments(self, client, clock, enrollment, member_headers, other_headers):
        _initiate(client, enrollment, member_headers)

        mine = client.get("/api/v1/user/payments", headers=member_headers).get_json()
        assert mine["count"] == 1
        theirs = client.get("/api/v1/user/payments", headers=other_headers).get_json()
        assert theirs["count"] == 0


# ═══════════════════════════════════════════════════════════════
# BLOCK 4: Administrator decisions
# ═══════════════════════════════════════════════════════════════

class TestPaymentDecisions:
    def test_confirm_enrolls(self, client, clock, enrollment, member_headers, admin_headers):
        payment_id = _initiate(client, enrollment, member_headers).get_json()["payment_id"]

        res = _decide(client, payment_id, "confirmed", admin_headers)
        assert res.status_code == 200
        body = res.get_json()["payment"]
        assert body["status"] == "confirmed"
        assert body["enrollment_status"] == "enrolled"
        assert body["enrollment_updated"] is True

        assert _payment(payment_id).status == "confirmed"
        assert _enrollment(enrollment.id).status == "enrolled"

    def test_reject_confirmed_reverts_enrollment(self, client, clock, enrollment, member_headers, admin_headers):
        payment_id = _initiate(client, enrollment, member_headers).get_json()["payment_id"]
        _decide(client, payment_id, "confirmed", admin_headers)

        res = _decide(client, payment_id, "rejected", admin_headers)
        assert res.status_code == 200
        assert _payment(payment_id).status == "rejected"
        assert _enrollment(enrollment.id).status == "awaiting_payment"

    def test_refund_keeps_enrollment(self, client, clock, enrollment, member_headers, admin_headers):
        payment_id = _initiate(client, enrollment, member_headers).get_json()["payment_id"]
        _decide(client, payment_id, "confirmed", admin_headers)

        res = _decide(client, payment_id, "refunded", admin_headers)
        assert res.status_code == 200
        assert res.get_json()["payment"]["enrollment_updated"] is False
        assert _enrollment(enrollment.id).status == "enrolled"

    def test_refunded_is_terminal(self, client, clock, enrollment, member_headers, admin_headers):
        payment_id = _initiate(client, enrollment, member_headers).get_json()["payment_id"]
        _decide(client, payment_id, "confirmed", admin_headers)
        _decide(client, payment_id, "refunded", admin_headers)

        res = _decide(client, payment_id, "confirmed", admin_headers)
        assert res.status_code == 409
        assert res.get_json()["code"] == "INVALID_STATE"

    def test_refund_requires_confirmation(self, client, clock, enrollment, member_headers, admin_headers):
        payment_id = _initiate(client, enrollment, member_headers).get_json()["payment_id"]
        res = _decide(client, payment_id, "refunded", admin_headers)
        assert res.status_code == 409
        assert _payment(payment_id).status == "awaiting_verification"

    @pytest.mark.parametrize("status", ["awaiting_verification", "paid", None, ["confirmed"], {"status": "confirmed"}])
    def test_invalid_status(self, client, clock, enrollment, member_headers, admin_headers, status):
        payment_id = _initiate(client, enrollment, member_headers).get_json()["payment_id"]
        res = _decide(client, payment_id, status, admin_headers)
        assert res.status_code == 400
        body = res.get_json()
        assert body["code"] == "VALIDATION_FAILED"
        assert body["error"] == "Invalid payment status"

    def test_late_confirmation_of_expired_session(self, client, clock, enrollment, member_headers, admin_headers):
        payment_id = _initiate(client, enrollment, member_headers).get_json()["payment_id"]
        clock.advance(minutes=10)
        _status(client, payment_id, member_headers)
        assert _payment(payment_id).status == "rejected"

        res = _decide(client, payment_id, "confirmed", admin_headers)
        assert res.status_code == 200
        assert _enrollment(enrollment.id).status == "enrolled"

    def test_failed_enrollment_write_keeps_payment(self, client, clock, enrollment, member_headers, admin_identity):
        payment_id = _initiate(client, enrollment, member_headers).get_json()["payment_id"]

        def _fail_enrollment_update(session, flush_context, instances):
            if any(isinstance(obj, Enrollment) for obj in session.dirty):
                raise OperationalError("UPDATE enrollments", {}, Exception("server closed the connection"))

        event.listen(db.session, "before_flush", _fail_enrollment_update)
        try:
            with pytest.raises(StorageUnavailable):
                payment_service.set_payment_status(admin_identity, payment_id, "confirmed")
        finally:
            event.remove(db.session, "before_flush", _fail_enrollment_update)

        assert _payment(payment_id).status == "awaiting_verification"
        assert _enrollment(enrollment.id).status == "awaiting_payment"

    def test_unknown_payment(self, client, admin_headers):
        res = _decide(client, "missing", "confirmed", admin_headers)
        assert res.status_code == 404

    def test_member_cannot_decide(self, client, clock, enrollment, member_headers):
        payment_id = _initiate(client, enrollment, member_headers).get_json()["payment_id"]
        res = _decide(client, payment_id, "confirmed", member_headers)
        assert res.status_code == 403
        assert _payment(payment_id).status == "awaiting_verification"

    def test_decision_recorded_in_activity_log(self, client, clock, enrollment, admin, member_headers, admin_headers):
        payment_id = _initiate(client, enrollment, member_headers).get_json()["payment_id"]
        _decide(client, payment_id, "confirmed", admin_headers)

        logs = client.get(
            "/api/v1/admin/activity-logs?action=payment.update_status", headers=admin_headers,
        ).get_json()["logs"]
        assert len(logs) == 1
        assert logs[0]["admin_id"] == admin.id
        assert logs[0]["resource_id"] == payment_id
        assert logs[0]["details"] == {"status": "confirmed", "enrollment_updated": True}

    def test_admin_payment_listing(self, client, clock, enrollment, member, member_headers, admin_headers):
        _initiate(client, enrollment, member_headers)
        data = client.get(
            "/api/v1/admin/payments?status=awaiting_verification", headers=admin_headers,
        ).get_json()
        assert data["count"] == 1
        assert data["payments"][0]["email"] == member.email

    def test_admin_payment_listing_unknown_status(self, client, admin_headers):
        res = client.get("/api/v1/admin/payments?status=pending", headers=admin_headers)
        assert res.status_code == 400
        assert res.get_json()["error"] == "Invalid payment status"


# ═══════════════════════════════════════════════════════════════
# BLOCK 5: Reconciliation
# ═══════════════════════════════════════════════════════════════

class TestReconcileExpiredPayments:
    def test_rejects_only_elapsed_sessions(
        self, client, clock, enrollment, other_member, program, make_enrollment,
        member_headers, other_headers,
    ):
        old_id = _initiate(client, enrollment, member_headers).get_json()["payment_id"]
        clock.advance(minutes=4)
        other_enrollment = make_enrollment(other_member.id, program.id)
        new_id = _initiate(client, other_enrollment, other_headers).get_json()["payment_id"]
        clock.advance(minutes=1)

        assert reconcile_expired_payments() == 1
        assert _payment(old_id).status == "rejected"
        assert _payment(new_id).status == "awaiting_verification"

    def test_cli_command(self, app, client, clock, enrollment, member_headers):
        payment_id = _initiate(client, enrollment, member_headers).get_json()["payment_id"]
        clock.advance(minutes=6)

        result = app.test_cli_runner().invoke(args=["reconcile-payments"])
        assert result.exit_code == 0
        assert _payment(payment_id).status == "rejected"

    def test_nothing_to_do(self):
        assert reconcile_expired_payments() == 0
