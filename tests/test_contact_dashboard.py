"""
Contact inbox, dashboards, certificates and security monitoring tests.
"""

import time

import pytest
from flask import g
from sqlalchemy import select

from academy.core.exceptions import InsufficientPermissions
from academy.middleware.rate_limiter import rate_limit_key
from academy.models.contact import ContactMessage
from academy.models.enrollment import Enrollment
from academy.services.security_observability import (
    evaluate_security_alerts,
    get_recent_security_events,
    record_security_event,
)
from academy.storage.context import access_context, system_context

CONTACT_URL = "/api/v1/public/contact"


def _contact_body(**overrides):
    body = {
        "full_name": "Visitor",
        "email": "visitor@example.com",
        "subject": "Batch timings",
        "message": "When does the next batch start?",
    }
    body.update(overrides)
    return body


def _messages():
    with system_context() as s:
        return s.execute(select(ContactMessage)).scalars().all()


# ═══════════════════════════════════════════════════════════════
# BLOCK 1: Contact form
# ═══════════════════════════════════════════════════════════════

class TestContactForm:
    def test_anonymous_submission(self, client):
        res = client.post(CONTACT_URL, json=_contact_body())
        assert res.status_code == 201
        body = res.get_json()
        assert body["message"] == "Message received"
        assert body["contact"]["status"] == "new"

        stored = _messages()
        assert len(stored) == 1
        assert stored[0].user_id is None

    def test_signed_in_submission_attributed(self, client, member, member_headers):
        client.post(CONTACT_URL, json=_contact_body(), headers=member_headers)
        assert _messages()[0].user_id == member.id

    @pytest.mark.parametrize("overrides", [
        {"message": ""},
        {"full_name": ""},
        {"email": "nope"},
        {"message": "x" * 5001},
        {"full_name": ["Visitor"]},
        {"message": {"text": "Hi"}},
    ])
    def test_validation(self, client, overrides):
        res = client.post(CONTACT_URL, json=_contact_body(**overrides))
        assert res.status_code == 400
        assert _messages() == []


class TestContactInbox:
    def test_admin_lists_and_searches(self, client, admin_headers):
        client.post(CONTACT_URL, json=_contact_body())
        client.post(CONTACT_URL, json=_contact_body(full_name="Kiran", email="kiran@example.com", subject="Fees"))

        data = client.get("/api/v1/admin/contact-messages?search=kiran", headers=admin_headers).get_json()
        assert data["count"] == 1
        assert data["messages"][0]["full_name"] == "Kiran"

    def test_admin_updates_status(self, client, admin_headers):
        message_id = client.post(CONTACT_URL, json=_contact_body()).get_json()["contact"]["id"]

        res = client.put(
            f"/api/v1/admin/contact-messages/{message_id}/status",
            json={"status": "replied"}, headers=admin_headers,
        )
        assert res.status_code == 200
        assert res.get_json()["message"]["status"] == "replied"

        new = client.get("/api/v1/admin/contact-messages?status=new", headers=admin_headers).get_json()
        assert new["count"] == 0

    @pytest.mark.parametrize("status", ["deleted", ["new"], 1])
    def test_invalid_status(self, client, admin_headers, status):
        message_id = client.post(CONTACT_URL, json=_contact_body()).get_json()["contact"]["id"]
        res = client.put(
            f"/api/v1/admin/contact-messages/{message_id}/status",
            json={"status": status}, headers=admin_headers,
        )
        assert res.status_code == 400
        assert res.get_json()["code"] == "VALIDATION_FAILED"

    def test_member_cannot_read_inbox(self, client, member_headers):
        res = client.get("/api/v1/admin/contact-messages", headers=member_headers)
        assert res.status_code == 403


# ═══════════════════════════════════════════════════════════════
# BLOCK 2: Certificates
# ═══════════════════════════════════════════════════════════════

class TestCertificates:
    URL = "/api/v1/admin/certificates"

    def test_issue_and_list(self, client, member, program, admin_headers, member_headers, other_headers):
        res = client.post(self.URL, json={
            "user_id": member.id, "training_id": program.id, "issue_date": "2026-04-15",
        }, headers=admin_headers)
        assert res.status_code == 201
        certificate = res.get_json()["certificate"]
        assert certificate["certificate_id"].startswith("CERT-")
        assert certificate["issue_date"] == "2026-04-15"
        assert certificate["training_title"] == "Python Foundations"

        mine = client.get("/api/v1/user/certificates", headers=member_headers).get_json()
        assert mine["count"] == 1
        theirs = client.get("/api/v1/user/certificates", headers=other_headers).get_json()
        assert theirs["count"] == 0

    def test_identifiers_unique(self, client, member, program, admin_headers):
        body = {"user_id": member.id, "training_id": program.id, "issue_date": "2026-04-15"}
        first = client.post(self.URL, json=body, headers=admin_headers).get_json()["certificate"]
        second = client.post(self.URL, json=body, headers=admin_headers).get_json()["certificate"]
        assert first["certificate_id"] != second["certificate_id"]

    @pytest.mark.parametrize("body,status", [
        ({"training_id": "x", "issue_date": "2026-04-15"}, 400),
        ({"user_id": "missing", "training_id": "x", "issue_date": "2026-04-15"}, 404),
    ])
    def test_invalid_requests(self, client, admin_headers, body, status):
        res = client.post(self.URL, json=body, headers=admin_headers)
        assert res.status_code == status

    def test_bad_issue_date(self, client, member, program, admin_headers):
        res = client.post(self.URL, json={
            "user_id": member.id, "training_id": program.id, "issue_date": "15/04/2026",
        }, headers=admin_headers)
        assert res.status_code == 400

    def test_member_cannot_issue(self, client, member, program, member_headers):
        res = client.post(self.URL, json={
            "user_id": member.id, "training_id": program.id, "issue_date": "2026-04-15",
        }, headers=member_headers)
        assert res.status_code == 403


# ═══════════════════════════════════════════════════════════════
# BLOCK 3: Dashboards
# ═══════════════════════════════════════════════════════════════

class TestDashboards:
    def test_member_dashboard(self, client, enrollment, member_headers, other_headers):
        mine = client.get("/api/v1/user/dashboard", headers=member_headers).get_json()["dashboard"]
        assert mine["stats"]["total_enrollments"] == 1
        assert mine["stats"]["pending_payments"] == 0
        assert len(mine["recent_enrollments"]) == 1

        theirs = client.get("/api/v1/user/dashboard", headers=other_headers).get_json()["dashboard"]
        assert theirs["stats"]["total_enrollments"] == 0

    def test_admin_dashboard(self, client, enrollment, inactive_program, admin_headers):
        stats = client.get("/api/v1/admin/dashboard", headers=admin_headers).get_json()["dashboard"]["stats"]
        assert stats["total_users"] == 2
        assert stats["total_admins"] == 1
        assert stats["total_programs"] == 2
        assert stats["active_programs"] == 1
        assert stats["total_enrollments"] == 1

    def test_system_stats(self, client, enrollment, admin_headers):
        stats = client.get("/api/v1/admin/system/stats", headers=admin_headers).get_json()["stats"]
        assert stats["accounts"] == {"member": 1, "administrator": 1}
        assert stats["enrollments"] == {"awaiting_payment": 1}
        assert stats["confirmed_revenue"] == 0.0


# ═══════════════════════════════════════════════════════════════
# BLOCK 4: Security monitoring
# ═══════════════════════════════════════════════════════════════

class TestSecurityAlerts:
    def test_ownership_events_counted(self, client, admin_headers, enrollment, other_headers):
        client.get(f"/api/v1/user/enrollments/{enrollment.id}", headers=other_headers)

        data = client.get("/api/v1/admin/security/alerts", headers=admin_headers).get_json()
        assert data["counts"]["ownership_mismatch"] == 1
        assert data["alerts"] == []
        assert data["recent_events"][-1]["event_type"] == "ownership_mismatch"

    def test_storage_violation_alerts_immediately(self, client, admin_headers, member_identity, other_member, program):
        with pytest.raises(InsufficientPermissions):
            with access_context(member_identity) as s:
                s.add(Enrollment(user_id=other_member.id, training_program_id=program.id))

        data = client.get("/api/v1/admin/security/alerts", headers=admin_headers).get_json()
        codes = [a["code"] for a in data["alerts"]]
        assert "SEC-STORAGE-POLICY-001" in codes


class TestAlertRules:
    def test_threshold_reached(self):
        for _ in range(3):
            record_security_event(event_type="ownership_mismatch", reason="other owner")

        alerts = evaluate_security_alerts()["alerts"]
        assert [a["code"] for a in alerts] == ["SEC-OWNERSHIP-001"]
        assert alerts[0]["observed"] == 3
        assert alerts[0]["latest"]["reason"] == "other owner"

    def test_below_threshold(self):
        for _ in range(2):
            record_security_event(event_type="ownership_mismatch", reason="other owner")
        assert evaluate_security_alerts()["alerts"] == []

    def test_events_outside_window_ignored(self):
        record_security_event(event_type="storage_policy_violation", reason="bypass", severity="high")
        later = time.time() + 301
        result = evaluate_security_alerts(now=later)
        assert result["counts"]["storage_policy_violation"] == 0
        assert result["alerts"] == []

    def test_event_filter(self):
        record_security_event(event_type="login_failed", reason="bad password")
        record_security_event(event_type="token_rejected", reason="expired")
        assert [e["event_type"] for e in get_recent_security_events(event_type="login_failed")] == ["login_failed"]
        assert len(get_recent_security_events()) == 2


class TestRateLimitKey:
    def test_account_key_for_signed_in_caller(self, app, member_identity):
        with app.test_request_context("/api/v1/user/profile"):
            g.identity = member_identity
            assert rate_limit_key() == f"account:{member_identity.id}"

    def test_address_key_for_anonymous_caller(self, app):
        with app.test_request_context("/api/v1/public/info", environ_base={"REMOTE_ADDR": "198.51.100.7"}):
            assert rate_limit_key() == "198.51.100.7"
