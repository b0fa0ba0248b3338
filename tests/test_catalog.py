"""
Training program catalog tests.

Tests cover:
  - Public / member catalog shows active programs only
  - Administrator CRUD with validation
  - Deletion blocked while enrollments exist
"""

import pytest

ADMIN_URL = "/api/v1/admin/training-programs"


# ═══════════════════════════════════════════════════════════════
# BLOCK 1: Catalog reads
# ═══════════════════════════════════════════════════════════════

class TestCatalogReads:
    def test_public_lists_active_only(self, client, program, inactive_program):
        data = client.get("/api/v1/public/training-programs").get_json()
        assert data["count"] == 1
        assert data["training_programs"][0]["id"] == program.id

    def test_public_hides_inactive_program(self, client, inactive_program):
        res = client.get(f"/api/v1/public/training-programs/{inactive_program.id}")
        assert res.status_code == 404

    def test_public_single_program(self, client, program):
        res = client.get(f"/api/v1/public/training-programs/{program.id}")
        assert res.status_code == 200
        body = res.get_json()
        assert body["title"] == "Python Foundations"
        assert body["price"] == 4999.0

    def test_member_lists_active_only(self, client, program, inactive_program, member_headers):
        data = client.get("/api/v1/user/training-programs", headers=member_headers).get_json()
        assert [p["id"] for p in data["training_programs"]] == [program.id]

    def test_admin_sees_inactive(self, client, program, inactive_program, admin_headers):
        data = client.get(ADMIN_URL, headers=admin_headers).get_json()
        assert {p["id"] for p in data["training_programs"]} == {program.id, inactive_program.id}


# ═══════════════════════════════════════════════════════════════
# BLOCK 2: Administrator writes
# ═══════════════════════════════════════════════════════════════

class TestCatalogWrites:
    def test_create(self, client, admin_headers):
        res = client.post(ADMIN_URL, json={
            "title": "  Data Engineering  ", "price": "12999.50", "duration": "8 weeks",
        }, headers=admin_headers)
        assert res.status_code == 201
        program = res.get_json()["training_program"]
        assert program["title"] == "Data Engineering"
        assert program["price"] == 12999.5
        assert program["is_active"] is True

    @pytest.mark.parametrize("body", [
        {"price": "100"},
        {"title": "No price"},
        {"title": "Negative", "price": "-1"},
        {"title": "Garbage", "price": "ten"},
        {"title": ["Data"], "price": "100"},
        {"title": "Listed", "price": [100]},
        {"title": "Described", "price": "100", "description": {"text": "x"}},
    ])
    def test_create_validation(self, client, admin_headers, body):
        res = client.post(ADMIN_URL, json=body, headers=admin_headers)
        assert res.status_code == 400
        assert res.get_json()["code"] == "VALIDATION_FAILED"

    def test_update(self, client, program, admin_headers):
        res = client.put(f"{ADMIN_URL}/{program.id}", json={"is_active": False}, headers=admin_headers)
        assert res.status_code == 200
        assert res.get_json()["training_program"]["is_active"] is False

        public = client.get("/api/v1/public/training-programs").get_json()
        assert public["count"] == 0

    def test_update_nothing(self, client, program, admin_headers):
        res = client.put(f"{ADMIN_URL}/{program.id}", json={"unknown": 1}, headers=admin_headers)
        assert res.status_code == 400

    def test_update_missing(self, client, admin_headers):
        res = client.put(f"{ADMIN_URL}/missing", json={"title": "X"}, headers=admin_headers)
        assert res.status_code == 404

    def test_member_cannot_create(self, client, member_headers):
        res = client.post(ADMIN_URL, json={"title": "X", "price": "1"}, headers=member_headers)
        assert res.status_code == 403

    def test_create_is_audited(self, client, admin, admin_headers):
        program_id = client.post(
            ADMIN_URL, json={"title": "Audited", "price": "10"}, headers=admin_headers,
        ).get_json()["training_program"]["id"]

        logs = client.get("/api/v1/admin/activity-logs", headers=admin_headers).get_json()["logs"]
        assert logs[0]["action"] == "training_program.create"
        assert logs[0]["resource_id"] == program_id
        assert logs[0]["admin_email"] == admin.email


# ═══════════════════════════════════════════════════════════════
# BLOCK 3: Deletion
# ═══════════════════════════════════════════════════════════════

class TestCatalogDelete:
    def test_delete_without_enrollments(self, client, program, admin_headers):
        res = client.delete(f"{ADMIN_URL}/{program.id}", headers=admin_headers)
        assert res.status_code == 200
        assert res.get_json() == {"message": "Training program deleted", "id": program.id}

        assert client.get(f"{ADMIN_URL}", headers=admin_headers).get_json()["count"] == 0

    def test_delete_with_enrollments_blocked(self, client, program, enrollment, admin_headers):
        res = client.delete(f"{ADMIN_URL}/{program.id}", headers=admin_headers)
        assert res.status_code == 409
        body = res.get_json()
        assert body["error"] == "Cannot delete training program with existing enrollments"
        assert body["details"] == {"enrollment_count": 1}

        assert client.get(f"{ADMIN_URL}", headers=admin_headers).get_json()["count"] == 1

    def test_delete_missing(self, client, admin_headers):
        res = client.delete(f"{ADMIN_URL}/missing", headers=admin_headers)
        assert res.status_code == 404
