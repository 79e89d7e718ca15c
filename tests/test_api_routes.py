"""Tests for the JSON API: intake, validation, resolution and reference data"""

from flask import json

OPERATOR = {"X-Operator-Id": "operator-1"}


def _create(client, app_id, **fields):
    body = {"id": app_id, "project_id": "PROJ-001", "applicant_name": f"Applicant {app_id}"}
    body.update(fields)
    return client.post("/api/applications", json=body, headers=OPERATOR)


class TestCreateApplication:
    """POST /api/applications"""

    def test_create_returns_record_and_screening(self, client):
        response = _create(client, "APP-1", aadhaar="123412341234")

        assert response.status_code == 201
        data = json.loads(response.data)
        assert data["application"]["id"] == "APP-1"
        assert data["application"]["lifecycle_stage"] == "STAGING"
        assert data["application"]["status"] == "PENDING"
        assert data["application"]["audit_log"][0]["action"] == "SAVE"
        assert data["screening"]["findings"] == []

    def test_duplicate_requires_review(self, client):
        _create(client, "APP-1", aadhaar="123412341234")

        response = _create(client, "APP-2", aadhaar="1234-1234-1234")

        assert response.status_code == 409
        data = json.loads(response.data)
        assert data["error"] == "DuplicateReviewRequired"
        assert data["findings"] == [
            {
                "sourceId": "APP-1",
                "matchType": "EXACT",
                "field": "Aadhaar",
                "confidence": 1.0,
                "matchedStage": "STAGING",
            }
        ]
        assert client.get("/api/applications/APP-2/exists").get_json() == {"exists": False}

    def test_acknowledged_duplicate_is_saved(self, client):
        _create(client, "APP-1", aadhaar="123412341234")

        response = _create(client, "APP-2", aadhaar="123412341234", acknowledge_duplicates=True)

        assert response.status_code == 201
        assert "APP-1" in response.get_json()["application"]["duplicate_flags"]

    def test_existing_id_conflicts(self, client):
        _create(client, "APP-1")

        response = _create(client, "APP-1")

        assert response.status_code == 409
        assert response.get_json()["error"] == "ConflictError"
        assert response.get_json()["record_id"] == "APP-1"

    def test_operator_id_required(self, client):
        response = client.post("/api/applications", json={"id": "APP-1"})

        assert response.status_code == 422
        assert response.get_json()["field"] == "actor"

    def test_body_must_be_object(self, client):
        response = client.post("/api/applications", data="not json", headers=OPERATOR)

        assert response.status_code == 400


class TestReadEndpoints:
    def test_get_application(self, client):
        _create(client, "APP-1")

        response = client.get("/api/applications/APP-1")

        assert response.status_code == 200
        assert response.get_json()["revision"] == 1

    def test_unknown_application_is_404(self, client):
        response = client.get("/api/applications/APP-404")

        assert response.status_code == 404
        assert response.get_json()["error"] == "Not Found"

    def test_list_and_queue(self, client):
        _create(client, "APP-1")
        _create(client, "APP-2")
        client.post("/api/applications/APP-2/promote", headers=OPERATOR)

        listing = client.get("/api/applications?project_id=PROJ-001").get_json()
        queue = client.get("/api/applications/queue").get_json()

        assert [a["id"] for a in listing["applications"]] == ["APP-1", "APP-2"]
        assert [a["id"] for a in queue["applications"]] == ["APP-1"]

    def test_screen_without_saving(self, client):
        _create(client, "APP-1", phone_primary="9876543210")

        response = client.post("/api/applications/duplicates", json={"id": "NEW", "phone_primary": "+91 98765 43210"})

        data = response.get_json()
        assert data["requires_review"] is True
        assert data["blocking"][0]["field"] == "Phone"
        assert client.get("/api/applications/NEW/exists").get_json() == {"exists": False}


class TestUpdateAndTransitions:
    def test_update_with_revision(self, client):
        _create(client, "APP-1")

        response = client.put("/api/applications/APP-1", json={"city": "Pune", "revision": 1}, headers=OPERATOR)
        stale = client.put("/api/applications/APP-1", json={"city": "Nashik", "revision": 1}, headers=OPERATOR)

        assert response.status_code == 200
        assert response.get_json()["application"]["city"] == "Pune"
        assert stale.status_code == 409
        assert stale.get_json()["error"] == "StaleWriteError"

    def test_validate_reject_needs_reason(self, client):
        _create(client, "APP-1")

        response = client.post(
            "/api/applications/APP-1/validate", json={"decision": "NOT_ELIGIBLE"}, headers=OPERATOR
        )

        assert response.status_code == 422
        assert response.get_json()["field"] == "rejection_reason"

    def test_full_lifecycle(self, client):
        _create(client, "APP-1")

        promoted = client.post("/api/applications/APP-1/promote", headers=OPERATOR).get_json()
        assert promoted["lifecycle_stage"] == "PRODUCTION"
        assert promoted["audit_log"][-1]["action"] == "PROMOTED"

        validated = client.post(
            "/api/applications/APP-1/validate",
            json={"decision": "ELIGIBLE", "remarks": "All documents verified"},
            headers={"X-Operator-Id": "validator-1"},
        ).get_json()
        assert validated["status"] == "ELIGIBLE"
        assert validated["validator_id"] == "validator-1"

        ready = client.post("/api/applications/APP-1/lottery-ready", headers=OPERATOR).get_json()
        assert ready["lottery_status"] == "Shortlisted"

        awarded = client.post("/api/applications/APP-1/award", headers=OPERATOR).get_json()
        assert awarded["status"] == "AWARDED"

        reset = client.post("/api/applications/APP-1/reset", headers=OPERATOR).get_json()
        assert (reset["lifecycle_stage"], reset["status"]) == ("STAGING", "PENDING")

    def test_invalid_transition_is_409(self, client):
        _create(client, "APP-1")

        response = client.post("/api/applications/APP-1/award", headers=OPERATOR)

        assert response.status_code == 409
        assert response.get_json()["error"] == "InvalidTransitionError"

    def test_document_upload(self, client):
        _create(client, "APP-1")

        response = client.post(
            "/api/applications/APP-1/documents",
            json={"doc_type": "Income Certificate", "file_name": "income.pdf"},
            headers=OPERATOR,
        )

        assert response.status_code == 201
        assert response.get_json()["version"] == 1


class TestResolutions:
    def test_note_and_archive(self, client):
        _create(client, "APP-1", aadhaar="123412341234")
        _create(client, "APP-2", aadhaar="123412341234", acknowledge_duplicates=True)

        response = client.post(
            "/api/resolutions/note-and-archive",
            json={"survivor_id": "APP-1", "loser_id": "APP-2", "rejection_reason": "Same applicant"},
            headers=OPERATOR,
        )

        assert response.status_code == 200
        data = response.get_json()
        assert data["loser"]["lifecycle_stage"] == "ARCHIVED"
        assert data["survivor"]["notes"] == (
            "[System] Application APP-2 is marked as rejected due to duplication (Same applicant)."
        )

    def test_merge(self, client):
        _create(client, "APP-1")
        _create(client, "APP-2", pan="ABCDE1234F")

        data = client.post(
            "/api/resolutions/merge", json={"survivor_id": "APP-1", "loser_id": "APP-2"}, headers=OPERATOR
        ).get_json()

        assert data["loser"]["status"] == "MERGED"
        assert data["loser"]["merged_into_id"] == "APP-1"
        assert data["survivor"]["pan"] == "ABCDE1234F"

    def test_unknown_action_is_404(self, client):
        response = client.post("/api/resolutions/delete", json={}, headers=OPERATOR)

        assert response.status_code == 404

    def test_unknown_record_is_404(self, client):
        _create(client, "APP-1")

        response = client.post(
            "/api/resolutions/link", json={"survivor_id": "APP-1", "loser_id": "APP-9"}, headers=OPERATOR
        )

        assert response.status_code == 404
        assert response.get_json()["record_id"] == "APP-9"


class TestReferenceData:
    def test_stats(self, client):
        _create(client, "APP-1", gender="F")
        _create(client, "APP-2", gender="M")

        stats = client.get("/api/stats?project_id=PROJ-001").get_json()

        assert stats["total"] == 2
        assert stats["pending"] == 2
        assert stats["by_gender"] == {"F": 1, "M": 1}

    def test_settings(self, client):
        settings = client.get("/api/settings").get_json()

        assert settings["duplicate_threshold"] == 0.88
        assert "Income exceeds guidelines" in settings["rejection_reasons"]
        assert "Aadhaar Card" in settings["document_checklist"]
