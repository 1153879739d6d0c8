"""
HTTP API tests.

Components are wired with the test fixtures and state is seeded
directly; consumers do not run.
"""

import asyncio

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from main import create_app

from conftest import T0, appointment_time, booked_event

PATIENT = {
    "first_name": "Ada",
    "last_name": "Lovelace",
    "email": "ada@example.com",
    "phone_number": "+447000000001",
}


@pytest.fixture
def client(services) -> TestClient:
    return TestClient(create_app(services, start_consumers=False))


def session_body(appointment_id: str = "42") -> dict:
    return {
        "appointment_id": appointment_id,
        "patient_id": "PAT-1",
        "doctor_id": "DOC-7",
        "scheduled_time": appointment_time().isoformat(),
    }


class TestHealth:
    def test_health(self, client) -> None:
        response = client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["status"] == "healthy"
        assert body["storage_backend"] == "memory"
        assert body["consumers_running"] is False


class TestRegistrationEndpoints:
    def test_register_and_fetch(self, client) -> None:
        created = client.post("/patients", json=PATIENT)

        assert created.status_code == status.HTTP_201_CREATED
        patient_id = created.json()["id"]
        fetched = client.get(f"/patients/{patient_id}")
        assert fetched.status_code == status.HTTP_200_OK
        assert fetched.json()["email"] == "ada@example.com"

    def test_list_patients(self, client) -> None:
        first = client.post("/patients", json=PATIENT).json()
        second = client.post(
            "/patients", json={**PATIENT, "email": "grace@example.com", "phone_number": "+447000000002"}
        ).json()

        response = client.get("/patients")

        assert response.status_code == status.HTTP_200_OK
        assert {p["id"] for p in response.json()} == {first["id"], second["id"]}

    def test_duplicate_email_is_conflict(self, client) -> None:
        client.post("/patients", json=PATIENT)

        response = client.post("/patients", json={**PATIENT, "phone_number": "+447000000002"})

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["error"] == "CONFLICT"

    def test_invalid_body_is_validation_error(self, client) -> None:
        response = client.post("/patients", json={**PATIENT, "email": "not-an-email"})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        body = response.json()
        assert body["error"] == "VALIDATION"
        assert any(error["field"].endswith("email") for error in body["details"]["errors"])

    def test_unknown_patient_is_not_found(self, client) -> None:
        response = client.get("/patients/PAT-MISSING")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json() == {
            "error": "NOT_FOUND",
            "message": "Patient not found with ID: PAT-MISSING",
            "details": {"entity_type": "Patient", "entity_id": "PAT-MISSING"},
        }

    def test_publish_failure_is_retryable(self, client, bus) -> None:
        bus.set_available(False)

        response = client.post("/patients", json=PATIENT)

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.headers["Retry-After"] == "5"
        assert response.json()["error"] == "TRANSIENT"


class TestSchedulingEndpoints:
    def test_book_eligible_patient(self, client, services) -> None:
        asyncio.run(services.eligibility.record_registration("PAT-1", "+447000000001", T0))

        response = client.post(
            "/appointments",
            json={"patient_id": "PAT-1", "doctor_id": "DOC-7", "scheduled_at": appointment_time().isoformat()},
        )

        assert response.status_code == status.HTTP_201_CREATED
        appointment = response.json()
        assert appointment["status"] == "SCHEDULED"

        listed = client.get("/appointments/patient/PAT-1").json()
        assert [a["id"] for a in listed] == [appointment["id"]]

        updated = client.put(f"/appointments/{appointment['id']}/status", json={"status": "CONFIRMED"})
        assert updated.json()["status"] == "CONFIRMED"

    def test_ineligible_patient(self, client) -> None:
        response = client.post(
            "/appointments",
            json={"patient_id": "PAT-1", "doctor_id": "DOC-7", "scheduled_at": appointment_time().isoformat()},
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert response.json()["error"] == "INELIGIBLE"
        assert response.json()["details"]["registered"] is False

    def test_past_time_is_rejected(self, client, services) -> None:
        asyncio.run(services.eligibility.record_registration("PAT-1", "+447000000001", T0))

        response = client.post(
            "/appointments",
            json={"patient_id": "PAT-1", "doctor_id": "DOC-7", "scheduled_at": appointment_time(-1).isoformat()},
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert response.json()["error"] == "VALIDATION"

    def test_eligibility_endpoints(self, client, services) -> None:
        asyncio.run(services.eligibility.record_registration("PAT-1", "+447000000001", T0))

        check = client.get("/appointments/patient/PAT-1/eligible").json()
        listed = client.get("/appointments/eligible-patients").json()

        assert check["eligible"] is True
        assert check["window_days"] == 3
        assert listed == {"patient_ids": ["PAT-1"], "count": 1}


class TestDeliveryEndpoints:
    def test_session_lifecycle(self, client, services, bus) -> None:
        asyncio.run(services.mappings.on_appointment_booked(booked_event("42")))

        created = client.post("/api/v1/sessions", json=session_body())
        assert created.status_code == status.HTTP_201_CREATED
        session_id = created.json()["id"]
        assert client.get("/api/v1/appointments/42").json()["status"] == "SESSION_READY"

        again = client.post("/api/v1/sessions", json=session_body())
        assert again.status_code == status.HTTP_409_CONFLICT
        assert again.json()["error"] == "CONFLICT"

        started = client.post(f"/api/v1/sessions/{session_id}/start")
        assert started.status_code == status.HTTP_200_OK
        assert started.json()["status"] == "STARTED"

        restarted = client.post(f"/api/v1/sessions/{session_id}/start")
        assert restarted.status_code == status.HTTP_409_CONFLICT
        assert restarted.json()["error"] == "INVALID_STATE"

        completed = client.post(f"/api/v1/sessions/{session_id}/complete")
        assert completed.json()["status"] == "COMPLETED"
        assert client.get("/api/v1/appointments/42").json()["status"] == "COMPLETED"
        assert len(bus.published("session.started")) == 1

    def test_list_all_mappings_and_sessions(self, client, services) -> None:
        assert client.get("/api/v1/appointments").json() == []
        assert client.get("/api/v1/sessions").json() == []
        asyncio.run(services.mappings.on_appointment_booked(booked_event("42", hours=72)))
        asyncio.run(services.mappings.on_appointment_booked(booked_event("43", hours=24)))
        session_id = client.post("/api/v1/sessions", json=session_body("43")).json()["id"]

        mappings = client.get("/api/v1/appointments").json()
        sessions = client.get("/api/v1/sessions").json()

        assert [m["appointment_id"] for m in mappings] == ["43", "42"]
        assert [s["id"] for s in sessions] == [session_id]

    def test_session_without_confirmed_mapping(self, client) -> None:
        response = client.post("/api/v1/sessions", json=session_body())

        assert response.status_code == status.HTTP_412_PRECONDITION_FAILED
        assert response.json()["error"] == "PRECONDITION_FAILED"

    def test_start_with_bus_down(self, client, services, bus) -> None:
        asyncio.run(services.mappings.on_appointment_booked(booked_event("42")))
        session_id = client.post("/api/v1/sessions", json=session_body()).json()["id"]
        bus.set_available(False)

        response = client.post(f"/api/v1/sessions/{session_id}/start")

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.headers["Retry-After"] == "5"

    def test_mapping_override_and_stats(self, client, services) -> None:
        asyncio.run(services.mappings.on_appointment_booked(booked_event("42")))

        refused = client.post("/api/v1/appointments/42/status", json={"status": "COMPLETED"})
        cancelled = client.post("/api/v1/appointments/42/status", json={"status": "CANCELLED"})
        stats = client.get("/api/v1/appointments/stats").json()

        assert refused.status_code == status.HTTP_412_PRECONDITION_FAILED
        assert cancelled.json()["status"] == "CANCELLED"
        assert stats["CANCELLED"] == 1
        assert stats["CONFIRMED"] == 0

    def test_session_files(self, client, services) -> None:
        asyncio.run(services.mappings.on_appointment_booked(booked_event("42")))
        session_id = client.post("/api/v1/sessions", json=session_body()).json()["id"]

        added = client.post(
            f"/api/v1/sessions/{session_id}/files",
            json={
                "original_file_name": "bloods.pdf",
                "file_size": 1024,
                "category": "LAB_REPORT",
                "uploaded_by": "DOCTOR",
                "uploaded_by_id": "DOC-7",
            },
        )
        assert added.status_code == status.HTTP_201_CREATED
        file_id = added.json()["id"]

        assert client.get(f"/api/v1/sessions/{session_id}").json()["has_doctor_files"] is True
        assert len(client.get(f"/api/v1/sessions/{session_id}/files?uploaded_by=DOCTOR").json()) == 1

        removed = client.delete(f"/api/v1/sessions/{session_id}/files/{file_id}")
        assert removed.json() == {"file_id": file_id, "deleted": True}
        assert client.get(f"/api/v1/sessions/{session_id}").json()["file_count"] == 0
