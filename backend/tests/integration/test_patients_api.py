"""
API tests for the patients router.
"""

from models import Appointment, Patient
from utils.datetime_utils import instant_to_wall_clock


def create_patient(client, **overrides):
    payload = {"full_name": "Carla Dias", "session_frequency": "weekly", "session_price": "120.00"}
    payload.update(overrides)
    return client.post("/api/patients", json=payload)


class TestPatientRecords:
    """Create, read, update and list."""

    def test_create_and_get_patient(self, client):
        response = create_patient(client, session_schedules=[{"dayOfWeek": 2, "time": "10:00"}])

        assert response.status_code == 201
        created = response.json()
        assert created["full_name"] == "Carla Dias"
        assert created["active"] is True
        assert created["session_schedules"] == [{"dayOfWeek": 2, "time": "10:00", "paymentStatus": "pending"}]

        fetched = client.get(f"/api/patients/{created['id']}")
        assert fetched.status_code == 200
        assert fetched.json()["id"] == created["id"]

    def test_create_with_unknown_frequency_returns_400(self, client):
        response = create_patient(client, session_frequency="daily")

        assert response.status_code == 400

    def test_create_with_blank_name_is_rejected(self, client):
        response = create_patient(client, full_name="   ")

        assert response.status_code == 422

    def test_update_patient_and_patterns(self, client, patient_factory):
        patient = patient_factory()

        response = client.put(
            f"/api/patients/{patient.id}",
            json={"auto_renew_sessions": True, "session_schedules": [{"dayOfWeek": 4, "time": "16:00"}]},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["auto_renew_sessions"] is True
        assert body["session_schedules"][0]["dayOfWeek"] == 4

    def test_empty_update_is_rejected(self, client, patient_factory):
        patient = patient_factory()

        response = client.put(f"/api/patients/{patient.id}", json={})

        assert response.status_code == 422

    def test_list_hides_other_owners(self, client, patient_factory):
        patient_factory(full_name="Mine")
        patient_factory(full_name="Theirs", user_id=2)

        response = client.get("/api/patients")

        assert [p["full_name"] for p in response.json()["patients"]] == ["Mine"]

    def test_unknown_patient_returns_404(self, client):
        assert client.get("/api/patients/999").status_code == 404


class TestPatientSchedules:
    """Generate, replace and deactivate."""

    def test_generate_sessions(self, client, patient_factory):
        patient = patient_factory()

        response = client.post(
            f"/api/patients/{patient.id}/sessions/generate",
            json={"patterns": [{"dayOfWeek": 3, "time": "14:00"}], "weeks": 3},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["created_count"] == 3
        assert body["deleted_count"] == 0
        assert all(s["patient_name"] == "Ana Souza" for s in body["sessions"])

    def test_generate_conflict_returns_409_and_writes_nothing(
        self, client, db_session, patient_factory, session_factory, future_at
    ):
        busy = patient_factory(full_name="Bruno Lima")
        patient = patient_factory()
        booked = session_factory(busy, future_at(3, 17))
        slot = instant_to_wall_clock(booked.start_time)

        response = client.post(
            f"/api/patients/{patient.id}/sessions/generate",
            json={"patterns": [{"dayOfWeek": slot.day_of_week, "time": slot.time}], "weeks": 2},
        )

        assert response.status_code == 409
        assert response.json()["detail"]["conflicting_patient_name"] == "Bruno Lima"
        assert db_session.query(Appointment).count() == 1

    def test_replace_future_sessions(self, client, patient_factory):
        patient = patient_factory()
        client.post(
            f"/api/patients/{patient.id}/sessions/generate",
            json={"patterns": [{"dayOfWeek": 3, "time": "14:00"}], "weeks": 2},
        )

        response = client.put(
            f"/api/patients/{patient.id}/sessions/replace",
            json={"patterns": [{"dayOfWeek": 5, "time": "09:00"}], "weeks": 4},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["deleted_count"] == 2
        assert body["created_count"] == 4

    def test_replace_with_empty_patterns_returns_400(self, client, patient_factory):
        patient = patient_factory()

        response = client.put(f"/api/patients/{patient.id}/sessions/replace", json={"patterns": []})

        assert response.status_code == 400

    def test_deactivate_patient(self, client, db_session, patient_factory, session_factory, future_at):
        patient = patient_factory()
        session_factory(patient, future_at(-2, 13))
        session_factory(patient, future_at(2, 13))
        session_factory(patient, future_at(9, 13))

        response = client.post(f"/api/patients/{patient.id}/deactivate")

        assert response.status_code == 200
        assert response.json() == {"patient_id": patient.id, "deleted_sessions": 2}
        assert db_session.get(Patient, patient.id).active is False
        assert db_session.query(Appointment).count() == 1

    def test_delete_patient(self, client, db_session, patient_factory, session_factory, future_at):
        patient = patient_factory()
        session_factory(patient, future_at(-2, 13))
        session_factory(patient, future_at(2, 13))

        response = client.delete(f"/api/patients/{patient.id}")

        assert response.status_code == 204
        assert db_session.query(Patient).count() == 0
        assert db_session.query(Appointment).count() == 0
        assert client.get(f"/api/patients/{patient.id}").status_code == 404
