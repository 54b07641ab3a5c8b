"""
Integration tests for patient records and their schedules.
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal

from core.exceptions import PatientNotFoundError, ScheduleConflictError, ScheduleValidationError
from models import Appointment, FinancialRecord, Patient
from services.financial_service import FinancialService
from services.patient_service import PatientService
from utils.datetime_utils import instant_to_local_date, instant_to_wall_clock


class TestCreatePatient:
    """Test PatientService.create_patient."""

    def test_create_patient_with_patterns(self, db_session):
        patient = PatientService.create_patient(
            db_session,
            1,
            full_name="  Carla Dias ",
            session_frequency="biweekly",
            session_price=Decimal("180.00"),
            schedule_patterns=[{"day_of_week": 2, "time": " 09:30 "}],
        )

        assert patient.id is not None
        assert patient.full_name == "Carla Dias"
        assert patient.active is True
        assert patient.session_schedules == [{"dayOfWeek": 2, "time": "09:30", "paymentStatus": "pending"}]

    def test_unknown_frequency_is_rejected(self, db_session):
        with pytest.raises(ScheduleValidationError):
            PatientService.create_patient(db_session, 1, full_name="Carla", session_frequency="daily")

        assert db_session.query(Patient).count() == 0

    def test_blank_name_is_rejected(self, db_session):
        with pytest.raises(ScheduleValidationError):
            PatientService.create_patient(db_session, 1, full_name="   ")

    def test_malformed_pattern_is_rejected(self, db_session):
        with pytest.raises(ScheduleValidationError):
            PatientService.create_patient(
                db_session, 1, full_name="Carla", schedule_patterns=[{"dayOfWeek": 2, "time": "25:00"}]
            )


class TestPatientLookup:
    """Test owner scoping and listing."""

    def test_other_owners_patient_is_not_found(self, db_session, patient_factory):
        patient = patient_factory(user_id=2)

        with pytest.raises(PatientNotFoundError):
            PatientService.get_patient(db_session, 1, patient.id)

    def test_list_is_sorted_and_hides_inactive(self, db_session, patient_factory):
        patient_factory(full_name="Zeca")
        patient_factory(full_name="Bruno")
        patient_factory(full_name="Ana", active=False)
        patient_factory(full_name="Other Owner", user_id=2)

        names = [p.full_name for p in PatientService.list_patients(db_session, 1)]
        all_names = [p.full_name for p in PatientService.list_patients(db_session, 1, include_inactive=True)]

        assert names == ["Bruno", "Zeca"]
        assert all_names == ["Ana", "Bruno", "Zeca"]


class TestUpdatePatient:
    """Test PatientService.update_patient and set_schedule_patterns."""

    def test_only_given_fields_change(self, db_session, patient_factory):
        patient = patient_factory(email="ana@example.com")

        updated = PatientService.update_patient(
            db_session, 1, patient.id, session_price=Decimal("200.00"), auto_renew_sessions=True
        )

        assert updated.session_price == Decimal("200.00")
        assert updated.auto_renew_sessions is True
        assert updated.email == "ana@example.com"
        assert updated.session_frequency == "weekly"

    def test_unknown_frequency_is_rejected(self, db_session, patient_factory):
        patient = patient_factory()

        with pytest.raises(ScheduleValidationError):
            PatientService.update_patient(db_session, 1, patient.id, session_frequency="yearly")

    def test_set_and_clear_schedule_patterns(self, db_session, patient_factory):
        patient = patient_factory()

        PatientService.set_schedule_patterns(
            db_session, 1, patient.id, [{"dayOfWeek": 5, "time": "08:00", "paymentStatus": "paid"}]
        )
        assert [p.day_of_week for p in patient.get_schedule_patterns()] == [5]

        PatientService.set_schedule_patterns(db_session, 1, patient.id, [])
        assert patient.session_schedules is None
        assert patient.get_schedule_patterns() == []


class TestGenerateSessions:
    """Test PatientService.generate_sessions."""

    def test_paid_pattern_creates_sessions_and_income_records(self, db_session, patient_factory, now):
        patient = patient_factory()

        sessions = PatientService.generate_sessions(
            db_session,
            1,
            patient.id,
            patterns=[{"dayOfWeek": 3, "time": "14:00", "paymentStatus": "paid"}],
            weeks=4,
            now=now,
        )

        assert len(sessions) == 4
        assert [instant_to_local_date(s.start_time) for s in sessions] == [
            date(2026, 3, 4), date(2026, 3, 11), date(2026, 3, 18), date(2026, 3, 25)
        ]
        assert all(s.price == Decimal("150.00") for s in sessions)
        records = db_session.query(FinancialRecord).order_by(FinancialRecord.transaction_date).all()
        assert len(records) == 4
        assert records[0].transaction_date == date(2026, 3, 4)
        assert records[0].amount == Decimal("150.00")
        assert records[0].description == "Session payment - Ana Souza"
        # Given patterns are stored for later renewals
        assert patient.session_schedules == [{"dayOfWeek": 3, "time": "14:00", "paymentStatus": "paid"}]

    def test_uses_stored_patterns(self, db_session, patient_factory, now):
        patient = patient_factory(session_schedules=[{"dayOfWeek": 1, "time": "18:00"}])

        sessions = PatientService.generate_sessions(db_session, 1, patient.id, weeks=2, now=now)

        assert len(sessions) == 2
        assert {instant_to_wall_clock(s.start_time) for s in sessions} == {(1, "18:00")}

    def test_conflict_with_own_session_inserts_nothing(self, db_session, patient_factory, session_factory, now):
        """Wednesday 14:00 local on 2026-03-11 is already booked for the same patient."""
        patient = patient_factory()
        session_factory(patient, now + timedelta(days=9, hours=5))

        with pytest.raises(ScheduleConflictError) as exc_info:
            PatientService.generate_sessions(
                db_session, 1, patient.id, patterns=[{"dayOfWeek": 3, "time": "14:00"}], weeks=4, now=now
            )

        assert exc_info.value.conflicting_patient_name == "Ana Souza"
        assert db_session.query(Appointment).count() == 1
        assert patient.session_schedules is None

    def test_without_patterns_is_rejected(self, db_session, patient_factory, now):
        patient = patient_factory()

        with pytest.raises(ScheduleValidationError):
            PatientService.generate_sessions(db_session, 1, patient.id, now=now)

    def test_inactive_patient_is_rejected(self, db_session, patient_factory, now):
        patient = patient_factory(active=False)

        with pytest.raises(ScheduleValidationError):
            PatientService.generate_sessions(
                db_session, 1, patient.id, patterns=[{"dayOfWeek": 3, "time": "14:00"}], now=now
            )

    def test_as_needed_generates_a_single_session(self, db_session, patient_factory, now):
        patient = patient_factory(session_frequency="as_needed")

        sessions = PatientService.generate_sessions(
            db_session, 1, patient.id, patterns=[{"dayOfWeek": 3, "time": "14:00"}], now=now
        )

        assert len(sessions) == 1


class TestDeactivatePatient:
    """Test PatientService.deactivate_patient."""

    def test_deletes_future_sessions_and_keeps_history(self, db_session, patient_factory, session_factory, now):
        patient = patient_factory()
        past = session_factory(patient, now - timedelta(weeks=1), payment_status="paid", price=Decimal("150.00"))
        session_factory(patient, now + timedelta(days=1))
        future_paid = session_factory(
            patient, now + timedelta(days=8), payment_status="paid", price=Decimal("150.00")
        )
        FinancialService.create_for_paid_session(db_session, past)
        FinancialService.create_for_paid_session(db_session, future_paid)

        deleted = PatientService.deactivate_patient(db_session, 1, patient.id, now=now)

        assert deleted == 2
        assert patient.active is False
        remaining = db_session.query(Appointment).all()
        assert [s.id for s in remaining] == [past.id]
        records = db_session.query(FinancialRecord).all()
        assert [r.appointment_id for r in records] == [past.id]

    def test_unknown_patient(self, db_session):
        with pytest.raises(PatientNotFoundError):
            PatientService.deactivate_patient(db_session, 1, 999)


class TestDeletePatient:
    """Test PatientService.delete_patient."""

    def test_removes_patient_sessions_and_income_records(self, db_session, patient_factory, session_factory, now):
        patient = patient_factory()
        other = patient_factory(full_name="Bruno Lima")
        past = session_factory(patient, now - timedelta(weeks=1), payment_status="paid", price=Decimal("150.00"))
        session_factory(patient, now + timedelta(days=1))
        kept = session_factory(other, now + timedelta(days=2))
        FinancialService.create_for_paid_session(db_session, past)

        deleted = PatientService.delete_patient(db_session, 1, patient.id)

        assert deleted == 2
        assert db_session.get(Patient, patient.id) is None
        assert [s.id for s in db_session.query(Appointment).all()] == [kept.id]
        assert db_session.query(FinancialRecord).count() == 0

    def test_other_owners_patient_is_not_deleted(self, db_session, patient_factory):
        patient = patient_factory(user_id=2)

        with pytest.raises(PatientNotFoundError):
            PatientService.delete_patient(db_session, 1, patient.id)

        assert db_session.get(Patient, patient.id) is not None
