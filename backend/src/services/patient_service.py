"""
Patient service for patient records and their schedule settings.

This module contains the patient-related business logic used by the
patients router: CRUD on the patient record, storing weekly schedule
patterns, generating a patient's first batch of sessions, deactivation
and deletion.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.config import DEFAULT_RENEWAL_WEEKS
from core.constants import FREQUENCY_WEEKLY
from core.exceptions import PatientNotFoundError, ScheduleConflictError, ScheduleValidationError, StoreError
from models import Appointment, FinancialRecord, Patient, SchedulePattern
from services.batch_validation_service import BatchValidationService
from services.recurrence_service import RecurrenceService
from utils.datetime_utils import ensure_utc, utc_now
from utils.session_queries import get_future_sessions_for_patient

logger = logging.getLogger(__name__)


class PatientService:
    """
    Service class for patient operations.

    All lookups are scoped to the owner; another owner's patient is
    reported as not found.
    """

    @staticmethod
    def create_patient(
        db: Session,
        user_id: int,
        full_name: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        session_frequency: str = FREQUENCY_WEEKLY,
        session_price: Optional[Decimal] = None,
        auto_renew_sessions: bool = False,
        schedule_patterns: Optional[Sequence[Union[SchedulePattern, dict]]] = None,
        notes: Optional[str] = None
    ) -> Patient:
        """
        Create a new patient record.

        Args:
            db: Database session
            user_id: Owner ID the patient belongs to
            full_name: Patient's full name
            email: Optional email
            phone: Optional phone number
            session_frequency: 'weekly', 'biweekly', 'monthly' or 'as_needed'
            session_price: Default price for generated sessions
            auto_renew_sessions: Renew the schedule when future sessions run out
            schedule_patterns: Optional weekly patterns
            notes: Free-text notes

        Returns:
            Created Patient object

        Raises:
            ScheduleValidationError: If the frequency or patterns are invalid
            StoreError: If creation fails
        """
        if not full_name or not full_name.strip():
            raise ScheduleValidationError("Patient name is required")
        RecurrenceService.get_interval_weeks(session_frequency)

        patient = Patient(
            user_id=user_id,
            full_name=full_name.strip(),
            email=email,
            phone=phone,
            session_frequency=session_frequency,
            session_price=session_price,
            auto_renew_sessions=auto_renew_sessions,
            active=True,
            notes=notes,
        )
        if schedule_patterns:
            patient.set_schedule_patterns(RecurrenceService.validate_patterns(schedule_patterns))

        try:
            db.add(patient)
            db.commit()
            db.refresh(patient)
        except SQLAlchemyError as e:
            logger.error(f"Failed to create patient: {e}")
            db.rollback()
            raise StoreError("Failed to create patient") from e

        logger.info(f"Created patient {patient.id} for owner {user_id}")
        return patient

    @staticmethod
    def get_patient(db: Session, user_id: int, patient_id: int) -> Patient:
        """
        Fetch a patient for an owner.

        Raises:
            PatientNotFoundError: If the patient does not exist for the owner
        """
        patient = db.query(Patient).filter(
            Patient.id == patient_id,
            Patient.user_id == user_id
        ).first()
        if not patient:
            raise PatientNotFoundError(f"Patient {patient_id} not found")
        return patient

    @staticmethod
    def list_patients(db: Session, user_id: int, include_inactive: bool = False) -> List[Patient]:
        """List an owner's patients sorted by name."""
        query = db.query(Patient).filter(Patient.user_id == user_id)
        if not include_inactive:
            query = query.filter(Patient.active == True)  # noqa: E712
        return query.order_by(Patient.full_name).all()

    @staticmethod
    def update_patient(
        db: Session,
        user_id: int,
        patient_id: int,
        full_name: Optional[str] = None,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        session_frequency: Optional[str] = None,
        session_price: Optional[Decimal] = None,
        auto_renew_sessions: Optional[bool] = None,
        notes: Optional[str] = None
    ) -> Patient:
        """
        Update a patient record. Only fields that are not None change.

        Raises:
            PatientNotFoundError: If the patient does not exist for the owner
            ScheduleValidationError: If the frequency is unknown
            StoreError: If the update fails
        """
        patient = PatientService.get_patient(db, user_id, patient_id)

        if session_frequency is not None:
            RecurrenceService.get_interval_weeks(session_frequency)
            patient.session_frequency = session_frequency
        if full_name is not None:
            if not full_name.strip():
                raise ScheduleValidationError("Patient name is required")
            patient.full_name = full_name.strip()
        if email is not None:
            patient.email = email
        if phone is not None:
            patient.phone = phone
        if session_price is not None:
            patient.session_price = session_price
        if auto_renew_sessions is not None:
            patient.auto_renew_sessions = auto_renew_sessions
        if notes is not None:
            patient.notes = notes

        try:
            db.commit()
            db.refresh(patient)
        except SQLAlchemyError as e:
            logger.error(f"Failed to update patient {patient_id}: {e}")
            db.rollback()
            raise StoreError(f"Failed to update patient {patient_id}") from e

        logger.info(f"Updated patient {patient_id}")
        return patient

    @staticmethod
    def set_schedule_patterns(
        db: Session,
        user_id: int,
        patient_id: int,
        patterns: Sequence[Union[SchedulePattern, dict]]
    ) -> Patient:
        """
        Store weekly schedule patterns on a patient without touching sessions.

        An empty list clears the stored patterns, so auto-renewal falls back
        to inferring them from history.
        """
        patient = PatientService.get_patient(db, user_id, patient_id)
        validated = RecurrenceService.validate_patterns(patterns) if patterns else []
        patient.set_schedule_patterns(validated)
        try:
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StoreError(f"Failed to store schedule for patient {patient_id}") from e
        logger.info(f"Stored {len(validated)} schedule patterns for patient {patient_id}")
        return patient

    @staticmethod
    def generate_sessions(
        db: Session,
        user_id: int,
        patient_id: int,
        patterns: Optional[Sequence[Union[SchedulePattern, dict]]] = None,
        weeks: int = DEFAULT_RENEWAL_WEEKS,
        now: Optional[datetime] = None
    ) -> List[Appointment]:
        """
        Generate and insert a batch of sessions for a patient.

        Uses the given patterns (stored on the patient as well) or the
        patient's stored patterns. The batch is checked against every
        existing session, the patient's own included.

        Raises:
            PatientNotFoundError: If the patient does not exist for the owner
            ScheduleValidationError: If there are no valid patterns
            ScheduleConflictError: If any generated session conflicts
            StoreError: If the insert failed
        """
        patient = PatientService.get_patient(db, user_id, patient_id)
        if not patient.active:
            raise ScheduleValidationError(f"Patient {patient_id} is inactive")

        if patterns is not None:
            validated = RecurrenceService.validate_patterns(patterns)
            patient.set_schedule_patterns(validated)
        else:
            validated = patient.get_schedule_patterns()
            if not validated:
                raise ScheduleValidationError(f"Patient {patient_id} has no schedule patterns")

        try:
            return BatchValidationService.create_batch(db, patient, validated, weeks=weeks, now=now)
        except (ScheduleConflictError, ScheduleValidationError):
            db.rollback()
            raise

    @staticmethod
    def deactivate_patient(
        db: Session,
        user_id: int,
        patient_id: int,
        now: Optional[datetime] = None
    ) -> int:
        """
        Deactivate a patient and clear their future schedule.

        Future sessions (any status) and their financial records are deleted
        in the same transaction. Past sessions stay as history.

        Returns:
            Number of deleted sessions

        Raises:
            PatientNotFoundError: If the patient does not exist for the owner
            StoreError: If the transaction failed
        """
        reference = ensure_utc(now) if now is not None else utc_now()
        patient = PatientService.get_patient(db, user_id, patient_id)

        try:
            future = get_future_sessions_for_patient(db, patient.id, reference)
            future_ids = [session.id for session in future]
            if future_ids:
                db.query(FinancialRecord).filter(
                    FinancialRecord.appointment_id.in_(future_ids)
                ).delete(synchronize_session="fetch")
            for session in future:
                db.delete(session)
            patient.active = False
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception(f"Failed to deactivate patient {patient_id}: {e}")
            raise StoreError(f"Failed to deactivate patient {patient_id}") from e

        logger.info(f"Deactivated patient {patient_id}, deleted {len(future_ids)} future sessions")
        return len(future_ids)

    @staticmethod
    def delete_patient(db: Session, user_id: int, patient_id: int) -> int:
        """
        Permanently delete a patient with all their sessions.

        Financial records linked to those sessions are removed too. Use
        ``deactivate_patient`` to keep the history instead.

        Returns:
            Number of deleted sessions

        Raises:
            PatientNotFoundError: If the patient does not exist for the owner
            StoreError: If the transaction failed
        """
        patient = PatientService.get_patient(db, user_id, patient_id)

        try:
            sessions = db.query(Appointment).filter(Appointment.patient_id == patient.id).all()
            session_ids = [session.id for session in sessions]
            if session_ids:
                db.query(FinancialRecord).filter(
                    FinancialRecord.appointment_id.in_(session_ids)
                ).delete(synchronize_session="fetch")
            for session in sessions:
                db.delete(session)
            db.delete(patient)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception(f"Failed to delete patient {patient_id}: {e}")
            raise StoreError(f"Failed to delete patient {patient_id}") from e

        logger.info(f"Deleted patient {patient_id} with {len(session_ids)} sessions")
        return len(session_ids)
