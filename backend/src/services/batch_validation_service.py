"""
Batch validation service.

Generated sessions for one patient are validated as a whole before any of
them is written: the first candidate that collides with the calendar (or
with an earlier candidate of the same batch) aborts the batch with a
``ScheduleConflictError``. Accepted batches are inserted in a single
transaction.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.config import DEFAULT_RENEWAL_WEEKS
from core.constants import PAYMENT_STATUS_CANCELLED
from core.exceptions import ScheduleConflictError, StoreError
from models import Appointment, Patient, SchedulePattern
from services.availability_service import AvailabilityService
from services.financial_service import FinancialService
from services.recurrence_service import RecurrenceService
from utils.session_queries import get_sessions_for_owner

logger = logging.getLogger(__name__)


def resolve_patient_name(session: Appointment, patient_names: Optional[Dict[int, str]] = None) -> Optional[str]:
    """Display name of a session's patient, falling back to a lookup map for unsaved sessions."""
    if session.patient is not None:
        return session.patient.full_name
    if patient_names:
        return patient_names.get(session.patient_id)
    return None


class BatchValidationService:
    """Service class for validating and committing generated session batches."""

    @staticmethod
    def validate_batch(
        candidates: Sequence[Appointment],
        existing_sessions: Sequence[Appointment],
        exclude_patient_id: Optional[int] = None,
        patient_names: Optional[Dict[int, str]] = None
    ) -> List[Appointment]:
        """
        Validate candidates in generation order against the calendar.

        Each candidate is checked against the existing sessions plus the
        candidates accepted before it. Pure function, nothing is written.

        Args:
            candidates: Generated sessions, in generation order
            existing_sessions: Sessions already on the calendar
            exclude_patient_id: Ignore this patient's existing sessions
                (used when regenerating that patient's own schedule)
            patient_names: patient_id → display name, for unsaved candidates

        Returns:
            The full candidate list

        Raises:
            ScheduleConflictError: On the first collision; nothing is accepted
        """
        occupied: List[Appointment] = [
            session for session in existing_sessions
            if session.payment_status != PAYMENT_STATUS_CANCELLED
            and (exclude_patient_id is None or session.patient_id != exclude_patient_id)
        ]
        accepted: List[Appointment] = []

        for candidate in candidates:
            pool = occupied + accepted
            conflict = AvailabilityService.find_session_conflict(
                pool, candidate.start_time, candidate.duration_minutes
            )
            if conflict is not None:
                suggestion = AvailabilityService.get_first_available_start(
                    pool, candidate.start_time, candidate.duration_minutes
                )
                conflicting_name = resolve_patient_name(conflict, patient_names)
                logger.info(
                    f"Batch rejected: candidate at {candidate.start_time.isoformat()} conflicts with "
                    f"session {conflict.id} ({conflicting_name}); suggested {suggestion.isoformat()}"
                )
                raise ScheduleConflictError(
                    conflicting_session=conflict,
                    conflicting_patient_name=conflicting_name,
                    suggested_next_start=suggestion,
                    candidate_start=candidate.start_time,
                )
            accepted.append(candidate)

        return accepted

    @staticmethod
    def build_batch(
        db: Session,
        patient: Patient,
        patterns: Optional[Sequence[Union[SchedulePattern, dict]]] = None,
        weeks: int = DEFAULT_RENEWAL_WEEKS,
        frequency: Optional[str] = None,
        now: Optional[datetime] = None,
        exclude_patient_sessions: bool = False,
        existing_sessions: Optional[Sequence[Appointment]] = None
    ) -> List[Appointment]:
        """
        Generate and validate a batch for a patient without writing it.

        Args:
            db: Database session (store read)
            patient: Patient to generate for
            patterns: Patterns to expand (defaults to the patient's stored patterns)
            weeks: Horizon in weeks
            frequency: Overrides the patient's frequency
            now: Reference time
            exclude_patient_sessions: Skip the patient's own sessions in the check
            existing_sessions: Pre-fetched snapshot of the owner's sessions

        Returns:
            Validated, unsaved sessions

        Raises:
            ScheduleValidationError: If patterns are missing or malformed
            ScheduleConflictError: If any candidate conflicts
        """
        candidates = RecurrenceService.generate_sessions(
            patient,
            patterns if patterns is not None else patient.get_schedule_patterns(),
            frequency=frequency,
            weeks=weeks,
            now=now,
        )
        snapshot = existing_sessions
        if snapshot is None:
            snapshot = get_sessions_for_owner(db, patient.user_id, include_cancelled=False)

        return BatchValidationService.validate_batch(
            candidates,
            snapshot,
            exclude_patient_id=patient.id if exclude_patient_sessions else None,
            patient_names={patient.id: patient.full_name},
        )

    @staticmethod
    def stage_batch(db: Session, patient: Patient, sessions: List[Appointment]) -> List[Appointment]:
        """
        Add a validated batch to the current transaction without committing.

        Paid, priced sessions get their income record in the same transaction.
        """
        db.add_all(sessions)
        db.flush()
        FinancialService.add_records_for_paid_sessions(db, sessions, patient.full_name)
        return sessions

    @staticmethod
    def create_batch(
        db: Session,
        patient: Patient,
        patterns: Optional[Sequence[Union[SchedulePattern, dict]]] = None,
        weeks: int = DEFAULT_RENEWAL_WEEKS,
        frequency: Optional[str] = None,
        now: Optional[datetime] = None,
        exclude_patient_sessions: bool = False,
        existing_sessions: Optional[Sequence[Appointment]] = None
    ) -> List[Appointment]:
        """
        Generate, validate and insert a batch atomically.

        Either every generated session is committed or none is.

        Raises:
            ScheduleValidationError: If patterns are missing or malformed
            ScheduleConflictError: If any candidate conflicts (nothing is written)
            StoreError: If the insert failed (transaction rolled back)
        """
        sessions = BatchValidationService.build_batch(
            db, patient, patterns, weeks, frequency, now, exclude_patient_sessions, existing_sessions
        )
        try:
            BatchValidationService.stage_batch(db, patient, sessions)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception(f"Failed to insert session batch for patient {patient.id}: {e}")
            raise StoreError(f"Failed to insert session batch for patient {patient.id}") from e

        logger.info(f"Created {len(sessions)} sessions for patient {patient.id}")
        return sessions
