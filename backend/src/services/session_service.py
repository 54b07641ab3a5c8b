"""
Session service for booking, rescheduling, cancelling and replacing sessions.

This module coordinates the scheduling engine (conflict detection, batch
generation) with the session-linked financial records. Primary mutations
are committed first; financial follow-ups are best-effort and surface as
warnings on the result.
"""

import logging
from dataclasses import dataclass, field
from datetime import date as date_type, datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.config import DEFAULT_RENEWAL_WEEKS, DEFAULT_SESSION_DURATION_MINUTES
from core.constants import (
    DEFAULT_SESSION_TYPE,
    PAYMENT_STATUS_CANCELLED,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_PENDING,
    PAYMENT_STATUSES,
)
from core.exceptions import (
    DependentUpdateError,
    PatientNotFoundError,
    ScheduleConflictError,
    ScheduleValidationError,
    SessionNotFoundError,
    StoreError,
)
from models import Appointment, FinancialRecord, Patient, SchedulePattern
from services.auto_renewal_service import AutoRenewalService
from services.availability_service import AvailabilityService
from services.batch_validation_service import BatchValidationService, resolve_patient_name
from services.financial_service import FinancialService
from services.recurrence_service import RecurrenceService
from utils.datetime_utils import ensure_utc, utc_now
from utils.session_queries import (
    get_future_unpaid_sessions_for_patient,
    get_session_for_owner,
    get_sessions_by_ids,
    get_sessions_for_owner,
    get_upcoming_sessions_for_owner,
)

logger = logging.getLogger(__name__)


@dataclass
class SessionUpdateResult:
    """A mutated session plus any best-effort follow-up failures."""
    session: Appointment
    warnings: List[str] = field(default_factory=list)


@dataclass
class BulkUpdateResult:
    """Sessions touched by a bulk status change plus follow-up failures."""
    sessions: List[Appointment]
    warnings: List[str] = field(default_factory=list)


@dataclass
class ReplaceResult:
    """Outcome of replacing a patient's future schedule."""
    sessions: List[Appointment]
    deleted_count: int


def _validate_status(status: str) -> str:
    if status not in PAYMENT_STATUSES:
        raise ScheduleValidationError(
            f"Invalid payment status {status!r}, expected one of {', '.join(PAYMENT_STATUSES)}"
        )
    return status


def _commit(db: Session, action: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception(f"Failed to {action}: {e}")
        raise StoreError(f"Failed to {action}") from e


class SessionService:
    """
    Service class for session operations.

    Every operation is scoped to an owner (``user_id``); sessions of other
    owners are reported as not found.
    """

    @staticmethod
    def get_session(db: Session, user_id: int, session_id: int) -> Appointment:
        """
        Fetch a session for an owner.

        Raises:
            SessionNotFoundError: If the session does not exist for the owner
        """
        session = get_session_for_owner(db, user_id, session_id)
        if session is None:
            raise SessionNotFoundError(f"Session {session_id} not found")
        return session

    @staticmethod
    def find_conflict(
        db: Session,
        user_id: int,
        start_time: datetime,
        duration_minutes: Optional[int] = None,
        exclude_session_id: Optional[int] = None
    ) -> Optional[ScheduleConflictError]:
        """
        Check a candidate interval against the owner's calendar.

        Returns:
            A ScheduleConflictError describing the collision (not raised), or
            None when the slot is free
        """
        sessions = get_sessions_for_owner(db, user_id, include_cancelled=False)
        candidate_start = ensure_utc(start_time)
        conflict = AvailabilityService.find_session_conflict(
            sessions, candidate_start, duration_minutes, exclude_session_id  # type: ignore[arg-type]
        )
        if conflict is None:
            return None
        suggestion = AvailabilityService.get_first_available_start(
            sessions, candidate_start, duration_minutes, exclude_session_id  # type: ignore[arg-type]
        )
        return ScheduleConflictError(
            conflicting_session=conflict,
            conflicting_patient_name=resolve_patient_name(conflict),
            suggested_next_start=suggestion,
            candidate_start=candidate_start,
        )

    @staticmethod
    def create_session(
        db: Session,
        user_id: int,
        patient_id: int,
        start_time: datetime,
        duration_minutes: Optional[int] = None,
        session_type: Optional[str] = None,
        price: Optional[Decimal] = None,
        payment_status: str = PAYMENT_STATUS_PENDING,
        notes: Optional[str] = None,
        summary: Optional[str] = None
    ) -> SessionUpdateResult:
        """
        Book a single session after checking it against the calendar.

        Args:
            db: Database session
            user_id: Owner ID
            patient_id: Patient to book for
            start_time: Start instant
            duration_minutes: Duration (defaults to the configured default)
            session_type: Category label
            price: Price (defaults to the patient's session price)
            payment_status: 'pending' or 'paid'
            notes: Free-text notes
            summary: Free-text session summary

        Returns:
            SessionUpdateResult with the created session

        Raises:
            PatientNotFoundError: If the patient does not exist for the owner
            ScheduleValidationError: If the status or duration is invalid
            ScheduleConflictError: If the slot is taken (nothing is written)
            StoreError: If the insert failed
        """
        if payment_status not in (PAYMENT_STATUS_PENDING, PAYMENT_STATUS_PAID):
            raise ScheduleValidationError("New sessions must be 'pending' or 'paid'")
        if duration_minutes is not None and duration_minutes <= 0:
            raise ScheduleValidationError("Duration must be a positive number of minutes")

        patient = db.query(Patient).filter(Patient.id == patient_id, Patient.user_id == user_id).first()
        if patient is None:
            raise PatientNotFoundError(f"Patient {patient_id} not found")

        conflict = SessionService.find_conflict(db, user_id, start_time, duration_minutes)
        if conflict is not None:
            logger.info(f"Rejected booking for patient {patient_id}: {conflict.message}")
            raise conflict

        session = Appointment(
            user_id=user_id,
            patient_id=patient.id,
            start_time=start_time,
            duration_minutes=duration_minutes or DEFAULT_SESSION_DURATION_MINUTES,
            session_type=session_type or DEFAULT_SESSION_TYPE,
            price=price if price is not None else patient.session_price,
            payment_status=payment_status,
            notes=notes,
            summary=summary,
        )
        db.add(session)
        _commit(db, f"create session for patient {patient_id}")
        logger.info(f"Created session {session.id} for patient {patient_id} at {session.start_instant.isoformat()}")

        warnings: List[str] = []
        try:
            FinancialService.create_for_paid_session(db, session)
        except DependentUpdateError as e:
            warnings.append(e.message)
        return SessionUpdateResult(session=session, warnings=warnings)

    @staticmethod
    def reschedule_session(
        db: Session,
        user_id: int,
        session_id: int,
        new_start: datetime,
        duration_minutes: Optional[int] = None
    ) -> SessionUpdateResult:
        """
        Move a session to a new start instant.

        The conflict check ignores the session itself. On conflict nothing is
        changed. A paid session's financial record follows it to the new
        local date; if that update fails the move is kept and a warning is
        returned.

        Raises:
            SessionNotFoundError: If the session does not exist for the owner
            ScheduleConflictError: If the new slot is taken
            StoreError: If the update failed
        """
        if duration_minutes is not None and duration_minutes <= 0:
            raise ScheduleValidationError("Duration must be a positive number of minutes")
        session = SessionService.get_session(db, user_id, session_id)
        duration = duration_minutes or session.effective_duration

        conflict = SessionService.find_conflict(db, user_id, new_start, duration, exclude_session_id=session.id)
        if conflict is not None:
            logger.info(f"Rejected reschedule of session {session_id}: {conflict.message}")
            raise conflict

        previous_start = session.start_instant
        session.start_time = new_start
        if duration_minutes is not None:
            session.duration_minutes = duration_minutes
        _commit(db, f"reschedule session {session_id}")
        logger.info(
            f"Rescheduled session {session_id} from {previous_start.isoformat()} to {session.start_instant.isoformat()}"
        )

        warnings: List[str] = []
        if session.payment_status == PAYMENT_STATUS_PAID:
            try:
                FinancialService.update_date_for_session(db, session.id, session.start_instant)
            except DependentUpdateError as e:
                warnings.append(e.message)
        return SessionUpdateResult(session=session, warnings=warnings)

    @staticmethod
    def cancel_session(
        db: Session,
        user_id: int,
        session_id: int,
        now: Optional[datetime] = None
    ) -> SessionUpdateResult:
        """
        Cancel a session.

        A session still in the future also loses its price and its financial
        record. A past session keeps both.

        Raises:
            SessionNotFoundError: If the session does not exist for the owner
            StoreError: If the update failed
        """
        reference = ensure_utc(now) if now is not None else utc_now()
        session = SessionService.get_session(db, user_id, session_id)
        is_future = session.start_instant > reference  # type: ignore[operator]

        session.payment_status = PAYMENT_STATUS_CANCELLED
        if is_future:
            session.price = None
        _commit(db, f"cancel session {session_id}")
        logger.info(f"Cancelled session {session_id} ({'future' if is_future else 'past'})")

        warnings: List[str] = []
        if is_future:
            try:
                FinancialService.delete_for_session(db, session.id)
            except DependentUpdateError as e:
                warnings.append(e.message)
        return SessionUpdateResult(session=session, warnings=warnings)

    @staticmethod
    def update_payment_status(
        db: Session,
        user_id: int,
        session_id: int,
        status: str,
        now: Optional[datetime] = None
    ) -> SessionUpdateResult:
        """
        Change a session's payment status.

        Becoming paid (with a price) creates the income record; leaving paid
        removes it. Cancelling follows ``cancel_session``.

        Raises:
            ScheduleValidationError: If the status is unknown
            SessionNotFoundError: If the session does not exist for the owner
            StoreError: If the update failed
        """
        _validate_status(status)
        if status == PAYMENT_STATUS_CANCELLED:
            return SessionService.cancel_session(db, user_id, session_id, now)

        session = SessionService.get_session(db, user_id, session_id)
        previous = session.payment_status
        session.payment_status = status
        _commit(db, f"update payment status of session {session_id}")
        logger.info(f"Session {session_id} payment status {previous} -> {status}")

        warnings: List[str] = []
        try:
            if status == PAYMENT_STATUS_PAID:
                FinancialService.create_for_paid_session(db, session)
            elif previous == PAYMENT_STATUS_PAID:
                FinancialService.delete_for_session(db, session.id)
        except DependentUpdateError as e:
            warnings.append(e.message)
        return SessionUpdateResult(session=session, warnings=warnings)

    @staticmethod
    def bulk_update_status(
        db: Session,
        user_id: int,
        session_ids: Iterable[int],
        new_status: str,
        now: Optional[datetime] = None
    ) -> BulkUpdateResult:
        """
        Apply one payment status to several sessions.

        Status changes are committed together. When cancelling, sessions
        still in the future also lose their price and financial record;
        financial follow-ups run per session afterwards and failures are
        collected as warnings.

        Raises:
            ScheduleValidationError: If the status is unknown
            SessionNotFoundError: If any id does not exist for the owner
            StoreError: If the update failed
        """
        _validate_status(new_status)
        reference = ensure_utc(now) if now is not None else utc_now()
        ids = list(dict.fromkeys(session_ids))
        sessions = get_sessions_by_ids(db, user_id, ids)
        missing = set(ids) - {session.id for session in sessions}
        if missing:
            raise SessionNotFoundError(f"Sessions not found: {sorted(missing)}")

        previous_statuses = {session.id: session.payment_status for session in sessions}
        cleared: List[int] = []
        for session in sessions:
            session.payment_status = new_status
            if new_status == PAYMENT_STATUS_CANCELLED and session.start_instant > reference:  # type: ignore[operator]
                session.price = None
                cleared.append(session.id)
        _commit(db, f"update status of {len(sessions)} sessions")
        logger.info(f"Set status {new_status} on {len(sessions)} sessions ({len(cleared)} future cancellations)")

        warnings: List[str] = []
        for session in sessions:
            try:
                if session.id in cleared:
                    FinancialService.delete_for_session(db, session.id)
                elif new_status == PAYMENT_STATUS_PAID:
                    FinancialService.create_for_paid_session(db, session)
                elif new_status == PAYMENT_STATUS_PENDING and previous_statuses[session.id] == PAYMENT_STATUS_PAID:
                    FinancialService.delete_for_session(db, session.id)
            except DependentUpdateError as e:
                warnings.append(e.message)

        ordered = sorted(sessions, key=lambda s: ids.index(s.id))
        return BulkUpdateResult(sessions=ordered, warnings=warnings)

    @staticmethod
    def delete_session(db: Session, user_id: int, session_id: int) -> None:
        """
        Remove a session and its linked financial record.

        Raises:
            SessionNotFoundError: If the session does not exist for the owner
            StoreError: If the delete failed
        """
        session = SessionService.get_session(db, user_id, session_id)
        db.query(FinancialRecord).filter(
            FinancialRecord.appointment_id == session.id
        ).delete(synchronize_session="fetch")
        db.delete(session)
        _commit(db, f"delete session {session_id}")
        logger.info(f"Deleted session {session_id}")

    @staticmethod
    def replace_future_sessions(
        db: Session,
        user_id: int,
        patient_id: int,
        patterns: Sequence[Union[SchedulePattern, dict]],
        weeks: int = DEFAULT_RENEWAL_WEEKS,
        now: Optional[datetime] = None
    ) -> ReplaceResult:
        """
        Replace a patient's future unpaid sessions with a freshly generated batch.

        The patient's future non-paid sessions (and any linked financial
        records) are deleted, the new patterns are stored on the patient and
        a new batch is generated and validated against everyone else's
        sessions. All of it happens in one transaction: on conflict nothing
        is deleted.

        Args:
            db: Database session
            user_id: Owner ID
            patient_id: Patient whose schedule is replaced
            patterns: New weekly patterns
            weeks: Horizon of the new batch
            now: Reference time

        Returns:
            ReplaceResult with the created sessions and the number deleted

        Raises:
            PatientNotFoundError: If the patient does not exist for the owner
            ScheduleValidationError: If the patterns are malformed
            ScheduleConflictError: If the new batch conflicts
            StoreError: If the transaction failed
        """
        reference = ensure_utc(now) if now is not None else utc_now()
        patient = db.query(Patient).filter(Patient.id == patient_id, Patient.user_id == user_id).first()
        if patient is None:
            raise PatientNotFoundError(f"Patient {patient_id} not found")

        validated = RecurrenceService.validate_patterns(patterns)
        RecurrenceService.get_interval_weeks(patient.session_frequency)

        try:
            stale = get_future_unpaid_sessions_for_patient(db, patient.id, reference)
            stale_ids = [session.id for session in stale]
            if stale_ids:
                db.query(FinancialRecord).filter(
                    FinancialRecord.appointment_id.in_(stale_ids)
                ).delete(synchronize_session="fetch")
            for session in stale:
                db.delete(session)

            patient.set_schedule_patterns(validated)
            sessions = BatchValidationService.build_batch(
                db, patient, validated, weeks=weeks, now=reference, exclude_patient_sessions=True
            )
            BatchValidationService.stage_batch(db, patient, sessions)
            db.commit()
        except (ScheduleConflictError, ScheduleValidationError):
            db.rollback()
            raise
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception(f"Failed to replace sessions for patient {patient_id}: {e}")
            raise StoreError(f"Failed to replace sessions for patient {patient_id}") from e

        logger.info(
            f"Replaced future sessions for patient {patient_id}: deleted {len(stale_ids)}, created {len(sessions)}"
        )
        return ReplaceResult(sessions=sessions, deleted_count=len(stale_ids))

    @staticmethod
    def list_sessions(
        db: Session,
        user_id: int,
        auto_renew: bool = True,
        now: Optional[datetime] = None
    ) -> List[Appointment]:
        """
        List every session of an owner, newest first.

        Auto-renewal runs on the fetched list; when any patient was renewed
        the list is fetched again so the new sessions are included.

        Raises:
            StoreError: If the read failed
        """
        try:
            sessions = get_sessions_for_owner(db, user_id)
        except SQLAlchemyError as e:
            logger.exception(f"Failed to fetch sessions for owner {user_id}: {e}")
            raise StoreError(f"Failed to fetch sessions for owner {user_id}") from e

        if not auto_renew:
            return sessions

        report = AutoRenewalService.renew_exhausted_schedules(db, user_id, sessions, now)
        if report.failed:
            logger.warning(f"Auto-renewal failures for owner {user_id}: {report.failed}")
        if report.has_changes:
            return get_sessions_for_owner(db, user_id)
        return sessions

    @staticmethod
    def list_upcoming_sessions(db: Session, user_id: int, now: Optional[datetime] = None) -> List[Appointment]:
        """List non-cancelled sessions that have not started yet, soonest first."""
        return get_upcoming_sessions_for_owner(db, user_id, now)

    @staticmethod
    def get_available_slots(
        db: Session,
        user_id: int,
        day: date_type,
        now: Optional[datetime] = None,
        duration_minutes: Optional[int] = None
    ) -> List[datetime]:
        """Bookable start instants on a local date for the owner."""
        sessions = get_sessions_for_owner(db, user_id, include_cancelled=False)
        return AvailabilityService.get_available_slots_for_date(sessions, day, now, duration_minutes)
