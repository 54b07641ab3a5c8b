"""
Utility functions for consistent session queries.

This module contains reusable query functions so that ownership scoping,
cancellation filtering and the "future session" rule are applied the same
way by every service.
"""

from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.orm import Query, Session, joinedload

from core.constants import PAYMENT_STATUS_CANCELLED, PAYMENT_STATUS_PAID
from models import Appointment
from utils.datetime_utils import ensure_utc, utc_now


def _owner_query(db: Session, user_id: int) -> Query[Appointment]:
    return db.query(Appointment).options(
        joinedload(Appointment.patient)
    ).filter(Appointment.user_id == user_id)


def filter_future_sessions(query: Query[Appointment], now: Optional[datetime] = None) -> Query[Appointment]:
    """
    Apply filter to only include sessions starting strictly after ``now``.

    Args:
        query: Base query for Appointment
        now: Reference instant (defaults to the current time)

    Returns:
        Query filtered to future sessions
    """
    reference = ensure_utc(now) if now is not None else utc_now()
    return query.filter(Appointment.start_time > reference)


def get_sessions_for_owner(db: Session, user_id: int, include_cancelled: bool = True) -> List[Appointment]:
    """
    Fetch all sessions of an owner with the patient loaded, newest first.
    """
    query = _owner_query(db, user_id)
    if not include_cancelled:
        query = query.filter(Appointment.payment_status != PAYMENT_STATUS_CANCELLED)
    return query.order_by(Appointment.start_time.desc()).all()


def get_upcoming_sessions_for_owner(db: Session, user_id: int, now: Optional[datetime] = None) -> List[Appointment]:
    """Fetch non-cancelled sessions starting after ``now``, soonest first."""
    query = _owner_query(db, user_id).filter(Appointment.payment_status != PAYMENT_STATUS_CANCELLED)
    return filter_future_sessions(query, now).order_by(Appointment.start_time.asc()).all()


def get_session_for_owner(db: Session, user_id: int, session_id: int) -> Optional[Appointment]:
    """Fetch one session by id, scoped to the owner."""
    return _owner_query(db, user_id).filter(Appointment.id == session_id).first()


def get_sessions_by_ids(db: Session, user_id: int, session_ids: Iterable[int]) -> List[Appointment]:
    """Fetch several sessions by id, scoped to the owner."""
    ids = list(session_ids)
    if not ids:
        return []
    return _owner_query(db, user_id).filter(Appointment.id.in_(ids)).all()


def get_future_unpaid_sessions_for_patient(
    db: Session,
    patient_id: int,
    now: Optional[datetime] = None
) -> List[Appointment]:
    """Fetch a patient's future sessions that have not been paid."""
    query = db.query(Appointment).filter(
        Appointment.patient_id == patient_id,
        Appointment.payment_status != PAYMENT_STATUS_PAID
    )
    return filter_future_sessions(query, now).all()


def get_future_sessions_for_patient(
    db: Session,
    patient_id: int,
    now: Optional[datetime] = None
) -> List[Appointment]:
    """Fetch all of a patient's future sessions regardless of status."""
    query = db.query(Appointment).filter(Appointment.patient_id == patient_id)
    return filter_future_sessions(query, now).all()
