# pyright: reportMissingTypeStubs=false
"""
Session Management API endpoints.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from api.dependencies import get_current_user_id
from api.errors import to_http_exception
from api.responses import (
    AvailabilityResponse,
    BulkStatusResponse,
    ConflictCheckResponse,
    SessionListResponse,
    SessionMutationResponse,
    SessionResponse,
    session_to_response,
)
from core.constants import MAX_NOTES_LENGTH, PAYMENT_STATUS_PENDING
from core.database import get_db
from core.exceptions import ScheduleConflictError, ScheduleValidationError, StoreError
from services import SessionService
from utils.datetime_utils import parse_date_string, parse_datetime_to_instant

logger = logging.getLogger(__name__)

router = APIRouter()

DOMAIN_ERRORS = (ScheduleConflictError, ScheduleValidationError, LookupError, StoreError)


def _parse_instant(v: Any) -> Any:
    """Parse ISO strings (naive values are practice local time) into UTC instants."""
    if v is None or not isinstance(v, (str, datetime)):
        return v
    return parse_datetime_to_instant(v)


class SessionCreateRequest(BaseModel):
    """Request model for booking a single session."""
    patient_id: int
    start_time: datetime
    duration_minutes: Optional[int] = Field(default=None, gt=0, le=24 * 60)
    session_type: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0)
    payment_status: str = PAYMENT_STATUS_PENDING
    notes: Optional[str] = Field(default=None, max_length=MAX_NOTES_LENGTH)
    summary: Optional[str] = Field(default=None, max_length=MAX_NOTES_LENGTH)

    @field_validator('start_time', mode='before')
    @classmethod
    def validate_start_time(cls, v: Any) -> Any:
        return _parse_instant(v)


class RescheduleRequest(BaseModel):
    """Request model for moving a session."""
    new_start: datetime
    duration_minutes: Optional[int] = Field(default=None, gt=0, le=24 * 60)

    @field_validator('new_start', mode='before')
    @classmethod
    def validate_new_start(cls, v: Any) -> Any:
        return _parse_instant(v)


class ConflictCheckRequest(BaseModel):
    """Request model for checking a candidate slot."""
    start_time: datetime
    duration_minutes: Optional[int] = Field(default=None, gt=0, le=24 * 60)
    exclude_session_id: Optional[int] = None

    @field_validator('start_time', mode='before')
    @classmethod
    def validate_start_time(cls, v: Any) -> Any:
        return _parse_instant(v)


class PaymentStatusRequest(BaseModel):
    """Request model for a payment status change."""
    payment_status: str


class BulkStatusRequest(BaseModel):
    """Request model for a bulk payment status change."""
    session_ids: List[int] = Field(min_length=1)
    payment_status: str


@router.get("", summary="List all sessions", response_model=SessionListResponse)
async def list_sessions(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
) -> SessionListResponse:
    """
    Get every session of the current owner, newest first.

    Patients with auto-renew enabled whose future sessions ran out are
    renewed before the list is returned.
    """
    try:
        sessions = SessionService.list_sessions(db, user_id)
        return SessionListResponse(sessions=[session_to_response(s) for s in sessions])
    except DOMAIN_ERRORS as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception(f"Error getting sessions list: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch sessions"
        )


@router.get("/upcoming", summary="List upcoming sessions", response_model=SessionListResponse)
async def list_upcoming_sessions(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
) -> SessionListResponse:
    """Get non-cancelled sessions that have not started yet, soonest first."""
    sessions = SessionService.list_upcoming_sessions(db, user_id)
    return SessionListResponse(sessions=[session_to_response(s) for s in sessions])


@router.get("/availability", summary="List bookable slots for a date", response_model=AvailabilityResponse)
async def get_availability(
    date: str = Query(..., description="Local date in YYYY-MM-DD format"),
    duration_minutes: Optional[int] = Query(None, gt=0, le=24 * 60),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
) -> AvailabilityResponse:
    """
    Get the free hourly start times on a date within working hours.

    Slots in the past and slots that would conflict are omitted.
    """
    try:
        day = parse_date_string(date)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    slots = SessionService.get_available_slots(db, user_id, day, duration_minutes=duration_minutes)
    return AvailabilityResponse(date=day, slots=slots)


@router.post("/check-conflict", summary="Check a candidate slot", response_model=ConflictCheckResponse)
async def check_conflict(
    request: ConflictCheckRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
) -> ConflictCheckResponse:
    """Report whether a slot is free and, if not, the next available start."""
    conflict = SessionService.find_conflict(
        db, user_id, request.start_time, request.duration_minutes, request.exclude_session_id
    )
    if conflict is None:
        return ConflictCheckResponse(has_conflict=False)
    return ConflictCheckResponse(
        has_conflict=True,
        conflicting_session_id=conflict.conflicting_session.id,
        conflicting_patient_name=conflict.conflicting_patient_name,
        suggested_next_start=conflict.suggested_next_start,
    )


@router.post("", summary="Book a session", response_model=SessionMutationResponse,
             status_code=status.HTTP_201_CREATED)
async def create_session(
    request: SessionCreateRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
) -> SessionMutationResponse:
    """
    Book a single session.

    Returns 409 with the conflicting patient and a suggested start when the
    slot is taken.
    """
    try:
        result = SessionService.create_session(
            db,
            user_id,
            patient_id=request.patient_id,
            start_time=request.start_time,
            duration_minutes=request.duration_minutes,
            session_type=request.session_type,
            price=request.price,
            payment_status=request.payment_status,
            notes=request.notes,
            summary=request.summary,
        )
        return SessionMutationResponse(session=session_to_response(result.session), warnings=result.warnings)
    except DOMAIN_ERRORS as e:
        raise to_http_exception(e)


@router.get("/{session_id}", summary="Get a session", response_model=SessionResponse)
async def get_session(
    session_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
) -> SessionResponse:
    try:
        return session_to_response(SessionService.get_session(db, user_id, session_id))
    except DOMAIN_ERRORS as e:
        raise to_http_exception(e)


@router.put("/{session_id}/reschedule", summary="Reschedule a session", response_model=SessionMutationResponse)
async def reschedule_session(
    session_id: int,
    request: RescheduleRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
) -> SessionMutationResponse:
    """
    Move a session to a new start.

    Nothing changes on conflict (409). A paid session's financial record
    follows the move; if that fails the move is kept and a warning returned.
    """
    try:
        result = SessionService.reschedule_session(
            db, user_id, session_id, request.new_start, request.duration_minutes
        )
        return SessionMutationResponse(session=session_to_response(result.session), warnings=result.warnings)
    except DOMAIN_ERRORS as e:
        raise to_http_exception(e)


@router.post("/{session_id}/cancel", summary="Cancel a session", response_model=SessionMutationResponse)
async def cancel_session(
    session_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
) -> SessionMutationResponse:
    """Cancel a session; future sessions also lose their price and financial record."""
    try:
        result = SessionService.cancel_session(db, user_id, session_id)
        return SessionMutationResponse(session=session_to_response(result.session), warnings=result.warnings)
    except DOMAIN_ERRORS as e:
        raise to_http_exception(e)


@router.put("/{session_id}/payment-status", summary="Change payment status",
            response_model=SessionMutationResponse)
async def update_payment_status(
    session_id: int,
    request: PaymentStatusRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
) -> SessionMutationResponse:
    try:
        result = SessionService.update_payment_status(db, user_id, session_id, request.payment_status)
        return SessionMutationResponse(session=session_to_response(result.session), warnings=result.warnings)
    except DOMAIN_ERRORS as e:
        raise to_http_exception(e)


@router.post("/bulk-status", summary="Change payment status of several sessions",
             response_model=BulkStatusResponse)
async def bulk_update_status(
    request: BulkStatusRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
) -> BulkStatusResponse:
    try:
        result = SessionService.bulk_update_status(db, user_id, request.session_ids, request.payment_status)
        return BulkStatusResponse(
            sessions=[session_to_response(s) for s in result.sessions],
            warnings=result.warnings
        )
    except DOMAIN_ERRORS as e:
        raise to_http_exception(e)


@router.delete("/{session_id}", summary="Delete a session", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(
    session_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
) -> None:
    try:
        SessionService.delete_session(db, user_id, session_id)
    except DOMAIN_ERRORS as e:
        raise to_http_exception(e)
