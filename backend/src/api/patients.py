# pyright: reportMissingTypeStubs=false
"""
Patient Management API endpoints.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy.orm import Session

from api.dependencies import get_current_user_id
from api.errors import to_http_exception
from api.responses import (
    DeactivatePatientResponse,
    GeneratedSessionsResponse,
    PatientListResponse,
    PatientResponse,
    patient_to_response,
    session_to_response,
)
from core.config import DEFAULT_RENEWAL_WEEKS
from core.constants import FREQUENCY_WEEKLY, MAX_NOTES_LENGTH, MAX_STRING_LENGTH
from core.database import get_db
from core.exceptions import ScheduleConflictError, ScheduleValidationError, StoreError
from services import PatientService, SessionService

logger = logging.getLogger(__name__)

router = APIRouter()

DOMAIN_ERRORS = (ScheduleConflictError, ScheduleValidationError, LookupError, StoreError)


class PatientCreateRequest(BaseModel):
    """Request model for creating a patient."""
    full_name: str = Field(max_length=MAX_STRING_LENGTH)
    email: Optional[str] = Field(default=None, max_length=MAX_STRING_LENGTH)
    phone: Optional[str] = Field(default=None, max_length=50)
    session_frequency: str = FREQUENCY_WEEKLY
    session_price: Optional[Decimal] = Field(default=None, ge=0)
    auto_renew_sessions: bool = False
    # Validated by the service so malformed patterns map to 400
    session_schedules: Optional[List[Dict[str, Any]]] = None
    notes: Optional[str] = Field(default=None, max_length=MAX_NOTES_LENGTH)

    @field_validator('full_name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError('Patient name is required')
        return v


class PatientUpdateRequest(BaseModel):
    """Request model for updating a patient."""
    full_name: Optional[str] = Field(default=None, max_length=MAX_STRING_LENGTH)
    email: Optional[str] = Field(default=None, max_length=MAX_STRING_LENGTH)
    phone: Optional[str] = Field(default=None, max_length=50)
    session_frequency: Optional[str] = None
    session_price: Optional[Decimal] = Field(default=None, ge=0)
    auto_renew_sessions: Optional[bool] = None
    session_schedules: Optional[List[Dict[str, Any]]] = None
    notes: Optional[str] = Field(default=None, max_length=MAX_NOTES_LENGTH)

    @model_validator(mode='after')
    def validate_at_least_one_field(self):
        """Ensure at least one field is provided for update."""
        if not self.model_dump(exclude_unset=True):
            raise ValueError('At least one field must be provided')
        return self


class GenerateSessionsRequest(BaseModel):
    """Request model for generating a patient's sessions."""
    patterns: Optional[List[Dict[str, Any]]] = None  # Defaults to the stored patterns
    weeks: int = Field(default=DEFAULT_RENEWAL_WEEKS, ge=1, le=104)


class ReplaceSessionsRequest(BaseModel):
    """Request model for replacing a patient's future sessions."""
    patterns: List[Dict[str, Any]]
    weeks: int = Field(default=DEFAULT_RENEWAL_WEEKS, ge=1, le=104)


@router.get("", summary="List patients", response_model=PatientListResponse)
async def list_patients(
    include_inactive: bool = Query(False, description="Include deactivated patients"),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
) -> PatientListResponse:
    """Get the current owner's patients sorted by name."""
    try:
        patients = PatientService.list_patients(db, user_id, include_inactive=include_inactive)
        return PatientListResponse(patients=[patient_to_response(p) for p in patients])
    except Exception as e:
        logger.exception(f"Error getting patients list: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch patients"
        )


@router.post("", summary="Create patient", response_model=PatientResponse,
             status_code=status.HTTP_201_CREATED)
async def create_patient(
    request: PatientCreateRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
) -> PatientResponse:
    """
    Create a new patient record.

    Schedule patterns are stored but no sessions are generated; use the
    generate endpoint for that.
    """
    try:
        patient = PatientService.create_patient(
            db,
            user_id,
            full_name=request.full_name,
            email=request.email,
            phone=request.phone,
            session_frequency=request.session_frequency,
            session_price=request.session_price,
            auto_renew_sessions=request.auto_renew_sessions,
            schedule_patterns=request.session_schedules,
            notes=request.notes,
        )
        return patient_to_response(patient)
    except DOMAIN_ERRORS as e:
        raise to_http_exception(e)


@router.get("/{patient_id}", summary="Get patient", response_model=PatientResponse)
async def get_patient(
    patient_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
) -> PatientResponse:
    try:
        return patient_to_response(PatientService.get_patient(db, user_id, patient_id))
    except DOMAIN_ERRORS as e:
        raise to_http_exception(e)


@router.put("/{patient_id}", summary="Update patient", response_model=PatientResponse)
async def update_patient(
    patient_id: int,
    request: PatientUpdateRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
) -> PatientResponse:
    """
    Update patient fields.

    Passing ``session_schedules`` stores new patterns without touching
    existing sessions (an empty list clears them).
    """
    try:
        patient = PatientService.update_patient(
            db,
            user_id,
            patient_id,
            full_name=request.full_name,
            email=request.email,
            phone=request.phone,
            session_frequency=request.session_frequency,
            session_price=request.session_price,
            auto_renew_sessions=request.auto_renew_sessions,
            notes=request.notes,
        )
        if request.session_schedules is not None:
            patient = PatientService.set_schedule_patterns(db, user_id, patient_id, request.session_schedules)
        return patient_to_response(patient)
    except DOMAIN_ERRORS as e:
        raise to_http_exception(e)


@router.post("/{patient_id}/sessions/generate", summary="Generate sessions from patterns",
             response_model=GeneratedSessionsResponse, status_code=status.HTTP_201_CREATED)
async def generate_sessions(
    patient_id: int,
    request: GenerateSessionsRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
) -> GeneratedSessionsResponse:
    """
    Generate a batch of sessions for a patient.

    The whole batch is rejected with 409 if any session conflicts.
    """
    try:
        sessions = PatientService.generate_sessions(
            db, user_id, patient_id, patterns=request.patterns, weeks=request.weeks
        )
        return GeneratedSessionsResponse(
            sessions=[session_to_response(s) for s in sessions],
            created_count=len(sessions)
        )
    except DOMAIN_ERRORS as e:
        raise to_http_exception(e)


@router.put("/{patient_id}/sessions/replace", summary="Replace future sessions",
            response_model=GeneratedSessionsResponse)
async def replace_sessions(
    patient_id: int,
    request: ReplaceSessionsRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
) -> GeneratedSessionsResponse:
    """
    Replace the patient's future unpaid sessions with a new batch.

    On conflict (409) nothing is deleted.
    """
    try:
        result = SessionService.replace_future_sessions(
            db, user_id, patient_id, request.patterns, weeks=request.weeks
        )
        return GeneratedSessionsResponse(
            sessions=[session_to_response(s) for s in result.sessions],
            created_count=len(result.sessions),
            deleted_count=result.deleted_count
        )
    except DOMAIN_ERRORS as e:
        raise to_http_exception(e)


@router.post("/{patient_id}/deactivate", summary="Deactivate patient",
             response_model=DeactivatePatientResponse)
async def deactivate_patient(
    patient_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
) -> DeactivatePatientResponse:
    """Deactivate a patient and delete their future sessions."""
    try:
        deleted = PatientService.deactivate_patient(db, user_id, patient_id)
        return DeactivatePatientResponse(patient_id=patient_id, deleted_sessions=deleted)
    except DOMAIN_ERRORS as e:
        raise to_http_exception(e)


@router.delete("/{patient_id}", summary="Delete patient", status_code=status.HTTP_204_NO_CONTENT)
async def delete_patient(
    patient_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
) -> None:
    """Delete a patient together with all of their sessions."""
    try:
        PatientService.delete_patient(db, user_id, patient_id)
    except DOMAIN_ERRORS as e:
        raise to_http_exception(e)
