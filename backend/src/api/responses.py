"""
Shared response models for API endpoints.

This module contains Pydantic response models that are shared across
the sessions and patients routers, plus the helpers that build them from
ORM objects.
"""

from datetime import date as date_type, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from models import Appointment, Patient


class SessionResponse(BaseModel):
    """Response model for a session."""
    id: int
    patient_id: int
    patient_name: Optional[str] = None
    start_time: datetime  # UTC instant
    end_time: datetime
    duration_minutes: int
    session_type: str
    price: Optional[Decimal] = None
    payment_status: str
    summary: Optional[str] = None
    notes: Optional[str] = None


class SessionListResponse(BaseModel):
    """Response model for listing sessions."""
    sessions: List[SessionResponse]


class SessionMutationResponse(BaseModel):
    """Response model for a single-session change."""
    session: SessionResponse
    warnings: List[str] = []  # Financial follow-ups that failed


class BulkStatusResponse(BaseModel):
    """Response model for a bulk status change."""
    sessions: List[SessionResponse]
    warnings: List[str] = []


class ConflictCheckResponse(BaseModel):
    """Response model for a conflict check."""
    has_conflict: bool
    conflicting_session_id: Optional[int] = None
    conflicting_patient_name: Optional[str] = None
    suggested_next_start: Optional[datetime] = None


class AvailabilityResponse(BaseModel):
    """Response model for bookable slots on a date."""
    date: date_type
    slots: List[datetime]


class PatientResponse(BaseModel):
    """Response model for patient information."""
    id: int
    full_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    session_frequency: str
    session_price: Optional[Decimal] = None
    auto_renew_sessions: bool
    active: bool
    session_schedules: List[Dict[str, Any]] = []
    notes: Optional[str] = None
    created_at: datetime


class PatientListResponse(BaseModel):
    """Response model for listing patients."""
    patients: List[PatientResponse]


class GeneratedSessionsResponse(BaseModel):
    """Response model for a generated batch."""
    sessions: List[SessionResponse]
    created_count: int
    deleted_count: int = 0


class DeactivatePatientResponse(BaseModel):
    """Response model for patient deactivation."""
    patient_id: int
    deleted_sessions: int


def session_to_response(session: Appointment) -> SessionResponse:
    return SessionResponse(
        id=session.id,
        patient_id=session.patient_id,
        patient_name=session.patient_name,
        start_time=session.start_instant,
        end_time=session.end_instant,
        duration_minutes=session.effective_duration,
        session_type=session.session_type,
        price=session.price,
        payment_status=session.payment_status,
        summary=session.summary,
        notes=session.notes,
    )


def patient_to_response(patient: Patient) -> PatientResponse:
    return PatientResponse(
        id=patient.id,
        full_name=patient.full_name,
        email=patient.email,
        phone=patient.phone,
        session_frequency=patient.session_frequency,
        session_price=patient.session_price,
        auto_renew_sessions=patient.auto_renew_sessions,
        active=patient.active,
        session_schedules=patient.session_schedules or [],
        notes=patient.notes,
        created_at=patient.created_at,
    )
