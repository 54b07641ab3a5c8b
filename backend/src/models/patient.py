"""
Patient model representing individuals who receive treatment from a therapist.

Each patient belongs to one owner (the therapist account) and carries the
settings the scheduling engine needs: session frequency, default price,
auto-renewal flag, active flag, and an optional list of weekly schedule
patterns stored as JSON.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import JSON, Boolean, Index, Integer, Numeric, String, Text, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import (
    FREQUENCY_INTERVAL_WEEKS,
    FREQUENCY_WEEKLY,
    MAX_STRING_LENGTH,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_PENDING,
)
from core.database import Base
from utils.datetime_utils import parse_date_string, parse_time_of_day


# Schedule pattern schema validation model
class SchedulePattern(BaseModel):
    """
    Recurring weekly slot definition.

    Stored in ``patients.session_schedules`` using the camelCase keys the
    frontend sends (``dayOfWeek``, ``paymentStatus`` ...); both spellings
    are accepted on input.
    """
    model_config = ConfigDict(populate_by_name=True)

    day_of_week: int = Field(alias="dayOfWeek", ge=0, le=6, description="0=Sunday .. 6=Saturday")
    time: str = Field(description="Local wall-clock time, HH:MM")
    start_date: Optional[date] = Field(default=None, alias="startDate", description="No occurrence is generated before this date")
    payment_status: str = Field(default=PAYMENT_STATUS_PENDING, alias="paymentStatus")
    session_type: Optional[str] = Field(default=None, alias="sessionType")
    duration_minutes: Optional[int] = Field(default=None, alias="durationMinutes", gt=0, le=24 * 60)
    session_price: Optional[Decimal] = Field(default=None, alias="sessionPrice", ge=0)

    @field_validator('time')
    @classmethod
    def validate_time(cls, v: str) -> str:
        return parse_time_of_day(v).strftime('%H:%M')

    @field_validator('start_date', mode='before')
    @classmethod
    def validate_start_date(cls, v: Any) -> Any:
        if isinstance(v, str):
            if not v.strip():
                return None
            return parse_date_string(v)
        return v

    @field_validator('payment_status')
    @classmethod
    def validate_payment_status(cls, v: str) -> str:
        if v not in (PAYMENT_STATUS_PENDING, PAYMENT_STATUS_PAID):
            raise ValueError("paymentStatus must be 'pending' or 'paid'")
        return v

    def to_storage(self) -> Dict[str, Any]:
        """Serialise with the camelCase keys used in the JSON column."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Patient(Base):
    """
    Patient entity representing an individual who receives therapy sessions.
    """

    __tablename__ = "patients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    """Unique identifier for the patient."""

    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    """Owner (therapist account) this patient belongs to."""

    full_name: Mapped[str] = mapped_column(String(MAX_STRING_LENGTH))
    """Full name of the patient."""

    email: Mapped[Optional[str]] = mapped_column(String(MAX_STRING_LENGTH), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    session_frequency: Mapped[str] = mapped_column(String(20), nullable=False, default=FREQUENCY_WEEKLY)
    """How often sessions recur: 'weekly', 'biweekly', 'monthly' or 'as_needed'."""

    session_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    """Default price for generated sessions when a pattern does not set one."""

    auto_renew_sessions: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    """Generate a new batch automatically once booked future sessions run out."""

    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    session_schedules: Mapped[Optional[List[Dict[str, Any]]]] = mapped_column(JSON, nullable=True)
    """
    Stored weekly schedule patterns (see ``SchedulePattern``).

    NULL or empty means no explicit pattern; auto-renewal then infers one
    from the session history.
    """

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    # Relationships
    sessions = relationship("Appointment", back_populates="patient")
    """All sessions booked for this patient."""

    __table_args__ = (
        Index('idx_patients_user', 'user_id'),
    )

    def get_schedule_patterns(self) -> List[SchedulePattern]:
        """Get stored schedule patterns with schema validation."""
        return [SchedulePattern.model_validate(item) for item in (self.session_schedules or [])]

    def set_schedule_patterns(self, patterns: List[SchedulePattern]) -> None:
        """Store schedule patterns with schema validation."""
        self.session_schedules = [pattern.to_storage() for pattern in patterns] or None

    @property
    def renews_automatically(self) -> bool:
        """Whether the auto-renewal scan should consider this patient."""
        return bool(
            self.auto_renew_sessions
            and self.active
            and FREQUENCY_INTERVAL_WEEKS.get(self.session_frequency, 0) > 0
        )
