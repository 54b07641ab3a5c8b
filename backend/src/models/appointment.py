"""
Appointment model representing a scheduled therapy session.

Each appointment ("session") links a patient to an absolute start instant
and a duration. The start is always stored in UTC; local wall-clock values
are derived through ``utils.datetime_utils`` only.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import ForeignKey, Index, Integer, Numeric, String, Text, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from core.config import DEFAULT_SESSION_DURATION_MINUTES
from core.constants import DEFAULT_SESSION_TYPE, PAYMENT_STATUS_CANCELLED, PAYMENT_STATUS_PENDING
from core.database import Base
from utils.datetime_utils import ensure_utc


class Appointment(Base):
    """
    Appointment entity representing one session between a patient and the therapist.

    Lifecycle:
    - created by the recurrence generator (in validated batches) or by direct booking
    - mutated by reschedule, payment-status change or cancellation
    - removed only explicitly or when a patient's future unpaid schedule is replaced
    """

    __tablename__ = "appointments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    """Unique identifier for the session."""

    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    """Owner (therapist account) of this session."""

    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.id", ondelete="CASCADE"))
    """Reference to the patient attending this session."""

    start_time: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    """Absolute start instant (UTC)."""

    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=DEFAULT_SESSION_DURATION_MINUTES)

    session_type: Mapped[str] = mapped_column(String(100), nullable=False, default=DEFAULT_SESSION_TYPE)
    """Category label shown on the calendar and on receipts."""

    price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)

    payment_status: Mapped[str] = mapped_column(String(20), nullable=False, default=PAYMENT_STATUS_PENDING)
    """Valid values: 'pending', 'paid', 'cancelled'."""

    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    # Relationships
    patient = relationship("Patient", back_populates="sessions")
    """Relationship to the Patient entity."""

    financial_record = relationship("FinancialRecord", back_populates="appointment", uselist=False)
    """Linked bookkeeping entry (one-to-one, if the session has been paid)."""

    @validates("start_time")
    def _normalize_start_time(self, key: str, value: datetime) -> datetime:
        # Always persist UTC so naive values read back are unambiguous
        return ensure_utc(value)  # type: ignore[return-value]

    @property
    def start_instant(self) -> datetime:
        """Start as a timezone-aware UTC datetime."""
        return ensure_utc(self.start_time)  # type: ignore[return-value]

    @property
    def end_instant(self) -> datetime:
        """End of the effective interval ``[start, start + duration)``."""
        return self.start_instant + timedelta(minutes=self.effective_duration)

    @property
    def effective_duration(self) -> int:
        return self.duration_minutes or DEFAULT_SESSION_DURATION_MINUTES

    @property
    def is_cancelled(self) -> bool:
        return self.payment_status == PAYMENT_STATUS_CANCELLED

    @property
    def patient_name(self) -> Optional[str]:
        """Display name of the owning patient, if loaded."""
        return self.patient.full_name if self.patient is not None else None

    __table_args__ = (
        Index('idx_appointments_user_start', 'user_id', 'start_time'),
        Index('idx_appointments_patient', 'patient_id'),
        Index('idx_appointments_payment_status', 'payment_status'),
    )
