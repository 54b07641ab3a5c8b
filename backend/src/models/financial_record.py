"""
Financial record model for the practice's bookkeeping.

A record may be linked to at most one session. Session-linked income
records are created when a session is paid, follow the session's date
when it is rescheduled, and are removed when a future session is cancelled.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Date, ForeignKey, Index, Integer, Numeric, String, Text, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import DEFAULT_PAYMENT_METHOD, SESSION_FINANCIAL_CATEGORY, TRANSACTION_TYPE_INCOME
from core.database import Base


class FinancialRecord(Base):
    """Income or expense entry, optionally derived from a session."""

    __tablename__ = "financial_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    """Owner (therapist account) of this record."""

    patient_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("patients.id", ondelete="SET NULL"), nullable=True
    )

    appointment_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("appointments.id", ondelete="SET NULL"), nullable=True, unique=True
    )
    """Linked session, if this record was derived from one."""

    transaction_type: Mapped[str] = mapped_column(String(20), nullable=False, default=TRANSACTION_TYPE_INCOME)
    """'income' or 'expense'."""

    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    payment_method: Mapped[str] = mapped_column(String(30), nullable=False, default=DEFAULT_PAYMENT_METHOD)

    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    """Local (practice timezone) date of the transaction."""

    category: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, default=SESSION_FINANCIAL_CATEGORY)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    appointment = relationship("Appointment", back_populates="financial_record")

    __table_args__ = (
        Index('idx_financial_records_user_date', 'user_id', 'transaction_date'),
    )
