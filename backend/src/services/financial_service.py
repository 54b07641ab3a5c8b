"""
Financial service keeping session-linked records in sync.

A paid session with a price owns exactly one income record. The record's
date follows the session when it is rescheduled and the record disappears
when the session stops being paid or a future session is cancelled.

Update and delete helpers are best-effort collaborators: they commit on
their own and raise ``DependentUpdateError`` so the caller can keep its
primary mutation and surface a warning instead.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.constants import (
    DEFAULT_PAYMENT_METHOD,
    PAYMENT_STATUS_PAID,
    SESSION_FINANCIAL_CATEGORY,
    TRANSACTION_TYPE_INCOME,
)
from core.exceptions import DependentUpdateError
from models import Appointment, FinancialRecord
from utils.datetime_utils import instant_to_local_date

logger = logging.getLogger(__name__)


class FinancialService:
    """Service for session-linked financial records."""

    @staticmethod
    def get_for_session(db: Session, session_id: int) -> Optional[FinancialRecord]:
        """Return the record linked to a session, if any."""
        return db.query(FinancialRecord).filter(FinancialRecord.appointment_id == session_id).first()

    @staticmethod
    def build_record_for_session(session: Appointment, patient_name: Optional[str] = None) -> FinancialRecord:
        """
        Build (without persisting) the income record for a paid session.

        The transaction date is the session's local date.
        """
        name = patient_name or session.patient_name or ""
        return FinancialRecord(
            user_id=session.user_id,
            patient_id=session.patient_id,
            appointment_id=session.id,
            transaction_type=TRANSACTION_TYPE_INCOME,
            amount=session.price,
            description=f"Session payment - {name}".rstrip(" -"),
            payment_method=DEFAULT_PAYMENT_METHOD,
            transaction_date=instant_to_local_date(session.start_time),
            category=SESSION_FINANCIAL_CATEGORY,
        )

    @staticmethod
    def add_records_for_paid_sessions(
        db: Session,
        sessions: List[Appointment],
        patient_name: Optional[str] = None
    ) -> List[FinancialRecord]:
        """
        Stage income records for paid, priced sessions of a batch.

        Sessions must already be flushed so they have ids. Nothing is
        committed here; the records join the caller's transaction.
        """
        records: List[FinancialRecord] = []
        for session in sessions:
            if session.payment_status == PAYMENT_STATUS_PAID and session.price is not None:
                records.append(FinancialService.build_record_for_session(session, patient_name))
        if records:
            db.add_all(records)
        return records

    @staticmethod
    def create_for_paid_session(db: Session, session: Appointment) -> Optional[FinancialRecord]:
        """
        Create the income record for a paid session if it has none yet.

        Returns:
            The created record, or None when the session is unpaid, has no
            price, or already has a record

        Raises:
            DependentUpdateError: If the record could not be written
        """
        if session.payment_status != PAYMENT_STATUS_PAID or session.price is None:
            return None
        try:
            if FinancialService.get_for_session(db, session.id) is not None:
                return None
            record = FinancialService.build_record_for_session(session)
            db.add(record)
            db.commit()
            logger.info(f"Created financial record {record.id} for session {session.id}")
            return record
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning(f"Failed to create financial record for session {session.id}: {e}")
            raise DependentUpdateError(
                f"Could not create financial record for session {session.id}", session_id=session.id
            ) from e

    @staticmethod
    def delete_for_session(db: Session, session_id: int) -> bool:
        """
        Delete the record linked to a session.

        Returns:
            True if a record was deleted, False if there was none

        Raises:
            DependentUpdateError: If the delete failed
        """
        try:
            deleted = db.query(FinancialRecord).filter(
                FinancialRecord.appointment_id == session_id
            ).delete(synchronize_session="fetch")
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning(f"Failed to delete financial record for session {session_id}: {e}")
            raise DependentUpdateError(
                f"Could not delete financial record for session {session_id}", session_id=session_id
            ) from e
        if deleted:
            logger.info(f"Deleted financial record for session {session_id}")
        return bool(deleted)

    @staticmethod
    def update_date_for_session(db: Session, session_id: int, new_start: datetime) -> bool:
        """
        Move the linked record's transaction date to the session's new local date.

        Returns:
            True if a record was updated, False if there was none

        Raises:
            DependentUpdateError: If the update failed
        """
        try:
            record = FinancialService.get_for_session(db, session_id)
            if record is None:
                return False
            record.transaction_date = instant_to_local_date(new_start)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning(f"Failed to update financial record date for session {session_id}: {e}")
            raise DependentUpdateError(
                f"Could not update financial record for session {session_id}", session_id=session_id
            ) from e
        logger.info(f"Moved financial record of session {session_id} to {record.transaction_date}")
        return True
