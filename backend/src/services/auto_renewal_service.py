"""
Auto-renewal of exhausted patient schedules.

Whenever the full session list is fetched (and once a day from the
renewal scheduler), patients with auto-renew enabled whose booked future
sessions ran out get a fresh batch generated from their stored or
inferred weekly patterns.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore
from apscheduler.triggers.cron import CronTrigger  # type: ignore
from sqlalchemy.orm import Session

from core.config import AUTO_RENEW_CHECK_HOUR, DEFAULT_RENEWAL_WEEKS
from core.constants import AUTO_RENEW_SCHEDULER_MAX_INSTANCES, PAYMENT_STATUS_CANCELLED
from core.database import get_db_context
from core.exceptions import ScheduleConflictError, ScheduleValidationError, StoreError
from models import Appointment, Patient
from services.batch_validation_service import BatchValidationService
from services.schedule_pattern_strategies import SchedulePatternStrategy, StoredOrInferredPatternStrategy
from utils.datetime_utils import APP_TZ, ensure_utc, utc_now
from utils.session_queries import get_sessions_for_owner

logger = logging.getLogger(__name__)


@dataclass
class RenewalReport:
    """Outcome of one renewal scan."""
    renewed: Dict[int, int] = field(default_factory=dict)
    """patient_id → number of sessions created."""
    failed: Dict[int, str] = field(default_factory=dict)
    """patient_id → reason the renewal did not happen."""

    @property
    def has_changes(self) -> bool:
        return bool(self.renewed)


class AutoRenewalService:
    """Service for renewing schedules of patients whose future sessions ran out."""

    @staticmethod
    def needs_renewal(patient: Patient, sessions: Sequence[Appointment], now: datetime) -> bool:
        """
        Decide if a patient's schedule is exhausted.

        A patient qualifies when auto-renew is on, they are active, their
        frequency is recurring, they have at least one session on record and
        none of their non-cancelled sessions starts after ``now``.
        """
        if not patient.renews_automatically or not sessions:
            return False
        reference = ensure_utc(now)
        return not any(
            session.payment_status != PAYMENT_STATUS_CANCELLED
            and ensure_utc(session.start_time) > reference  # type: ignore[operator]
            for session in sessions
        )

    @staticmethod
    def renew_exhausted_schedules(
        db: Session,
        user_id: int,
        sessions: Optional[Sequence[Appointment]] = None,
        now: Optional[datetime] = None,
        strategy: Optional[SchedulePatternStrategy] = None,
        weeks: int = DEFAULT_RENEWAL_WEEKS
    ) -> RenewalReport:
        """
        Scan an owner's sessions and renew every qualifying patient.

        Each patient's batch is validated against the owner's calendar
        (including batches created earlier in the same scan, excluding the
        patient's own history) and committed on its own. A failure for one
        patient is recorded and logged; the scan continues.

        Args:
            db: Database session
            user_id: Owner whose patients are scanned
            sessions: Pre-fetched sessions of the owner with patients loaded
            now: Reference time
            strategy: Pattern source (defaults to stored, then inferred)
            weeks: Horizon of the new batch

        Returns:
            RenewalReport with renewed and failed patients
        """
        reference = ensure_utc(now) if now is not None else utc_now()
        pattern_strategy = strategy or StoredOrInferredPatternStrategy()
        all_sessions = list(sessions) if sessions is not None else get_sessions_for_owner(db, user_id)
        report = RenewalReport()

        by_patient: Dict[int, List[Appointment]] = {}
        patients: Dict[int, Patient] = {}
        for session in all_sessions:
            by_patient.setdefault(session.patient_id, []).append(session)
            if session.patient is not None:
                patients[session.patient_id] = session.patient

        # Calendar snapshot shared by every batch of this scan
        snapshot: List[Appointment] = [
            s for s in all_sessions if s.payment_status != PAYMENT_STATUS_CANCELLED
        ]

        for patient_id, patient_sessions in by_patient.items():
            patient = patients.get(patient_id)
            if patient is None or not AutoRenewalService.needs_renewal(patient, patient_sessions, reference):  # type: ignore[arg-type]
                continue

            try:
                patterns = pattern_strategy.get_patterns(patient, patient_sessions)
            except ValueError as e:
                report.failed[patient_id] = f"Invalid schedule pattern: {e}"
                logger.warning(f"Skipping auto-renewal for patient {patient_id}: invalid schedule pattern: {e}")
                continue

            if not patterns:
                report.failed[patient_id] = "No schedule pattern available"
                logger.warning(f"Skipping auto-renewal for patient {patient_id}: no schedule pattern available")
                continue

            try:
                created = BatchValidationService.create_batch(
                    db,
                    patient,
                    patterns,
                    weeks=weeks,
                    now=reference,
                    exclude_patient_sessions=True,
                    existing_sessions=snapshot,
                )
            except (ScheduleConflictError, ScheduleValidationError, StoreError) as e:
                report.failed[patient_id] = str(e)
                logger.warning(f"Auto-renewal failed for patient {patient_id}: {e}")
                continue

            snapshot.extend(created)
            report.renewed[patient_id] = len(created)
            logger.info(f"Auto-renewed {len(created)} sessions for patient {patient_id}")

        return report

    @staticmethod
    def get_owners_with_auto_renew(db: Session) -> List[int]:
        """Owners that have at least one active auto-renewing patient."""
        rows = db.query(Patient.user_id).filter(
            Patient.auto_renew_sessions == True,  # noqa: E712
            Patient.active == True  # noqa: E712
        ).distinct().all()
        return [row[0] for row in rows]


# Global singleton instance
_renewal_scheduler: Optional['RenewalScheduler'] = None


class RenewalScheduler:
    """
    Scheduler running the auto-renewal scan for every owner once a day.

    Renewal also runs whenever an owner fetches the full session list; the
    daily job covers owners who have not opened the app in a while.
    """

    def __init__(self):
        """
        Initialize the renewal scheduler.

        Note: Database sessions are created fresh for each scheduler run
        to avoid stale session issues.
        """
        self.scheduler = AsyncIOScheduler(timezone=APP_TZ)
        self._is_started = False

    async def start_scheduler(self) -> None:
        """Start the background scheduler. Called during application startup."""
        if self._is_started:
            logger.warning("Renewal scheduler is already started")
            return

        self.scheduler.add_job(  # type: ignore
            self._run_renewals,
            CronTrigger(hour=AUTO_RENEW_CHECK_HOUR, minute=0),
            id="auto_renew_sessions",
            name="Auto-renew exhausted patient schedules",
            max_instances=AUTO_RENEW_SCHEDULER_MAX_INSTANCES,
            replace_existing=True,
            misfire_grace_time=3600,  # Allow 1 hour grace time if server was down
        )

        self.scheduler.start()
        self._is_started = True
        logger.info(f"Renewal scheduler started (runs daily at {AUTO_RENEW_CHECK_HOUR}:00 practice time)")

    async def stop_scheduler(self) -> None:
        """Stop the background scheduler. Called during application shutdown."""
        if self._is_started:
            self.scheduler.shutdown(wait=True)
            self._is_started = False
            logger.info("Renewal scheduler stopped")

    async def _run_renewals(self) -> None:
        """Run the renewal scan for every owner with auto-renewing patients."""
        try:
            # Blocking database work runs in a worker thread to keep the event loop free
            await asyncio.to_thread(self._execute_renewals)
        except Exception as e:
            logger.exception(f"Error running auto-renewal scan: {e}")

    def _execute_renewals(self) -> Dict[int, RenewalReport]:
        """
        Execute the renewal scan (synchronous/blocking operations).

        Returns:
            Renewal report per owner id
        """
        reports: Dict[int, RenewalReport] = {}
        with get_db_context() as db:
            owner_ids = AutoRenewalService.get_owners_with_auto_renew(db)
        for owner_id in owner_ids:
            with get_db_context() as db:
                report = AutoRenewalService.renew_exhausted_schedules(db, owner_id)
            reports[owner_id] = report
            if report.renewed or report.failed:
                logger.info(
                    f"Renewal scan for owner {owner_id}: renewed={report.renewed} failed={report.failed}"
                )
        return reports


def get_renewal_scheduler() -> 'RenewalScheduler':
    """Get the global renewal scheduler instance."""
    global _renewal_scheduler
    if _renewal_scheduler is None:
        _renewal_scheduler = RenewalScheduler()
    return _renewal_scheduler


async def start_renewal_scheduler() -> None:
    """Start the global renewal scheduler."""
    await get_renewal_scheduler().start_scheduler()


async def stop_renewal_scheduler() -> None:
    """Stop the global renewal scheduler."""
    global _renewal_scheduler
    if _renewal_scheduler:
        await _renewal_scheduler.stop_scheduler()
