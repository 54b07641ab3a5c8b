"""
Domain exceptions raised by the scheduling services.

The API layer translates these into HTTP responses; background jobs log
them. Services never swallow them silently.
"""

from datetime import datetime
from typing import Any, Dict, Optional


class ScheduleConflictError(Exception):
    """Exception raised when a candidate session overlaps an existing one."""

    def __init__(
        self,
        conflicting_session: Any,
        conflicting_patient_name: Optional[str],
        suggested_next_start: datetime,
        candidate_start: Optional[datetime] = None,
    ):
        self.conflicting_session = conflicting_session
        self.conflicting_patient_name = conflicting_patient_name
        self.suggested_next_start = suggested_next_start
        self.candidate_start = candidate_start
        self.message = (
            f"Schedule conflict with session of {conflicting_patient_name or 'unknown patient'}; "
            f"next available start is {suggested_next_start.isoformat()}"
        )
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Caller-facing payload for a conflict."""
        return {
            "error": "schedule_conflict",
            "message": self.message,
            "conflicting_session_id": getattr(self.conflicting_session, "id", None),
            "conflicting_patient_name": self.conflicting_patient_name,
            "suggested_next_start": self.suggested_next_start.isoformat(),
        }


class ScheduleValidationError(ValueError):
    """Exception raised for malformed dates, times or schedule patterns."""
    pass


class DependentUpdateError(Exception):
    """Exception raised when a linked financial record could not be updated or deleted."""

    def __init__(self, message: str, session_id: Optional[int] = None):
        self.message = message
        self.session_id = session_id
        super().__init__(self.message)


class StoreError(Exception):
    """Exception raised when a read or write against the database fails."""
    pass


class SessionNotFoundError(LookupError):
    """Exception raised when a session does not exist for the owner."""
    pass


class PatientNotFoundError(LookupError):
    """Exception raised when a patient does not exist for the owner."""
    pass
