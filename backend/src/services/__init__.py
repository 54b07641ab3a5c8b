"""
Services package for scheduling business logic.

This package contains service classes that encapsulate the scheduling
engine and the session, patient and financial operations built on it.
"""

from .availability_service import AvailabilityService
from .recurrence_service import RecurrenceService
from .batch_validation_service import BatchValidationService
from .financial_service import FinancialService
from .auto_renewal_service import AutoRenewalService, RenewalReport
from .session_service import SessionService
from .patient_service import PatientService

__all__ = [
    "AvailabilityService",
    "RecurrenceService",
    "BatchValidationService",
    "FinancialService",
    "AutoRenewalService",
    "RenewalReport",
    "SessionService",
    "PatientService",
]
