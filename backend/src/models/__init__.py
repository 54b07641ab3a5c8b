# Package initialization
# Import all models to ensure relationships are properly established
from .patient import Patient, SchedulePattern
from .appointment import Appointment
from .financial_record import FinancialRecord

__all__ = [
    "Patient",
    "SchedulePattern",
    "Appointment",
    "FinancialRecord",
]
