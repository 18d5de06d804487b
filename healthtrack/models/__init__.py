"""
Database Models Package
"""
from healthtrack.models.test_result import TestResultRow
from healthtrack.models.imaging_result import ImagingResultRow
from healthtrack.models.prescription import Prescription
from healthtrack.models.medication_streak import MedicationStreak

__all__ = [
    "TestResultRow",
    "ImagingResultRow",
    "Prescription",
    "MedicationStreak"
]
