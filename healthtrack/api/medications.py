"""
Medication API Routes - prescriptions, adherence and reminders
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from healthtrack.api.dependencies import (
    get_adherence_service,
    get_current_patient,
    get_db,
    get_records_service,
    get_reminder_service,
)
from healthtrack.schemas.requests import AdherenceUpdate
from healthtrack.services.adherence_service import AdherenceService
from healthtrack.services.records_service import RecordsService
from healthtrack.services.reminder_service import ReminderService

logger = logging.getLogger(__name__)

router = APIRouter()


# ==================== MEDICATIONS ====================

@router.get("/medications/current")
async def get_current_medications(
    patient_number: str = Depends(get_current_patient),
    records: RecordsService = Depends(get_records_service),
    db: Session = Depends(get_db)
):
    """
    Current prescriptions with their per-date adherence
    """
    return {
        "success": True,
        "data": records.current_medications(db, patient_number)
    }


@router.get("/medications/past")
async def get_past_medications(
    patient_number: str = Depends(get_current_patient),
    records: RecordsService = Depends(get_records_service),
    db: Session = Depends(get_db)
):
    return {
        "success": True,
        "data": records.past_medications(db, patient_number)
    }


@router.get("/medications/streaks")
async def get_streaks(
    patient_number: str = Depends(get_current_patient),
    records: RecordsService = Depends(get_records_service),
    db: Session = Depends(get_db)
):
    return {
        "success": True,
        "data": records.streak_map(db, patient_number)
    }


@router.post("/medications/adherence")
async def update_adherence(
    update: AdherenceUpdate,
    patient_number: str = Depends(get_current_patient),
    adherence: AdherenceService = Depends(get_adherence_service),
    records: RecordsService = Depends(get_records_service),
    db: Session = Depends(get_db)
):
    """
    Mark one dose taken or missed
    """
    entry = adherence.update(
        db,
        patient_number,
        update.prescriptionId,
        update.date,
        update.timing,
        update.taken
    )
    return {
        "success": True,
        "data": entry,
        "updatedStreak": records.streak_map(db, patient_number).get(str(update.prescriptionId), {})
    }


# ==================== REMINDERS ====================

@router.get("/reminders/send")
async def send_reminders(
    reminders: ReminderService = Depends(get_reminder_service),
    db: Session = Depends(get_db)
):
    """
    Reminder trigger, called by an external scheduler
    """
    outcome = await reminders.send_reminders(db)
    if outcome["timeOfDay"] is None:
        message = "No active reminder window"
    else:
        message = f"Sent {outcome['count']} {outcome['timeOfDay']} reminder(s)"
    return {
        "success": True,
        "message": message,
        **outcome
    }
