"""
Reminder Service - sends medication reminders for the current time of day
"""
import logging
from collections import OrderedDict
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from healthtrack.models import Prescription
from healthtrack.services.adherence_service import build_callback_id, current_time_of_day
from healthtrack.services.whatsapp_service import WhatsAppService, whatsapp_service
from healthtrack.utils.dates import local_today

logger = logging.getLogger(__name__)

REMINDER_MESSAGE = "Have you taken your medication: {medicine}?"


class ReminderService:
    """No internal scheduling: an external trigger calls send_reminders"""

    def __init__(self, messaging: Optional[WhatsAppService] = None):
        self.messaging = messaging or whatsapp_service

    def due_prescriptions(self, db: Session, timing: str, now_utc: Optional[datetime] = None) -> "OrderedDict[str, List[Prescription]]":
        """Current prescriptions flagged for ``timing``, grouped by patient"""
        today = local_today(now_utc)
        prescriptions = db.query(Prescription).filter(
            getattr(Prescription, timing).is_(True),
            Prescription.start_date <= today,
            Prescription.end_date >= today
        ).order_by(Prescription.patient_number, Prescription.id).all()

        by_patient: "OrderedDict[str, List[Prescription]]" = OrderedDict()
        for prescription in prescriptions:
            by_patient.setdefault(prescription.patient_number, []).append(prescription)
        return by_patient

    async def send_reminders(self, db: Session, now_utc: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Send one Yes/No reminder per due prescription

        Returns:
            Dict with the active time of day (or None) and the number of
            reminders dispatched. A messaging failure aborts the run.
        """
        timing = current_time_of_day(now_utc)
        if timing is None:
            logger.info("No active time-of-day window, no reminders sent")
            return {"timeOfDay": None, "count": 0}

        today = local_today(now_utc).isoformat()
        count = 0
        for patient_number, prescriptions in self.due_prescriptions(db, timing, now_utc).items():
            for prescription in prescriptions:
                yes_id = build_callback_id("yes", "taken", prescription.id, prescription.medicine, today, timing)
                no_id = build_callback_id("no", "not_taken", prescription.id, prescription.medicine, today, timing)
                await self.messaging.send_buttons(
                    patient_number,
                    REMINDER_MESSAGE.format(medicine=prescription.medicine),
                    [(yes_id, "Yes"), (no_id, "No")]
                )
                count += 1

        logger.info(f"Sent {count} {timing} reminder(s)")
        return {"timeOfDay": timing, "count": count}


# Singleton instance
reminder_service = ReminderService()
