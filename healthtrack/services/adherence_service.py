"""
Adherence Service - time-of-day windows, reminder callbacks and streak upserts
"""
import logging
from datetime import date, datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from healthtrack.config import TIME_OF_DAY_WINDOWS, TIMINGS
from healthtrack.models import MedicationStreak, Prescription
from healthtrack.services.whatsapp_service import WhatsAppService, whatsapp_service
from healthtrack.utils.dates import local_now, local_today, parse_date
from healthtrack.utils.exceptions import (
    HealthTrackError,
    MedicationMismatch,
    NotFoundError,
    StorageFailed,
    ValidationError,
)

logger = logging.getLogger(__name__)

SEPARATOR = "||"

CONFIRMATION_MESSAGE = (
    "Great job taking your {medicine} {timing} dose! 🎉 Your commitment to your health is awesome."
)
MISSED_DOSE_MESSAGE = (
    "I understand you haven't taken your {medicine} {timing} dose yet. Remember, it's important "
    "for your health. Is there anything preventing you from taking it?"
)
NOT_CURRENT_MESSAGE = (
    "It seems like {medicine} is not in your current prescription. "
    "Please check with your healthcare provider."
)
FAILURE_MESSAGE = (
    "Oops! We couldn't record your medication right now. Don't worry, please try again later "
    "or contact support if this persists."
)
UNEXPECTED_ACTION_MESSAGE = "I'm not sure how to handle that response. Could you please clarify or try again?"
USE_BUTTONS_MESSAGE = "I didn't quite catch that. Could you please use the buttons to respond?"


# ==================== TIME OF DAY ====================

def current_time_of_day(now_utc: Optional[datetime] = None) -> Optional[str]:
    """Reminder window for the patient's wall-clock time, or None between windows"""
    local = local_now(now_utc)
    minute = local.hour * 60 + local.minute
    for timing in TIMINGS:
        for start, end in TIME_OF_DAY_WINDOWS[timing]:
            if start <= minute < end:
                return timing
    return None


# ==================== CALLBACK IDS ====================

class ReminderReply(BaseModel):
    action: str
    taken_token: str
    prescription_id: int
    medicine_name: str
    reminder_date: str
    timing: str
    taken: bool


def build_callback_id(
    action: str,
    taken_token: str,
    prescription_id: int,
    medicine_name: str,
    reminder_date: str,
    timing: str
) -> str:
    """``action||taken||id||medicine_name||date||timing`` with spaces in the name as underscores"""
    medicine = "_".join(medicine_name.split())
    return SEPARATOR.join([action, taken_token, str(prescription_id), medicine, reminder_date, timing])


def parse_callback_id(button_id: str) -> ReminderReply:
    """
    Inverse of build_callback_id

    Any parts between the id and the date are joined back into the
    medicine name. Only yes/taken and no/not_taken are valid actions.
    """
    parts = (button_id or "").split(SEPARATOR)
    if len(parts) < 6:
        raise ValidationError(f"Malformed reminder reply id: {button_id!r}")

    action, taken_token = parts[0].strip().lower(), parts[1].strip().lower()
    if (action, taken_token) == ("yes", "taken"):
        taken = True
    elif (action, taken_token) == ("no", "not_taken"):
        taken = False
    else:
        raise ValidationError(f"Unexpected reminder action: {parts[0]}||{parts[1]}")

    try:
        prescription_id = int(parts[2])
    except ValueError:
        raise ValidationError(f"Invalid prescription id in reminder reply: {parts[2]!r}")

    timing = parts[-1].strip().lower()
    if timing not in TIMINGS:
        raise ValidationError(f"Invalid timing in reminder reply: {parts[-1]!r}")

    reminder_date = parts[-2].strip()
    parse_date(reminder_date, "reminder date")

    medicine_name = " ".join(parts[3:-2]).replace("_", " ").strip()

    return ReminderReply(
        action=action,
        taken_token=taken_token,
        prescription_id=prescription_id,
        medicine_name=medicine_name,
        reminder_date=reminder_date,
        timing=timing,
        taken=taken
    )


def _normalize_name(name: Optional[str]) -> str:
    return " ".join((name or "").replace("_", " ").lower().split())


# ==================== SERVICE ====================

class AdherenceService:
    """Records Taken/NotTaken per prescription, date and time slot"""

    def __init__(self, messaging: Optional[WhatsAppService] = None):
        self.messaging = messaging or whatsapp_service

    def get_prescription(
        self,
        db: Session,
        prescription_id: int,
        patient_number: Optional[str] = None
    ) -> Prescription:
        query = db.query(Prescription).filter(Prescription.id == prescription_id)
        if patient_number is not None:
            query = query.filter(Prescription.patient_number == patient_number)
        prescription = query.first()
        if not prescription:
            raise NotFoundError(f"Prescription {prescription_id} not found")
        return prescription

    def record(
        self,
        db: Session,
        prescription_id: int,
        on_date: date,
        timing: str,
        taken: bool,
        medicine_name: Optional[str] = None
    ) -> MedicationStreak:
        """
        Upsert the streak row for (prescription_id, on_date) and set one slot

        Other slots on an existing row are left as they are. A later update
        for the same slot overwrites the earlier answer.
        """
        if timing not in TIMINGS:
            raise ValidationError(f"Invalid timing: {timing}")

        try:
            entry = self._apply(db, prescription_id, on_date, timing, taken, medicine_name)
            db.commit()
        except IntegrityError:
            # Another request inserted the same (prescription, date) row first
            db.rollback()
            try:
                entry = self._apply(db, prescription_id, on_date, timing, taken, medicine_name)
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Failed to update adherence for prescription {prescription_id}: {e}", exc_info=True)
                raise StorageFailed(f"Failed to record adherence: {e.__class__.__name__}") from e
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to update adherence for prescription {prescription_id}: {e}", exc_info=True)
            raise StorageFailed(f"Failed to record adherence: {e.__class__.__name__}") from e

        db.refresh(entry)
        logger.info(f"Recorded {timing}={taken} for prescription {prescription_id} on {on_date}")
        return entry

    def _apply(self, db, prescription_id, on_date, timing, taken, medicine_name) -> MedicationStreak:
        entry = db.query(MedicationStreak).filter(
            MedicationStreak.prescription_id == prescription_id,
            MedicationStreak.date == on_date
        ).first()
        if entry is None:
            entry = MedicationStreak(
                prescription_id=prescription_id,
                medicine_name=medicine_name,
                date=on_date
            )
            db.add(entry)
        setattr(entry, timing, taken)
        db.flush()
        return entry

    def update(
        self,
        db: Session,
        patient_number: str,
        prescription_id: int,
        on_date: str,
        timing: str,
        taken: bool
    ) -> Dict[str, Any]:
        """Direct adherence update for one of the patient's prescriptions"""
        prescription = self.get_prescription(db, prescription_id, patient_number)
        entry = self.record(
            db,
            prescription.id,
            parse_date(on_date, "date"),
            timing,
            taken,
            medicine_name=prescription.medicine
        )
        return entry.to_dict()

    def apply_reply(
        self,
        db: Session,
        sender: str,
        reply: ReminderReply,
        today: Optional[date] = None
    ) -> MedicationStreak:
        """Validate a parsed reminder reply against the live prescription and record it"""
        today = today or local_today()
        prescription = self.get_prescription(db, reply.prescription_id, sender)

        if not prescription.is_current(today):
            raise NotFoundError("Prescription not found or not current")

        if _normalize_name(prescription.medicine) != _normalize_name(reply.medicine_name):
            logger.error(
                f"Reply for prescription {prescription.id} names {reply.medicine_name!r}, "
                f"stored medicine is {prescription.medicine!r}"
            )
            raise MedicationMismatch(
                f"{reply.medicine_name} does not match prescription {prescription.id}"
            )

        return self.record(
            db,
            prescription.id,
            parse_date(reply.reminder_date, "reminder date"),
            reply.timing,
            reply.taken,
            medicine_name=prescription.medicine
        )

    async def handle_reply(
        self,
        db: Session,
        sender: str,
        button_id: str,
        today: Optional[date] = None
    ) -> str:
        """
        Handle a reminder button reply and always answer the sender

        Returns the message text that was sent.
        """
        try:
            reply = parse_callback_id(button_id)
        except ValidationError as e:
            logger.warning(f"Unexpected button reply from {sender}: {e.details}")
            message = UNEXPECTED_ACTION_MESSAGE
        else:
            try:
                self.apply_reply(db, sender, reply, today)
                template = CONFIRMATION_MESSAGE if reply.taken else MISSED_DOSE_MESSAGE
                message = template.format(medicine=reply.medicine_name, timing=reply.timing)
            except (NotFoundError, MedicationMismatch) as e:
                logger.warning(f"Reply from {sender} rejected: {e.details}")
                message = NOT_CURRENT_MESSAGE.format(medicine=reply.medicine_name)
            except HealthTrackError as e:
                logger.error(f"Failed to record reply from {sender}: {e.details}")
                message = FAILURE_MESSAGE
            except Exception as e:
                logger.error(f"Unexpected error recording reply from {sender}: {e}", exc_info=True)
                db.rollback()
                message = FAILURE_MESSAGE

        await self.messaging.send_text(sender, message)
        return message


# Singleton instance
adherence_service = AdherenceService()
