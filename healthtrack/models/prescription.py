"""
Prescription Model - one row per prescribed medicine
"""
from sqlalchemy import Column, Integer, String, Text, Boolean, Date, DateTime
from sqlalchemy.orm import relationship
from datetime import date, datetime

from healthtrack.database import Base


class Prescription(Base):
    __tablename__ = "prescriptions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    patient_number = Column(String(32), nullable=False, index=True)

    # Shared by all medicines issued on the same visit
    prescription_uuid = Column(String(36), nullable=False, index=True)
    prescription_date = Column(Date)
    doctor = Column(String(255))
    public_url = Column(String(1024))

    # Medicine details
    medicine = Column(String(255), nullable=False)
    before_after_food = Column(String(64))
    start_date = Column(Date, index=True)
    end_date = Column(Date, index=True)
    notes = Column(Text)

    # Timing flags
    morning = Column(Boolean, default=False, nullable=False)
    afternoon = Column(Boolean, default=False, nullable=False)
    evening = Column(Boolean, default=False, nullable=False)
    night = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    streak = relationship(
        "MedicationStreak",
        back_populates="prescription",
        cascade="all, delete-orphan",
        order_by="MedicationStreak.date"
    )

    def is_current(self, today: date) -> bool:
        """start_date <= today <= end_date"""
        if self.start_date is None or self.end_date is None:
            return False
        return self.start_date <= today <= self.end_date

    def to_dict(self):
        """Convert to dictionary"""
        return {
            "id": self.id,
            "patient_number": self.patient_number,
            "prescription_uuid": self.prescription_uuid,
            "prescription_date": self.prescription_date.isoformat() if self.prescription_date else None,
            "doctor": self.doctor,
            "public_url": self.public_url,
            "medicine": self.medicine,
            "before_after_food": self.before_after_food,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "notes": self.notes,
            "morning": self.morning,
            "afternoon": self.afternoon,
            "evening": self.evening,
            "night": self.night,
        }
