"""
Medication Streak Model - adherence per prescription per calendar day
"""
from sqlalchemy import Column, Integer, String, Boolean, Date, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime

from healthtrack.database import Base


class MedicationStreak(Base):
    __tablename__ = "medication_streak"
    __table_args__ = (
        UniqueConstraint("prescription_id", "date", name="uq_medication_streak_prescription_date"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    prescription_id = Column(Integer, ForeignKey("prescriptions.id", ondelete="CASCADE"), nullable=False, index=True)
    medicine_name = Column(String(255))
    date = Column(Date, nullable=False)

    # None = not yet recorded, False = marked not taken
    morning = Column(Boolean, nullable=True)
    afternoon = Column(Boolean, nullable=True)
    evening = Column(Boolean, nullable=True)
    night = Column(Boolean, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    prescription = relationship("Prescription", back_populates="streak")

    def to_dict(self):
        """Convert to dictionary"""
        return {
            "id": self.id,
            "prescription_id": self.prescription_id,
            "medicine_name": self.medicine_name,
            "date": self.date.isoformat() if self.date else None,
            "morning": self.morning,
            "afternoon": self.afternoon,
            "evening": self.evening,
            "night": self.night,
        }
