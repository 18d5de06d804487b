"""
Imaging Result Model
"""
from sqlalchemy import Column, Integer, String, Text, Date, DateTime
from datetime import datetime

from healthtrack.database import Base


class ImagingResultRow(Base):
    __tablename__ = "imaging_results"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    result_id = Column(String(36), nullable=False, index=True)
    patient_number = Column(String(32), nullable=False, index=True)

    date = Column(Date, nullable=False, index=True)
    test = Column(String(255))  # short title
    comments = Column(Text)  # observations
    doctor = Column(String(255))
    public_url = Column(String(1024))

    created_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self):
        """Convert to dictionary"""
        return {
            "id": self.id,
            "result_id": self.result_id,
            "patient_number": self.patient_number,
            "date": self.date.isoformat() if self.date else None,
            "test": self.test,
            "comments": self.comments,
            "doctor": self.doctor,
            "public_url": self.public_url,
        }
