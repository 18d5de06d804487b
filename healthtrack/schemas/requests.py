"""
API Request Schemas
"""
from typing import List
from pydantic import BaseModel, Field, field_validator

from healthtrack.config import TIMINGS


class ClassifyRequest(BaseModel):
    """Standalone classification of one base64 page"""
    image: str = Field(..., min_length=1)
    mimeType: str = Field(..., min_length=1)


class TextReportRequest(BaseModel):
    """Health-report text variant"""
    texts: List[str] = Field(..., min_length=1)

    class Config:
        json_schema_extra = {
            "example": {
                "texts": ["Hemoglobin 13.5 g/dL (13-17), Urine colour: pale yellow"]
            }
        }


class AdherenceUpdate(BaseModel):
    """Direct adherence update from the medication calendar"""
    prescriptionId: int
    date: str = Field(..., description="Format: YYYY-MM-DD")
    timing: str = Field(..., description="morning, afternoon, evening, night")
    status: str = Field(..., description="'taken' marks the dose taken, anything else marks it missed")

    @field_validator("timing")
    @classmethod
    def validate_timing(cls, v: str) -> str:
        timing = v.strip().lower()
        if timing not in TIMINGS:
            raise ValueError(f'Timing must be one of: {", ".join(TIMINGS)}')
        return timing

    @property
    def taken(self) -> bool:
        return self.status.strip().lower() == "taken"

    class Config:
        json_schema_extra = {
            "example": {
                "prescriptionId": 42,
                "date": "2024-06-01",
                "timing": "morning",
                "status": "taken"
            }
        }
