"""
Records Service - read views over stored results
"""
import logging
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from healthtrack.config import TIMINGS
from healthtrack.models import ImagingResultRow, MedicationStreak, Prescription, TestResultRow
from healthtrack.utils.dates import local_today

logger = logging.getLogger(__name__)


def _is_true(value: Any) -> bool:
    return value is True or value == "TRUE"


def _format_number(value: Optional[float]) -> Optional[str]:
    if value is None:
        return None
    return f"{value:g}"


def normal_range(row: TestResultRow) -> Optional[str]:
    """Free text when present, otherwise ``min-max``"""
    if row.normal_range_text:
        return row.normal_range_text
    if row.normal_range_min is None and row.normal_range_max is None:
        return None
    return f"{_format_number(row.normal_range_min) or ''}-{_format_number(row.normal_range_max) or ''}"


def one_year_before(today: date) -> date:
    try:
        return today.replace(year=today.year - 1)
    except ValueError:
        # 29 February
        return today.replace(year=today.year - 1, day=28)


class RecordsService:
    """Reshapes stored rows for dashboards"""

    def health_trends(self, db: Session, patient_number: str) -> List[Dict[str, Any]]:
        """
        Group test results by normalized component name

        Each group carries its history newest first and the latest value.
        Groups keep the display name and unit of their most recent row.
        """
        rows = db.query(TestResultRow).filter(
            TestResultRow.patient_number == patient_number
        ).order_by(TestResultRow.date.desc(), TestResultRow.id.desc()).all()

        groups: Dict[str, Dict[str, Any]] = {}
        for row in rows:
            key = row.component.lower().strip()
            value = row.number_value if row.number_value is not None else (row.text_value or "")
            entry = {"date": row.date.isoformat(), "value": value}

            group = groups.get(key)
            if group is None:
                groups[key] = {
                    "id": row.id,
                    "name": row.component,
                    "unit": row.unit,
                    "latestValue": value,
                    "latestDate": entry["date"],
                    "normalRange": normal_range(row),
                    "history": [entry],
                }
            else:
                group["history"].append(entry)

        return list(groups.values())

    def imaging_results(self, db: Session, patient_number: str) -> List[Dict[str, Any]]:
        rows = db.query(ImagingResultRow).filter(
            ImagingResultRow.patient_number == patient_number
        ).order_by(ImagingResultRow.date.desc(), ImagingResultRow.id.desc()).all()
        return [row.to_dict() for row in rows]

    def older_imaging_results(
        self,
        db: Session,
        patient_number: str,
        today: Optional[date] = None
    ) -> Dict[str, Any]:
        """Imaging results dated more than a year ago, with counts"""
        cutoff = one_year_before(today or local_today())
        query = db.query(ImagingResultRow).filter(ImagingResultRow.patient_number == patient_number)
        total = query.count()
        older = query.filter(ImagingResultRow.date < cutoff).order_by(
            ImagingResultRow.date.desc(), ImagingResultRow.id.desc()
        ).all()
        return {
            "results": [row.to_dict() for row in older],
            "count": len(older),
            "totalCount": total,
            "cutoffDate": cutoff.isoformat(),
        }

    def current_medications(
        self,
        db: Session,
        patient_number: str,
        today: Optional[date] = None
    ) -> List[Dict[str, Any]]:
        """Current prescriptions, each with a per-date map of all four slots"""
        today = today or local_today()
        prescriptions = db.query(Prescription).filter(
            Prescription.patient_number == patient_number,
            Prescription.start_date <= today,
            Prescription.end_date >= today
        ).order_by(Prescription.start_date.desc(), Prescription.id).all()

        medications = []
        for prescription in prescriptions:
            data = prescription.to_dict()
            data["streak"] = {
                entry.date.isoformat(): {timing: _is_true(getattr(entry, timing)) for timing in TIMINGS}
                for entry in prescription.streak
            }
            medications.append(data)
        return medications

    def past_medications(
        self,
        db: Session,
        patient_number: str,
        today: Optional[date] = None
    ) -> List[Dict[str, Any]]:
        today = today or local_today()
        prescriptions = db.query(Prescription).filter(
            Prescription.patient_number == patient_number,
            Prescription.end_date < today
        ).order_by(Prescription.end_date.desc(), Prescription.id).all()
        return [prescription.to_dict() for prescription in prescriptions]

    def streak_map(self, db: Session, patient_number: str) -> Dict[str, Dict[str, Dict[str, bool]]]:
        """``{prescription_id: {date: {timing: True}}}`` holding taken slots only"""
        entries = db.query(MedicationStreak).join(Prescription).filter(
            Prescription.patient_number == patient_number
        ).order_by(MedicationStreak.prescription_id, MedicationStreak.date).all()

        streaks: Dict[str, Dict[str, Dict[str, bool]]] = {}
        for entry in entries:
            taken = {timing: True for timing in TIMINGS if _is_true(getattr(entry, timing))}
            if not taken:
                continue
            streaks.setdefault(str(entry.prescription_id), {})[entry.date.isoformat()] = taken
        return streaks


# Singleton instance
records_service = RecordsService()
