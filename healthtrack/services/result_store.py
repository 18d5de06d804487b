"""
Result Store - sole writer of extracted records
"""
import logging
import uuid
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from healthtrack.models import ImagingResultRow, Prescription, TestResultRow
from healthtrack.schemas.documents import DocumentKind
from healthtrack.schemas.records import (
    ImagingResult,
    NumericMeasurement,
    PrescriptionResult,
    TestResult,
    TextMeasurement,
)
from healthtrack.utils.dates import local_today, parse_date
from healthtrack.utils.exceptions import ExtractionFailed, StorageFailed, ValidationError

logger = logging.getLogger(__name__)


def new_id() -> str:
    return str(uuid.uuid4())


def extracted_date(value: Optional[str], field: str) -> Optional[date]:
    """Dates here come from the extraction service, so a bad one is an extraction failure"""
    try:
        return parse_date(value, field)
    except ValidationError as e:
        raise ExtractionFailed(e.details) from e


class ResultStore:
    """
    Persists one parsed result set per call

    Every call is a single transaction: either all rows land or none do.
    Calls are not deduplicated, storing the same result twice creates
    duplicate rows.
    """

    def __init__(self, id_factory: Callable[[], str] = new_id):
        self.id_factory = id_factory

    def store(
        self,
        db: Session,
        kind: DocumentKind,
        records: Sequence[Any],
        patient_number: str,
        public_url: Optional[str]
    ) -> List[Dict[str, Any]]:
        if kind == DocumentKind.HEALTH_RECORD:
            return self.store_test_results(db, records, patient_number, public_url)
        if kind == DocumentKind.IMAGING_RESULT:
            return self.store_imaging_results(db, records, patient_number, public_url)
        return self.store_prescription(db, records, patient_number, public_url)

    def store_test_results(
        self,
        db: Session,
        results: Sequence[TestResult],
        patient_number: str,
        public_url: Optional[str]
    ) -> List[Dict[str, Any]]:
        """One row per component; components of one result share a test id"""
        rows = []
        for result in results:
            test_id = self.id_factory()
            test_date = extracted_date(result.date, "test date") or local_today()
            for component in result.components:
                row = TestResultRow(
                    patient_number=patient_number,
                    test_id=test_id,
                    component=component.component,
                    unit=component.unit,
                    date=test_date,
                    public_url=public_url
                )
                measurement = component.measurement
                if isinstance(measurement, NumericMeasurement):
                    row.number_value = measurement.value
                    row.normal_range_min = measurement.normal_range_min
                    row.normal_range_max = measurement.normal_range_max
                elif isinstance(measurement, TextMeasurement):
                    row.text_value = measurement.value
                    row.normal_range_text = measurement.normal_range_text
                rows.append(row)

        return self._commit(db, rows, "test result")

    def store_imaging_results(
        self,
        db: Session,
        results: Sequence[ImagingResult],
        patient_number: str,
        public_url: Optional[str]
    ) -> List[Dict[str, Any]]:
        rows = [
            ImagingResultRow(
                result_id=self.id_factory(),
                patient_number=patient_number,
                date=extracted_date(result.test_date, "imaging date") or local_today(),
                test=result.test_title,
                comments=result.observations,
                doctor=result.doctor_name,
                public_url=public_url
            )
            for result in results
        ]
        return self._commit(db, rows, "imaging result")

    def store_prescription(
        self,
        db: Session,
        results: Sequence[PrescriptionResult],
        patient_number: str,
        public_url: Optional[str]
    ) -> List[Dict[str, Any]]:
        """
        Store the first prescription record only, one row per medicine,
        all sharing a freshly generated prescription group id.
        """
        if not results:
            raise ExtractionFailed("No prescription data to store")
        if len(results) > 1:
            logger.warning(f"Extraction returned {len(results)} prescriptions, storing the first only")

        prescription = results[0]
        group_id = self.id_factory()
        prescription_date = extracted_date(prescription.prescription_date, "prescription date")

        rows = []
        for medicine in prescription.medicines:
            times = medicine.medicine_times
            rows.append(Prescription(
                patient_number=patient_number,
                prescription_uuid=group_id,
                prescription_date=prescription_date,
                doctor=prescription.doctor,
                public_url=public_url,
                medicine=medicine.medicine,
                before_after_food=medicine.before_after_food,
                start_date=extracted_date(medicine.start_date, "start date"),
                end_date=extracted_date(medicine.end_date, "end date"),
                notes=medicine.notes,
                morning=times.morning,
                afternoon=times.afternoon,
                evening=times.evening,
                night=times.night
            ))
        return self._commit(db, rows, "prescription")

    def _commit(self, db: Session, rows: List[Any], label: str) -> List[Dict[str, Any]]:
        try:
            db.add_all(rows)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to store {len(rows)} {label} row(s): {e}", exc_info=True)
            raise StorageFailed(f"Failed to store {label}: {e.__class__.__name__}") from e

        for row in rows:
            db.refresh(row)
        logger.info(f"Stored {len(rows)} {label} row(s)")
        return [row.to_dict() for row in rows]


# Singleton instance
result_store = ResultStore()
