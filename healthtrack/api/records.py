"""
Records API Routes - health trends and imaging gallery
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from healthtrack.api.dependencies import get_current_patient, get_db, get_records_service
from healthtrack.services.records_service import RecordsService


router = APIRouter()


@router.get("/health-records")
async def get_health_records(
    patient_number: str = Depends(get_current_patient),
    records: RecordsService = Depends(get_records_service),
    db: Session = Depends(get_db)
):
    """
    Test results grouped by component, newest first
    """
    return {
        "success": True,
        "data": records.health_trends(db, patient_number)
    }


@router.get("/imaging-results")
async def get_imaging_results(
    patient_number: str = Depends(get_current_patient),
    records: RecordsService = Depends(get_records_service),
    db: Session = Depends(get_db)
):
    return {
        "success": True,
        "data": records.imaging_results(db, patient_number)
    }


@router.get("/imaging-results/older")
async def get_older_imaging_results(
    patient_number: str = Depends(get_current_patient),
    records: RecordsService = Depends(get_records_service),
    db: Session = Depends(get_db)
):
    """
    Imaging results dated more than a year ago
    """
    return {
        "success": True,
        "data": records.older_imaging_results(db, patient_number)
    }
