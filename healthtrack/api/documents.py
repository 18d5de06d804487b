"""
Document API Routes - uploads, classification and text reports
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session

from healthtrack.api.dependencies import get_classifier, get_current_patient, get_db, get_pipeline
from healthtrack.schemas.documents import DocumentKind
from healthtrack.schemas.requests import ClassifyRequest, TextReportRequest
from healthtrack.services.classifier import DocumentClassifier
from healthtrack.services.pipeline import DocumentPipeline

logger = logging.getLogger(__name__)

router = APIRouter()


async def _upload(
    pipeline: DocumentPipeline,
    db: Session,
    patient_number: str,
    file: UploadFile,
    kind: Optional[DocumentKind] = None,
    doctor_name: Optional[str] = None
):
    data = await file.read()
    logger.info(f"Processing upload {file.filename} ({len(data)} bytes) for {patient_number}")
    outcome = await pipeline.process_upload(
        db,
        patient_number,
        data,
        file.filename or "upload",
        file.content_type,
        kind=kind,
        doctor_name=doctor_name
    )
    return {
        "success": True,
        "message": "Document processed successfully",
        **outcome
    }


@router.post("/documents/upload")
async def upload_document(
    file: UploadFile = File(...),
    patient_number: str = Depends(get_current_patient),
    pipeline: DocumentPipeline = Depends(get_pipeline),
    db: Session = Depends(get_db)
):
    """
    Upload any medical document; its kind is decided by the classifier
    """
    return await _upload(pipeline, db, patient_number, file)


@router.post("/documents/classify")
async def classify_document(
    request: ClassifyRequest,
    patient_number: str = Depends(get_current_patient),
    classifier: DocumentClassifier = Depends(get_classifier)
):
    """
    Classify one base64 page without storing anything
    """
    kind = await classifier.classify_image(request.image, request.mimeType)
    return {
        "success": True,
        "type": kind.value,
        "mimeType": request.mimeType
    }


@router.post("/health-records/upload")
async def upload_health_record(
    file: UploadFile = File(...),
    patient_number: str = Depends(get_current_patient),
    pipeline: DocumentPipeline = Depends(get_pipeline),
    db: Session = Depends(get_db)
):
    return await _upload(pipeline, db, patient_number, file, kind=DocumentKind.HEALTH_RECORD)


@router.post("/health-records/text")
async def upload_health_record_text(
    request: TextReportRequest,
    patient_number: str = Depends(get_current_patient),
    pipeline: DocumentPipeline = Depends(get_pipeline),
    db: Session = Depends(get_db)
):
    """
    Extract and store test results from plain-text reports
    """
    outcome = await pipeline.process_text_report(db, patient_number, request.texts)
    return {
        "success": True,
        "message": "Text reports processed successfully",
        **outcome
    }


@router.post("/imaging-results/upload")
async def upload_imaging_result(
    file: UploadFile = File(...),
    doctorName: Optional[str] = Form(None),
    patient_number: str = Depends(get_current_patient),
    pipeline: DocumentPipeline = Depends(get_pipeline),
    db: Session = Depends(get_db)
):
    """
    Upload an imaging report; ``doctorName`` overrides the extracted doctor
    """
    return await _upload(
        pipeline, db, patient_number, file,
        kind=DocumentKind.IMAGING_RESULT,
        doctor_name=(doctorName or "").strip() or None
    )


@router.post("/prescriptions/upload")
async def upload_prescription(
    file: UploadFile = File(...),
    patient_number: str = Depends(get_current_patient),
    pipeline: DocumentPipeline = Depends(get_pipeline),
    db: Session = Depends(get_db)
):
    return await _upload(pipeline, db, patient_number, file, kind=DocumentKind.PRESCRIPTION)
