"""
Document Pipeline - intake, normalize, classify, extract, store
"""
import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from healthtrack.config import settings
from healthtrack.schemas.documents import DocumentKind
from healthtrack.services.classifier import DocumentClassifier, document_classifier
from healthtrack.services.extraction import ExtractionPipeline, extraction_pipeline
from healthtrack.services.normalizer import FormatNormalizer, format_normalizer
from healthtrack.services.result_store import ResultStore, result_store
from healthtrack.services.storage_service import StorageService, storage_service
from healthtrack.services.whatsapp_service import WhatsAppService, filename_with_extension, whatsapp_service
from healthtrack.utils.exceptions import (
    ClassificationFailed,
    ConversionFailed,
    ExtractionFailed,
    HealthTrackError,
    MessagingTimeout,
    StorageFailed,
    UpstreamServiceError,
    ValidationError,
)

logger = logging.getLogger(__name__)

GENERIC_FAILURE_REPLY = "Sorry, something went wrong while processing your document."

KIND_LABELS = {
    DocumentKind.HEALTH_RECORD: "health report",
    DocumentKind.IMAGING_RESULT: "imaging result",
    DocumentKind.PRESCRIPTION: "prescription",
}


def describe_failure(error: HealthTrackError) -> str:
    """Chat-friendly sentence for a pipeline failure"""
    if isinstance(error, ValidationError):
        return f"Sorry, I couldn't accept that file. {error.details}"
    if isinstance(error, ConversionFailed):
        return "Sorry, I couldn't read the pages of that PDF. Please try sending a clearer copy or a photo."
    if isinstance(error, ClassificationFailed):
        return (
            "Sorry, I couldn't tell what kind of medical document that is. "
            "Please send a health report, imaging result or prescription."
        )
    if isinstance(error, ExtractionFailed):
        return "Sorry, I couldn't read the details in that document. Please try a clearer image."
    if isinstance(error, StorageFailed):
        return "Sorry, I read your document but couldn't save it right now. Please try again later."
    if isinstance(error, MessagingTimeout):
        return "Sorry, that took too long. Please send the document again."
    if isinstance(error, UpstreamServiceError):
        return "Sorry, one of our services is unavailable right now. Please try again later."
    return GENERIC_FAILURE_REPLY


class DocumentPipeline:
    """Runs one document through the full pipeline, strictly in sequence"""

    def __init__(
        self,
        storage: Optional[StorageService] = None,
        normalizer: Optional[FormatNormalizer] = None,
        classifier: Optional[DocumentClassifier] = None,
        extractor: Optional[ExtractionPipeline] = None,
        store: Optional[ResultStore] = None,
        messaging: Optional[WhatsAppService] = None
    ):
        self.storage = storage or storage_service
        self.normalizer = normalizer or format_normalizer
        self.classifier = classifier or document_classifier
        self.extractor = extractor or extraction_pipeline
        self.store = store or result_store
        self.messaging = messaging or whatsapp_service

    def validate_file(self, data: bytes, content_type: Optional[str]):
        if not data:
            raise ValidationError("No file provided")
        if len(data) > settings.MAX_UPLOAD_BYTES:
            max_mb = settings.MAX_UPLOAD_BYTES // (1024 * 1024)
            raise ValidationError(f"File too large. Maximum size is {max_mb}MB.")
        if content_type not in settings.ALLOWED_UPLOAD_TYPES:
            raise ValidationError(
                f"Invalid file type '{content_type}'. Please upload JPG, PNG, WEBP, GIF, or PDF only."
            )

    async def process_upload(
        self,
        db: Session,
        patient_number: str,
        data: bytes,
        filename: str,
        content_type: str,
        kind: Optional[DocumentKind] = None,
        doctor_name: Optional[str] = None,
        use_public_url: bool = False
    ) -> Dict[str, Any]:
        """
        Process one uploaded document end to end

        Args:
            db: Database session
            patient_number: Owner of the stored records
            data: Raw file bytes
            filename: Original filename
            content_type: Declared MIME type
            kind: Skip classification when the caller already knows the kind
            doctor_name: Overrides extracted imaging doctor names
            use_public_url: Rasterize PDFs from their stored URL instead of bytes

        Returns:
            Dict with extracted results, stored rows, publicUrl and documentType
        """
        try:
            self.validate_file(data, content_type)
            asset = await self.storage.intake(data, filename, content_type)
            document = await self.normalizer.normalize(asset, use_public_url=use_public_url)

            if kind is None:
                first = document.first_page
                kind = await self.classifier.classify_image(first.data, first.mime_type)

            records = await self.extractor.extract(
                document.images,
                document.mime_type,
                kind,
                doctor_name=doctor_name
            )
            stored = self.store.store(db, kind, records, patient_number, asset.public_url)
        except HealthTrackError as e:
            logger.error(f"Upload of {filename} failed ({e.error}): {e.details}")
            raise

        logger.info(f"Processed {filename} as {kind.value}: {len(records)} record(s), {len(stored)} row(s)")
        return {
            "results": [record.model_dump() for record in records],
            "stored": stored,
            "publicUrl": asset.public_url,
            "documentType": kind.value,
        }

    async def process_text_report(
        self,
        db: Session,
        patient_number: str,
        texts: Sequence[str]
    ) -> Dict[str, Any]:
        texts = [text for text in texts if text and text.strip()]
        if not texts:
            raise ValidationError("At least one text report is required")

        try:
            results = await self.extractor.extract_texts(texts)
            stored = self.store.store_test_results(db, results, patient_number, None)
        except HealthTrackError as e:
            logger.error(f"Text report processing failed ({e.error}): {e.details}")
            raise

        return {
            "results": [result.model_dump() for result in results],
            "stored": stored,
        }

    async def process_media_message(
        self,
        db: Session,
        sender: str,
        media_id: str,
        mime_type: Optional[str] = None,
        filename: Optional[str] = None
    ) -> str:
        """
        Download an inbound attachment, process it, and reply to the sender

        Failures are never raised to the webhook; they become a reply.
        Returns the reply text.
        """
        try:
            if not media_id:
                raise ValidationError("The message has no attachment")
            data, downloaded_type = await self.messaging.download_media(media_id)
            content_type = mime_type or downloaded_type
            name = filename_with_extension(filename, content_type, fallback=f"whatsapp_{media_id}")
            outcome = await self.process_upload(
                db,
                sender,
                data,
                name,
                content_type,
                use_public_url=True
            )
            reply = self.describe_success(outcome)
        except HealthTrackError as e:
            logger.error(f"Media message {media_id} from {sender} failed: {e.details}")
            reply = describe_failure(e)
        except Exception as e:
            logger.error(f"Unexpected error processing media {media_id} from {sender}: {e}", exc_info=True)
            db.rollback()
            reply = GENERIC_FAILURE_REPLY

        await self.messaging.send_text(sender, reply)
        return reply

    def describe_success(self, outcome: Dict[str, Any]) -> str:
        kind = DocumentKind(outcome["documentType"])
        stored: List[Dict[str, Any]] = outcome["stored"]
        label = KIND_LABELS[kind]
        if kind == DocumentKind.HEALTH_RECORD:
            return f"Your {label} has been saved with {len(stored)} test result(s)."
        if kind == DocumentKind.PRESCRIPTION:
            names = ", ".join(row["medicine"] for row in stored)
            return f"Your {label} has been saved with {len(stored)} medicine(s): {names}."
        return f"Your {label} has been saved."


# Singleton instance
document_pipeline = DocumentPipeline()
