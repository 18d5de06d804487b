"""
Extraction Pipeline - kind-specific structured extraction over page batches
"""
import logging
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

import pydantic

from healthtrack.config import settings
from healthtrack.schemas.documents import DocumentKind
from healthtrack.schemas.records import (
    IMAGING_DATE_NOT_VISIBLE,
    ExtractedRecord,
    ImagingResult,
    PrescriptionResult,
    TestResult,
)
from healthtrack.services.claude_service import ClaudeService, claude_service, image_blocks, text_block
from healthtrack.utils.dates import local_today
from healthtrack.utils.exceptions import ExtractionFailed, HealthTrackError

logger = logging.getLogger(__name__)


# ==================== TOOL SCHEMAS ====================

HEALTH_RECORD_TOOL = {
    "name": "medical_report_analysis",
    "description": "Analyze medical test report and extract key components.",
    "input_schema": {
        "type": "object",
        "properties": {
            "components": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "component": {
                            "type": "string",
                            "description": (
                                "Name of the test component. If it is part of the urine analysis, "
                                "preface the name of the component with 'Urine Test'"
                            )
                        },
                        "value": {
                            "oneOf": [{"type": "number"}, {"type": "string"}],
                            "description": "Measured value of the component"
                        },
                        "unit": {"type": "string", "description": "Unit of measurement"},
                        "normal_range_min": {"type": "number", "description": "Minimum of normal range"},
                        "normal_range_max": {"type": "number", "description": "Maximum of normal range"},
                        "normal_range_text": {"type": "string", "description": "Textual description of normal range"}
                    },
                    "required": ["component"]
                },
                "description": "List of test components and their details"
            },
            "date": {"type": "string", "description": "Date of the test, in YYYY-MM-DD format"}
        },
        "required": ["components", "date"]
    }
}

IMAGING_TOOL = {
    "name": "imaging_analysis",
    "description": "Analyze imaging test results and extract key components.",
    "input_schema": {
        "type": "object",
        "properties": {
            "test_title": {"type": "string", "description": "A short title for the imaging test"},
            "test_date": {
                "type": "string",
                "description": (
                    "Date of the imaging test, in YYYY-MM-DD format. "
                    f"If not visible, use '{IMAGING_DATE_NOT_VISIBLE}'."
                )
            },
            "observations": {
                "type": "string",
                "description": "Any notes or observations the doctor has added. If none, say no observations"
            },
            "doctor_name": {"type": "string", "description": "Name of the doctor"}
        },
        "required": ["test_title", "test_date", "observations", "doctor_name"]
    }
}

PRESCRIPTION_TOOL = {
    "name": "prescription_analysis",
    "description": "Analyze prescription image and extract key components.",
    "input_schema": {
        "type": "object",
        "properties": {
            "prescription_date": {"type": "string", "description": "Date of the prescription, in YYYY-MM-DD format"},
            "doctor": {"type": "string", "description": "Name of the prescribing doctor"},
            "medicines": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "medicine": {"type": "string", "description": "Name of the medicine"},
                        "before_after_food": {
                            "type": "string",
                            "description": "Whether to take before or after food. The default is after food"
                        },
                        "start_date": {"type": "string", "description": "Start date for the medicine, in YYYY-MM-DD format"},
                        "end_date": {"type": "string", "description": "End date for the medicine, in YYYY-MM-DD format"},
                        "notes": {"type": "string", "description": "Any additional notes or instructions for this medicine"},
                        "medicine_times": {
                            "type": "object",
                            "properties": {
                                "morning": {"type": "string", "description": "Whether to take the medicine in the morning"},
                                "afternoon": {"type": "string", "description": "Whether to take the medicine in the afternoon"},
                                "evening": {"type": "string", "description": "Whether to take the medicine in the evening"},
                                "night": {"type": "string", "description": "Whether to take the medicine at night"}
                            },
                            "description": (
                                "Times to take the medicine. Look at the 1-0-0-1 style marking on the "
                                "prescription. Set true for each time the medicine should be taken."
                            )
                        }
                    },
                    "required": ["medicine", "before_after_food", "medicine_times"]
                },
                "description": "List of prescribed medicines and their details"
            }
        },
        "required": ["prescription_date", "doctor", "medicines"]
    }
}

TOOLS = {
    DocumentKind.HEALTH_RECORD: HEALTH_RECORD_TOOL,
    DocumentKind.IMAGING_RESULT: IMAGING_TOOL,
    DocumentKind.PRESCRIPTION: PRESCRIPTION_TOOL,
}

PROMPTS = {
    DocumentKind.HEALTH_RECORD: (
        "Analyze these {count} medical test report pages and extract all test components with "
        "their names, measurements, units, and normal ranges. Also provide the test date for "
        "each report. Prefix every urine analysis component with 'Urine Test'. "
        "Provide separate analysis for each report."
    ),
    DocumentKind.IMAGING_RESULT: (
        "Analyze this imaging test result and extract a short title for the test, the date of "
        f"the test, key observations or findings and the doctor's name. If the date is not "
        f"visible, use '{IMAGING_DATE_NOT_VISIBLE}' for the test_date field. Provide separate "
        "analysis for each image if multiple images are present."
    ),
    DocumentKind.PRESCRIPTION: (
        "Analyze this prescription and extract the prescription date, the doctor's name, and "
        "for each medicine: name, whether to take before or after food, start date, end date, "
        "any additional notes, and the times to take the medicine (morning, afternoon, evening, "
        "night) based on the 1-0-0-1 style marking. Set each time to true or false."
    ),
}

TEXT_PROMPT = (
    "Analyze these {count} medical test reports given as text and extract all test components "
    "with their names, measurements, units, and normal ranges, and the test date. Prefix every "
    "urine analysis component with 'Urine Test'.\n\n{texts}"
)

PARSERS = {
    DocumentKind.HEALTH_RECORD: TestResult.from_tool_input,
    DocumentKind.IMAGING_RESULT: ImagingResult.from_tool_input,
    DocumentKind.PRESCRIPTION: PrescriptionResult.from_tool_input,
}


def batched(items: Sequence[Any], size: int) -> List[List[Any]]:
    """Split ``items`` into consecutive chunks of at most ``size``, order preserved"""
    if size < 1:
        raise ValueError("batch size must be positive")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


class ExtractionPipeline:
    """Runs one forced-tool extraction call per batch, strictly in sequence"""

    def __init__(self, claude: Optional[ClaudeService] = None, batch_size: Optional[int] = None):
        self.claude = claude or claude_service
        self.batch_size = batch_size or settings.EXTRACTION_BATCH_SIZE

    async def extract(
        self,
        pages: Sequence[str],
        mime_type: str,
        kind: DocumentKind,
        doctor_name: Optional[str] = None,
        today: Optional[date] = None
    ) -> List[ExtractedRecord]:
        """
        Extract kind-specific records from base64 pages

        Args:
            pages: Base64 page images in document order
            mime_type: MIME type shared by all pages
            kind: Document kind deciding the tool schema
            doctor_name: Optional override for imaging doctor names
            today: Date used in place of an invisible imaging date

        Returns:
            Records from every batch, concatenated in submission order
        """
        tool = TOOLS[kind]
        batches = batched(pages, self.batch_size)
        logger.info(f"Extracting {kind.value} from {len(pages)} page(s) in {len(batches)} batch(es)")

        raw_records: List[Dict[str, Any]] = []
        for index, batch in enumerate(batches, start=1):
            content = image_blocks(batch, mime_type) + [
                text_block(PROMPTS[kind].format(count=len(batch)))
            ]
            raw_records.extend(await self._run_batch(content, tool, index))

        records = [self._parse(kind, raw) for raw in raw_records]

        if kind == DocumentKind.IMAGING_RESULT:
            records = self._finalize_imaging(records, doctor_name, today or local_today())

        return records

    async def extract_texts(self, texts: Sequence[str], today: Optional[date] = None) -> List[TestResult]:
        """Text-report variant of health-record extraction; a missing date becomes today"""
        batches = batched(texts, self.batch_size)
        today_iso = (today or local_today()).isoformat()

        results: List[TestResult] = []
        for index, batch in enumerate(batches, start=1):
            joined = "\n\n---\n\n".join(batch)
            content = [text_block(TEXT_PROMPT.format(count=len(batch), texts=joined))]
            for raw in await self._run_batch(content, HEALTH_RECORD_TOOL, index):
                result = self._parse(DocumentKind.HEALTH_RECORD, raw)
                if not result.date:
                    result.date = today_iso
                results.append(result)
        return results

    def _parse(self, kind: DocumentKind, raw: Dict[str, Any]) -> ExtractedRecord:
        try:
            return PARSERS[kind](raw)
        except pydantic.ValidationError as e:
            logger.error(f"{kind.value} extraction does not match its schema: {e}")
            raise ExtractionFailed(f"Extraction output does not match the {kind.value} schema") from e

    async def _run_batch(self, content, tool: Dict[str, Any], index: int) -> List[Dict[str, Any]]:
        try:
            inputs = await self.claude.call_tool(content, tool)
        except HealthTrackError as e:
            logger.error(f"Batch {index} of {tool['name']} failed: {e.details}")
            raise ExtractionFailed(f"Batch {index} failed: {e.details}") from e

        if not inputs:
            logger.error(f"Batch {index} of {tool['name']} returned no structured output")
            raise ExtractionFailed("No analysis results found in the API response")
        return inputs

    def _finalize_imaging(
        self,
        records: List[ImagingResult],
        doctor_name: Optional[str],
        today: date
    ) -> List[ImagingResult]:
        for record in records:
            if record.test_date == IMAGING_DATE_NOT_VISIBLE:
                record.test_date = today.isoformat()
            if doctor_name:
                record.doctor_name = doctor_name
        return records


# Singleton instance
extraction_pipeline = ExtractionPipeline()
