"""
Document Classifier - picks one DocumentKind per document
"""
import logging
from typing import Optional

from healthtrack.schemas.documents import DocumentKind
from healthtrack.services.claude_service import ClaudeService, claude_service, image_blocks, text_block
from healthtrack.utils.exceptions import ClassificationFailed

logger = logging.getLogger(__name__)

CLASSIFY_TOOL = {
    "name": "classify_document",
    "description": "Classify a medical document into exactly one document type.",
    "input_schema": {
        "type": "object",
        "properties": {
            "document_type": {
                "type": "string",
                "enum": [kind.value for kind in DocumentKind],
                "description": (
                    "imaging_result for radiology or scan reports, health_record for lab "
                    "test reports, prescription for doctor prescriptions"
                )
            }
        },
        "required": ["document_type"]
    }
}

IMAGE_PROMPT = (
    "Analyze this medical document and classify it as one of the following: "
    "imaging result, health record, or prescription."
)

TEXT_PROMPT = (
    "Classify the following medical document text as one of the following: "
    "imaging result, health record, or prescription.\n\n{text}"
)


class DocumentClassifier:
    """Classifies the first page (or free text) of a document"""

    def __init__(self, claude: Optional[ClaudeService] = None):
        self.claude = claude or claude_service

    async def classify_image(self, page_b64: str, mime_type: str) -> DocumentKind:
        content = image_blocks([page_b64], mime_type) + [text_block(IMAGE_PROMPT)]
        return await self._classify(content)

    async def classify_text(self, text: str) -> DocumentKind:
        return await self._classify([text_block(TEXT_PROMPT.format(text=text))])

    async def _classify(self, content) -> DocumentKind:
        # UpstreamServiceError from the call propagates unchanged
        inputs = await self.claude.call_tool(content, CLASSIFY_TOOL, max_tokens=1000)

        for item in inputs:
            value = item.get("document_type")
            try:
                kind = DocumentKind(value)
            except ValueError:
                continue
            logger.info(f"Document classified as {kind.value}")
            return kind

        logger.error(f"No structured classification in response: {inputs}")
        raise ClassificationFailed("The extraction service did not return a document type")


# Singleton instance
document_classifier = DocumentClassifier()
