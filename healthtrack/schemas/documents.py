"""
Document Schemas - intake and normalized page images
"""
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field


class DocumentKind(str, Enum):
    """Closed taxonomy the classifier chooses from"""
    IMAGING_RESULT = "imaging_result"
    HEALTH_RECORD = "health_record"
    PRESCRIPTION = "prescription"


class MediaAsset(BaseModel):
    """Uploaded or downloaded file, already persisted to object storage"""
    data: bytes
    mime_type: str
    public_url: Optional[str] = None
    filename: Optional[str] = None


class PageImage(BaseModel):
    """One base64 raster page, ordinal is 1-based"""
    ordinal: int = Field(..., ge=1)
    data: str
    mime_type: str


class NormalizedDocument(BaseModel):
    pages: List[PageImage]
    mime_type: str

    @property
    def images(self) -> List[str]:
        return [page.data for page in self.pages]

    @property
    def first_page(self) -> PageImage:
        return self.pages[0]
