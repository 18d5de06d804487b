"""
Shared route dependencies

Service providers return the module singletons; tests swap them through
``app.dependency_overrides``.
"""
from fastapi import Request

from healthtrack.auth import get_patient_number
from healthtrack.database import get_db
from healthtrack.services.adherence_service import AdherenceService, adherence_service
from healthtrack.services.classifier import DocumentClassifier, document_classifier
from healthtrack.services.message_cache import RecentMessageCache, message_cache
from healthtrack.services.pipeline import DocumentPipeline, document_pipeline
from healthtrack.services.records_service import RecordsService, records_service
from healthtrack.services.reminder_service import ReminderService, reminder_service

__all__ = [
    "get_db",
    "get_current_patient",
    "get_pipeline",
    "get_classifier",
    "get_adherence_service",
    "get_reminder_service",
    "get_records_service",
    "get_message_cache",
]


def get_current_patient(request: Request) -> str:
    return get_patient_number(request)


def get_pipeline() -> DocumentPipeline:
    return document_pipeline


def get_classifier() -> DocumentClassifier:
    return document_classifier


def get_adherence_service() -> AdherenceService:
    return adherence_service


def get_reminder_service() -> ReminderService:
    return reminder_service


def get_records_service() -> RecordsService:
    return records_service


def get_message_cache() -> RecentMessageCache:
    return message_cache
