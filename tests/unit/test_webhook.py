"""
Tests for the WhatsApp webhook routes
"""
from datetime import date

import pytest

from healthtrack import models
from healthtrack.api.whatsapp import TEXT_REPLY, first_message
from healthtrack.config import settings
from healthtrack.services.adherence_service import USE_BUTTONS_MESSAGE, build_callback_id
from healthtrack.services.pipeline import GENERIC_FAILURE_REPLY, describe_failure
from healthtrack.utils.exceptions import ExtractionFailed, MessagingTimeout

SENDER = "919811111111"
WEBHOOK = "/api/whatsapp/webhook"


def envelope(message):
    return {
        "object": "whatsapp_business_account",
        "entry": [{
            "changes": [{
                "value": {
                    "messaging_product": "whatsapp",
                    "contacts": [{"wa_id": SENDER}],
                    "messages": [message]
                }
            }]
        }]
    }


def image_message(message_id="wamid.img", media_id="media-1"):
    return {
        "id": message_id,
        "from": SENDER,
        "type": "image",
        "image": {"id": media_id, "mime_type": "image/jpeg"}
    }


def button_message(button_id, message_id="wamid.btn"):
    return {
        "id": message_id,
        "from": SENDER,
        "type": "interactive",
        "interactive": {"type": "button_reply", "button_reply": {"id": button_id, "title": "Yes"}}
    }


class TestVerification:

    def test_matching_token_echoes_challenge(self, client, monkeypatch):
        monkeypatch.setattr(settings, "WHATSAPP_VERIFY_TOKEN", "s3cret")

        response = client.get(WEBHOOK, params={
            "hub.mode": "subscribe", "hub.verify_token": "s3cret", "hub.challenge": "1158201444"
        })

        assert response.status_code == 200
        assert response.text == "1158201444"

    @pytest.mark.parametrize("params", [
        {"hub.mode": "subscribe", "hub.verify_token": "wrong", "hub.challenge": "1"},
        {"hub.mode": "unsubscribe", "hub.verify_token": "s3cret", "hub.challenge": "1"},
        {},
    ])
    def test_rejected(self, client, monkeypatch, params):
        monkeypatch.setattr(settings, "WHATSAPP_VERIFY_TOKEN", "s3cret")

        response = client.get(WEBHOOK, params=params)

        assert response.status_code == 403

    def test_unset_token_never_verifies(self, client, monkeypatch):
        monkeypatch.setattr(settings, "WHATSAPP_VERIFY_TOKEN", "")

        response = client.get(WEBHOOK, params={"hub.mode": "subscribe", "hub.verify_token": "", "hub.challenge": "1"})

        assert response.status_code == 403


class TestDelivery:

    def test_status_update_is_acknowledged(self, client, fake_messaging):
        payload = {"entry": [{"changes": [{"value": {"statuses": [{"id": "wamid.x", "status": "read"}]}}]}]}

        response = client.post(WEBHOOK, json=payload)

        assert response.json() == {"status": "OK"}
        assert fake_messaging.texts == []

    def test_text_message_gets_help(self, client, fake_messaging):
        response = client.post(WEBHOOK, json=envelope({"id": "wamid.t", "from": SENDER, "type": "text", "text": {"body": "hi"}}))

        assert response.json() == {"status": "OK"}
        assert fake_messaging.texts == [(SENDER, TEXT_REPLY)]

    def test_image_is_processed_and_acknowledged(self, client, fake_messaging, fake_claude, db, jpeg_bytes):
        fake_messaging.media["media-1"] = (jpeg_bytes, "image/jpeg")
        fake_claude.responses["classify_document"] = lambda content: [{"document_type": "health_record"}]
        fake_claude.responses["medical_report_analysis"] = lambda content: [{
            "date": "2024-05-20",
            "components": [{"component": "Glucose", "value": 96, "unit": "mg/dL"}]
        }]

        response = client.post(WEBHOOK, json=envelope(image_message()))

        assert response.json() == {"status": "OK"}
        row = db.query(models.TestResultRow).one()
        assert row.patient_number == SENDER
        assert row.number_value == 96
        assert row.public_url == "https://storage.test/all_file/whatsapp_media-1.jpg"
        assert fake_messaging.texts == [(SENDER, "Your health report has been saved with 1 test result(s).")]

    def test_duplicate_delivery_processed_once(self, client, fake_messaging, fake_claude, db, jpeg_bytes):
        fake_messaging.media["media-1"] = (jpeg_bytes, "image/jpeg")
        fake_claude.responses["classify_document"] = lambda content: [{"document_type": "health_record"}]
        fake_claude.responses["medical_report_analysis"] = lambda content: [{
            "date": "2024-05-20",
            "components": [{"component": "Glucose", "value": 96}]
        }]

        client.post(WEBHOOK, json=envelope(image_message()))
        client.post(WEBHOOK, json=envelope(image_message()))

        assert db.query(models.TestResultRow).count() == 1
        assert len(fake_messaging.texts) == 1
        assert len(fake_claude.calls_for("medical_report_analysis")) == 1

    def test_pipeline_failure_becomes_friendly_reply(self, client, fake_messaging, fake_claude, db, jpeg_bytes):
        fake_messaging.media["media-1"] = (jpeg_bytes, "image/jpeg")
        fake_claude.responses["classify_document"] = lambda content: [{"document_type": "health_record"}]
        fake_claude.responses["medical_report_analysis"] = lambda content: []

        response = client.post(WEBHOOK, json=envelope(image_message()))

        assert response.json() == {"status": "OK"}
        assert fake_messaging.texts == [(SENDER, describe_failure(ExtractionFailed("x")))]
        assert db.query(models.TestResultRow).count() == 0

    def test_reply_failure_still_acknowledged(self, client, fake_messaging):
        fake_messaging.error = MessagingTimeout(8.0)

        response = client.post(WEBHOOK, json=envelope({"id": "wamid.t", "from": SENDER, "type": "text", "text": {"body": "hi"}}))

        assert response.status_code == 200
        assert response.json() == {"status": "OK"}

    def test_malformed_body_is_acknowledged(self, client):
        response = client.post(WEBHOOK, content=b"not json", headers={"Content-Type": "application/json"})

        assert response.json() == {"status": "OK"}


class TestButtonReplies:

    def test_yes_button_records_adherence(self, client, fake_messaging, db):
        prescription = models.Prescription(
            patient_number=SENDER,
            prescription_uuid="g",
            medicine="Metformin",
            start_date=date(2000, 1, 1),
            end_date=date(2099, 12, 31),
            evening=True
        )
        db.add(prescription)
        db.commit()
        db.refresh(prescription)
        button_id = build_callback_id("yes", "taken", prescription.id, "Metformin", "2024-06-01", "evening")

        response = client.post(WEBHOOK, json=envelope(button_message(button_id)))

        assert response.json() == {"status": "OK"}
        entry = db.query(models.MedicationStreak).one()
        assert entry.evening is True
        assert entry.date == date(2024, 6, 1)
        assert "Metformin evening dose" in fake_messaging.texts[0][1]

    def test_other_interactive_asks_for_buttons(self, client, fake_messaging):
        message = {
            "id": "wamid.list",
            "from": SENDER,
            "type": "interactive",
            "interactive": {"type": "list_reply", "list_reply": {"id": "x", "title": "X"}}
        }

        client.post(WEBHOOK, json=envelope(message))

        assert fake_messaging.texts == [(SENDER, USE_BUTTONS_MESSAGE)]


def test_first_message_falls_back_to_contact_id():
    payload = envelope({"id": "wamid.1", "type": "text"})

    assert first_message(payload)["from"] == SENDER
    assert first_message({"entry": []}) is None


class TestMalformedOutput:

    def test_marking_string_gets_extraction_reply(self, client, fake_messaging, fake_claude, db, jpeg_bytes):
        fake_messaging.media["media-1"] = (jpeg_bytes, "image/jpeg")
        fake_claude.responses["classify_document"] = lambda content: [{"document_type": "prescription"}]
        fake_claude.responses["prescription_analysis"] = lambda content: [{
            "prescription_date": "2024-05-25",
            "doctor": "Dr. Rao",
            "medicines": [{"medicine": "Amoxicillin", "before_after_food": "after food", "medicine_times": "1-0-0-1"}]
        }]

        response = client.post(WEBHOOK, json=envelope(image_message()))

        assert response.json() == {"status": "OK"}
        assert fake_messaging.texts == [(SENDER, describe_failure(ExtractionFailed("x")))]
        assert db.query(models.Prescription).count() == 0

    def test_unexpected_error_still_replies(self, client, fake_messaging):
        # Unregistered media id makes the download raise KeyError
        response = client.post(WEBHOOK, json=envelope(image_message(media_id="missing")))

        assert response.json() == {"status": "OK"}
        assert fake_messaging.texts == [(SENDER, GENERIC_FAILURE_REPLY)]
