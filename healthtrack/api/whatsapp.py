"""
WhatsApp Webhook Routes

The transport expects an unconditional acknowledgement, so every outcome,
including errors, is reported to the sender as a chat message.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session

from healthtrack.api.dependencies import (
    get_adherence_service,
    get_db,
    get_message_cache,
    get_pipeline,
)
from healthtrack.config import settings
from healthtrack.services.adherence_service import USE_BUTTONS_MESSAGE, AdherenceService
from healthtrack.services.message_cache import RecentMessageCache
from healthtrack.services.pipeline import DocumentPipeline
from healthtrack.utils.exceptions import HealthTrackError

logger = logging.getLogger(__name__)

router = APIRouter()

ACK = {"status": "OK"}

TEXT_REPLY = (
    "Hi! Send me a photo or PDF of a health report, imaging result or prescription "
    "and I'll save it to your records."
)
UNSUPPORTED_REPLY = "Sorry, I can only process images, PDF documents and reminder replies."


def first_message(payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """The zero-or-one message in ``entry[0].changes[0].value.messages``"""
    try:
        value = payload["entry"][0]["changes"][0]["value"]
    except (KeyError, IndexError, TypeError):
        return None
    messages = value.get("messages") or []
    if not messages:
        return None
    message = dict(messages[0])
    if not message.get("from"):
        contacts = value.get("contacts") or [{}]
        message["from"] = contacts[0].get("wa_id")
    return message


@router.get("/whatsapp/webhook")
async def verify_webhook(request: Request):
    """
    Verification handshake
    """
    params = request.query_params
    mode = params.get("hub.mode")
    token = params.get("hub.verify_token")
    challenge = params.get("hub.challenge", "")

    if mode == "subscribe" and settings.WHATSAPP_VERIFY_TOKEN and token == settings.WHATSAPP_VERIFY_TOKEN:
        logger.info("Webhook verified")
        return PlainTextResponse(challenge, status_code=200)

    logger.warning("Webhook verification failed")
    return PlainTextResponse("Verification failed", status_code=403)


@router.post("/whatsapp/webhook")
async def receive_webhook(
    request: Request,
    pipeline: DocumentPipeline = Depends(get_pipeline),
    adherence: AdherenceService = Depends(get_adherence_service),
    cache: RecentMessageCache = Depends(get_message_cache),
    db: Session = Depends(get_db)
):
    """
    Event delivery; always acknowledged with {"status": "OK"}
    """
    try:
        payload = await request.json()
    except ValueError:
        logger.warning("Webhook body is not JSON")
        return ACK

    message = first_message(payload)
    if message is None:
        # Status updates and other events carry no inbound message
        return ACK

    message_id = message.get("id")
    if message_id and cache.seen(message_id):
        logger.info(f"Skipping re-delivered message {message_id}")
        return ACK

    sender = message.get("from")
    if not sender:
        logger.warning(f"Message {message_id} has no sender")
        return ACK

    try:
        await handle_message(message, sender, pipeline, adherence, db)
    except HealthTrackError as e:
        # Only the reply itself can fail here; there is no one left to tell
        logger.error(f"Could not reply to {sender} for message {message_id}: {e.details}")
    except Exception as e:
        logger.error(f"Unexpected error handling message {message_id}: {e}", exc_info=True)

    return ACK


async def handle_message(
    message: Dict[str, Any],
    sender: str,
    pipeline: DocumentPipeline,
    adherence: AdherenceService,
    db: Session
):
    message_type = message.get("type")
    logger.info(f"Received {message_type} message {message.get('id')} from {sender}")

    if message_type in ("image", "document"):
        media = message.get(message_type) or {}
        await pipeline.process_media_message(
            db,
            sender,
            media.get("id"),
            mime_type=media.get("mime_type"),
            filename=media.get("filename")
        )
    elif message_type == "interactive":
        interactive = message.get("interactive") or {}
        button = interactive.get("button_reply")
        if interactive.get("type") == "button_reply" and button:
            await adherence.handle_reply(db, sender, button.get("id", ""))
        else:
            await pipeline.messaging.send_text(sender, USE_BUTTONS_MESSAGE)
    elif message_type == "text":
        await pipeline.messaging.send_text(sender, TEXT_REPLY)
    else:
        await pipeline.messaging.send_text(sender, UNSUPPORTED_REPLY)
