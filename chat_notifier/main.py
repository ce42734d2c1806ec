import asyncio
import logging
from typing import Optional

import functions_framework

from .config import settings
from .dispatcher import NotificationDispatcher
from .events import EventDecodeError, parse_message_created
from .firebase import FirebaseApp
from .logging_config import setup_logging
from .push import FcmPushClient
from .schemas import DispatchSummary
from .store import FirestoreDocumentStore

setup_logging(settings)

logger = logging.getLogger(__name__)

_dispatcher: Optional[NotificationDispatcher] = None


def get_dispatcher() -> NotificationDispatcher:
    """Build the dispatcher on first use and reuse it across warm invocations."""
    global _dispatcher
    if _dispatcher is None:
        try:
            firebase = FirebaseApp(settings)
            store = FirestoreDocumentStore(firebase.get_firestore_db(), settings)
            push = FcmPushClient(settings, app=firebase.get_app())
        except Exception as e:
            logger.critical(f"Failed to initialize Firebase clients: {str(e)}")
            raise
        _dispatcher = NotificationDispatcher(store=store, push=push, settings=settings)
        logger.info("Notification dispatcher initialized")
    return _dispatcher


@functions_framework.cloud_event
def on_chat_message_created(cloud_event) -> Optional[DispatchSummary]:
    """
    Cloud Function triggered when a document is created under chats/{chatId}/messages.

    Args:
        cloud_event: Firestore document-created CloudEvent

    Returns:
        The dispatch summary, or None if the event was not a chat message
    """
    try:
        event = parse_message_created(
            cloud_event.data,
            document=cloud_event.get("document"),
            chats_collection=settings.chats_collection,
            content_type=cloud_event.get("datacontenttype")
        )
    except EventDecodeError as e:
        logger.warning(f"Ignoring event {cloud_event.get('id')}: {str(e)}")
        return None

    summary = asyncio.run(get_dispatcher().dispatch(event))
    logger.info(
        f"Dispatch finished for message {summary.message_id} with outcome {summary.outcome.value}",
        extra={"summary": summary.model_dump(mode="json")}
    )
    return summary
