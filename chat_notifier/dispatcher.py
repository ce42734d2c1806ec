import logging
from typing import List

from .config import Settings
from .push import PushClient
from .schemas import (
    ChatMessage,
    DispatchOutcome,
    DispatchSummary,
    MalformedDocumentError,
    MessageCreatedEvent,
    NotificationData,
    NotificationPayload,
)
from .store import DocumentStore

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Fans a new chat message out to the other participants' devices."""

    def __init__(self, store: DocumentStore, push: PushClient, settings: Settings):
        """
        Initialize the dispatcher.

        Args:
            store: Document store holding chats and user profiles
            push: Push delivery client
            settings: Notification settings
        """
        self.store = store
        self.push = push
        self.settings = settings

    async def dispatch(self, event: MessageCreatedEvent) -> DispatchSummary:
        """
        Notify every chat participant except the sender about a new message.

        Never raises: precondition failures end the invocation early, and
        unexpected errors are logged and reported as a FAILED summary.

        Args:
            event: The decoded message-created trigger

        Returns:
            Summary of what was sent and which tokens were pruned
        """
        chat_id, message_id = event.chat_id, event.message_id
        summary = DispatchSummary(chat_id=chat_id, message_id=message_id)

        if event.message is None:
            logger.info(f"No data associated with the event for message {message_id}")
            summary.outcome = DispatchOutcome.NO_DATA
            return summary

        message = ChatMessage.model_validate(event.message)
        if not message.is_complete():
            logger.info(
                f"Missing senderId or text for message {message_id}, skipping",
                extra={"senderId": message.senderId, "hasText": bool(message.text)}
            )
            summary.outcome = DispatchOutcome.INVALID_MESSAGE
            return summary

        sender_name = message.display_name(self.settings.default_sender_name)
        logger.info(
            f"New message from {sender_name} ({message.senderId}) in chat {chat_id}, msgId {message_id}"
        )

        try:
            try:
                chat = await self.store.get_chat(chat_id)
            except MalformedDocumentError as e:
                logger.info(f"Invalid chat document data for {chat_id}: {e.reason}")
                summary.outcome = DispatchOutcome.INVALID_CHAT
                return summary

            if chat is None:
                logger.info(f"Chat document {chat_id} not found")
                summary.outcome = DispatchOutcome.CHAT_NOT_FOUND
                return summary

            payload = self.build_payload(chat_id, message, sender_name)

            for recipient_id in chat.users:
                if recipient_id == message.senderId:
                    continue  # Don't send to self
                await self._notify_recipient(recipient_id, payload, summary)

            logger.info(
                f"Notifications processing complete for message {message_id}: "
                f"{len(summary.recipients_notified)} recipients, {summary.tokens_sent} tokens"
            )
            return summary

        except Exception as e:
            logger.error(f"Error processing new chat message for msgId {message_id}: {str(e)}", exc_info=True)
            summary.outcome = DispatchOutcome.FAILED
            return summary

    def build_payload(self, chat_id: str, message: ChatMessage, sender_name: str) -> NotificationPayload:
        return NotificationPayload(
            title=sender_name,
            body=message.text,
            data=NotificationData(
                type=self.settings.notification_type,
                chatId=chat_id,
                senderId=message.senderId
            )
        )

    async def _notify_recipient(self, recipient_id: str, payload: NotificationPayload,
                                summary: DispatchSummary) -> None:
        logger.info(f"Preparing notification for recipient: {recipient_id}")

        try:
            profile = await self.store.get_user_profile(recipient_id)
        except MalformedDocumentError as e:
            logger.info(f"No valid FCM tokens for recipient {recipient_id}: {e.reason}")
            return

        if profile is None:
            logger.info(f"Recipient user document {recipient_id} not found")
            return

        tokens = profile.fcmTokens
        if not tokens:
            logger.info(f"No valid FCM tokens for recipient {recipient_id}")
            return

        logger.info(f"Sending to {len(tokens)} tokens for {recipient_id}")
        results = await self.push.send(tokens, payload)
        summary.recipients_notified.append(recipient_id)
        summary.tokens_sent += len(tokens)

        # Token cleanup for this recipient
        tokens_to_remove: List[str] = []
        for token, result in zip(tokens, results):
            if result.success:
                continue
            logger.error(
                f"Failure sending to token for {recipient_id}: {result.error_code} {result.error_message}",
                extra={"errorKind": result.error.value if result.error else None}
            )
            if result.is_permanently_invalid:
                tokens_to_remove.append(token)

        if tokens_to_remove:
            logger.info(f"Removing {len(tokens_to_remove)} invalid tokens for {recipient_id}")
            await self.store.remove_tokens(recipient_id, tokens_to_remove)
            summary.tokens_removed[recipient_id] = tokens_to_remove
