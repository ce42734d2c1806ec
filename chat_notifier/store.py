import asyncio
import logging
from typing import List, Optional, Protocol

import google.cloud.firestore
from firebase_admin import firestore
from pydantic import ValidationError

from .config import Settings
from .schemas import Chat, MalformedDocumentError, UserProfile

logger = logging.getLogger(__name__)


class DocumentStore(Protocol):
    """Reads chats and user profiles; prunes device tokens."""

    async def get_chat(self, chat_id: str) -> Optional[Chat]:
        ...

    async def get_user_profile(self, user_id: str) -> Optional[UserProfile]:
        ...

    async def remove_tokens(self, user_id: str, tokens: List[str]) -> None:
        ...


class FirestoreDocumentStore:
    """DocumentStore backed by a Firestore client."""

    def __init__(self, firestore_db: google.cloud.firestore.Client, settings: Settings):
        self.firestore_db = firestore_db
        self.chats_collection = settings.chats_collection
        self.users_collection = settings.users_collection
        self.tokens_field = settings.tokens_field

    async def get_chat(self, chat_id: str) -> Optional[Chat]:
        """
        Load a chat document.

        Returns:
            The validated chat, or None if the document does not exist

        Raises:
            MalformedDocumentError: If the users field is missing or not a list of ids
        """
        chat_ref = self.firestore_db.collection(self.chats_collection).document(chat_id)
        chat = await asyncio.to_thread(chat_ref.get)

        if not chat.exists:
            return None

        chat_data = chat.to_dict() or {}
        try:
            return Chat.model_validate(chat_data)
        except ValidationError as e:
            raise MalformedDocumentError(self.chats_collection, chat_id, _describe(e)) from e

    async def get_user_profile(self, user_id: str) -> Optional[UserProfile]:
        """
        Load a user document and its registered device tokens.

        Returns:
            The validated profile, or None if the document does not exist

        Raises:
            MalformedDocumentError: If the token field is not a list of strings
        """
        user_ref = self.firestore_db.collection(self.users_collection).document(user_id)
        user = await asyncio.to_thread(user_ref.get)

        if not user.exists:
            return None

        user_data = user.to_dict() or {}
        try:
            return UserProfile.model_validate({"fcmTokens": user_data.get(self.tokens_field)})
        except ValidationError as e:
            raise MalformedDocumentError(self.users_collection, user_id, _describe(e)) from e

    async def remove_tokens(self, user_id: str, tokens: List[str]) -> None:
        """
        Atomically remove tokens from a user's token array.

        ArrayRemove is applied server-side, so tokens registered concurrently
        by other writers are left in place.
        """
        if not tokens:
            return

        user_ref = self.firestore_db.collection(self.users_collection).document(user_id)
        await asyncio.to_thread(
            user_ref.update,
            {self.tokens_field: firestore.ArrayRemove(list(tokens))}
        )
        logger.info(f"Removed {len(tokens)} invalid tokens for user {user_id}")


def _describe(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in error.errors()
    )
