from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator


class MalformedDocumentError(Exception):
    """Raised when a stored document does not have the expected shape."""

    def __init__(self, collection: str, document_id: str, reason: str):
        super().__init__(f"Malformed {collection}/{document_id}: {reason}")
        self.collection = collection
        self.document_id = document_id
        self.reason = reason


class ChatMessage(BaseModel):
    """A newly created message document under chats/{chatId}/messages."""
    model_config = ConfigDict(extra="ignore")

    senderId: Optional[str] = None
    text: Optional[str] = None
    senderUsername: Optional[str] = None

    @field_validator("senderId", "text", "senderUsername", mode="before")
    @classmethod
    def _non_strings_are_absent(cls, value: Any) -> Optional[str]:
        return value if isinstance(value, str) else None

    def is_complete(self) -> bool:
        return bool(self.senderId) and bool(self.text)

    def display_name(self, fallback: str = "Someone") -> str:
        return self.senderUsername or fallback


class Chat(BaseModel):
    """Chat document; its users list is the fan-out audience."""
    model_config = ConfigDict(extra="ignore")

    users: List[StrictStr]


class UserProfile(BaseModel):
    """User document. Only the registered device tokens matter here."""
    model_config = ConfigDict(extra="ignore")

    fcmTokens: List[StrictStr] = Field(default_factory=list)

    @field_validator("fcmTokens", mode="before")
    @classmethod
    def _missing_tokens_are_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("fcmTokens")
    @classmethod
    def _dedupe(cls, value: List[str]) -> List[str]:
        # Firestore stores the set as an array; keep first-seen order
        return list(dict.fromkeys(token for token in value if token))


class NotificationData(BaseModel):
    """Data block delivered alongside the notification. Values are strings for FCM."""
    type: str
    chatId: str
    senderId: str


class NotificationPayload(BaseModel):
    title: str
    body: str
    data: NotificationData


class DeliveryErrorKind(str, Enum):
    PERMANENTLY_INVALID = "permanently_invalid"
    TRANSIENT = "transient"
    UNKNOWN = "unknown"


class DeliveryResult(BaseModel):
    """Outcome of delivering one payload to one token."""
    token: str
    success: bool
    error: Optional[DeliveryErrorKind] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def is_permanently_invalid(self) -> bool:
        return self.error == DeliveryErrorKind.PERMANENTLY_INVALID


class MessageCreatedEvent(BaseModel):
    """Decoded trigger for a document created at chats/{chatId}/messages/{messageId}."""
    chat_id: str
    message_id: str
    message: Optional[Dict[str, Any]] = None


class DispatchOutcome(str, Enum):
    COMPLETED = "completed"
    NO_DATA = "no_data"
    INVALID_MESSAGE = "invalid_message"
    CHAT_NOT_FOUND = "chat_not_found"
    INVALID_CHAT = "invalid_chat"
    FAILED = "failed"


class DispatchSummary(BaseModel):
    """What one invocation did. Returned for logging, never raised."""
    chat_id: str
    message_id: str
    outcome: DispatchOutcome = DispatchOutcome.COMPLETED
    recipients_notified: List[str] = Field(default_factory=list)
    tokens_sent: int = 0
    tokens_removed: Dict[str, List[str]] = Field(default_factory=dict)
