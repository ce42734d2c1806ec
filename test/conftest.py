from typing import Callable, Dict, List, Optional

import pytest

from chat_notifier.config import Settings
from chat_notifier.dispatcher import NotificationDispatcher
from chat_notifier.schemas import (
    Chat,
    DeliveryErrorKind,
    DeliveryResult,
    MalformedDocumentError,
    UserProfile,
)


class FakeDocumentStore:
    """In-memory stand-in for Firestore holding raw chat and user documents."""

    def __init__(self, chats: Optional[Dict] = None, users: Optional[Dict] = None):
        self.chats = chats or {}
        self.users = users or {}
        self.calls: List[tuple] = []

    async def get_chat(self, chat_id: str) -> Optional[Chat]:
        self.calls.append(("get_chat", chat_id))
        if chat_id not in self.chats:
            return None
        users = self.chats[chat_id].get("users")
        if not isinstance(users, list):
            raise MalformedDocumentError("chats", chat_id, "users is not a list")
        return Chat(users=users)

    async def get_user_profile(self, user_id: str) -> Optional[UserProfile]:
        self.calls.append(("get_user_profile", user_id))
        if user_id not in self.users:
            return None
        tokens = self.users[user_id].get("fcmTokens")
        if tokens is not None and not isinstance(tokens, list):
            raise MalformedDocumentError("users", user_id, "fcmTokens is not a list")
        return UserProfile(fcmTokens=tokens)

    async def remove_tokens(self, user_id: str, tokens: List[str]) -> None:
        self.calls.append(("remove_tokens", user_id, list(tokens)))
        current = self.users[user_id].get("fcmTokens", [])
        self.users[user_id]["fcmTokens"] = [t for t in current if t not in tokens]


class FakePushClient:
    """Records sends and answers with scripted per-token errors."""

    def __init__(self, errors: Optional[Dict[str, DeliveryErrorKind]] = None,
                 on_send: Optional[Callable[[List[str]], None]] = None):
        self.errors = errors or {}
        self.on_send = on_send
        self.sent: List[tuple] = []

    async def send(self, tokens, payload):
        self.sent.append((list(tokens), payload))
        if self.on_send:
            self.on_send(tokens)
        return [
            DeliveryResult(token=t, success=False, error=self.errors[t], error_code="test")
            if t in self.errors else DeliveryResult(token=t, success=True)
            for t in tokens
        ]


@pytest.fixture
def settings():
    return Settings(_env_file=None)


@pytest.fixture
def store():
    return FakeDocumentStore(
        chats={"c1": {"users": ["alice", "bob", "carol"]}},
        users={"bob": {"fcmTokens": ["t1", "t2"]}},
    )


@pytest.fixture
def push():
    return FakePushClient()


@pytest.fixture
def dispatcher(store, push, settings):
    return NotificationDispatcher(store=store, push=push, settings=settings)
