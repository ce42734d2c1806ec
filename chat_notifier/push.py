import asyncio
import logging
from typing import List, Optional, Protocol

import firebase_admin
from firebase_admin import exceptions, messaging

from .config import Settings
from .schemas import DeliveryErrorKind, DeliveryResult, NotificationPayload

logger = logging.getLogger(__name__)

# FCM errors meaning the token will never work again
PERMANENT_ERRORS = (
    messaging.UnregisteredError,
)

# INVALID_ARGUMENT also covers payload problems; only these name a bad token
INVALID_TOKEN_MARKERS = (
    "registration token",
    "registration-token",
)

# FCM errors worth another attempt on a later message
TRANSIENT_ERRORS = (
    messaging.QuotaExceededError,
    exceptions.ResourceExhaustedError,
    exceptions.UnavailableError,
    exceptions.InternalError,
    exceptions.DeadlineExceededError,
)


def classify_error(error: Optional[Exception]) -> DeliveryErrorKind:
    """Map an FCM per-token exception onto DeliveryErrorKind."""
    if isinstance(error, PERMANENT_ERRORS):
        return DeliveryErrorKind.PERMANENTLY_INVALID
    if isinstance(error, exceptions.InvalidArgumentError) and _names_invalid_token(error):
        return DeliveryErrorKind.PERMANENTLY_INVALID
    if isinstance(error, TRANSIENT_ERRORS):
        return DeliveryErrorKind.TRANSIENT
    return DeliveryErrorKind.UNKNOWN


def _names_invalid_token(error: exceptions.InvalidArgumentError) -> bool:
    text = str(error).lower()
    return any(marker in text for marker in INVALID_TOKEN_MARKERS)


class PushClient(Protocol):
    """Sends one payload to many device tokens."""

    async def send(self, tokens: List[str], payload: NotificationPayload) -> List[DeliveryResult]:
        ...


class FcmPushClient:
    """PushClient backed by Firebase Cloud Messaging multicast."""

    def __init__(self, settings: Settings, app: Optional[firebase_admin.App] = None):
        self.app = app
        self.batch_size = settings.fcm_batch_size
        self.android_priority = settings.android_priority

    def build_message(self, tokens: List[str], payload: NotificationPayload) -> messaging.MulticastMessage:
        """
        Build a high-priority multicast message that also wakes the app in the background.

        Args:
            tokens: Destination device tokens
            payload: Notification title, body and data block

        Returns:
            The multicast message ready to send
        """
        return messaging.MulticastMessage(
            tokens=tokens,
            notification=messaging.Notification(
                title=payload.title,
                body=payload.body
            ),
            data={k: str(v) for k, v in payload.data.model_dump().items()},
            android=messaging.AndroidConfig(priority=self.android_priority),
            apns=messaging.APNSConfig(
                headers={'apns-priority': '10'},
                payload=messaging.APNSPayload(
                    aps=messaging.Aps(content_available=True)
                )
            )
        )

    async def send(self, tokens: List[str], payload: NotificationPayload) -> List[DeliveryResult]:
        """
        Send a payload to every token.

        Results are returned in the same order as ``tokens``. Lists longer than
        the FCM multicast limit are sent in consecutive batches.

        Raises:
            FirebaseError: If a whole batch could not be sent
        """
        results: List[DeliveryResult] = []

        for i in range(0, len(tokens), self.batch_size):
            batch = tokens[i:i + self.batch_size]
            message = self.build_message(batch, payload)
            batch_response = await asyncio.to_thread(
                messaging.send_each_for_multicast,
                message,
                app=self.app
            )
            results.extend(self._to_results(batch, batch_response.responses))

        return results

    @staticmethod
    def _to_results(batch: List[str], responses) -> List[DeliveryResult]:
        results = []
        for token, resp in zip(batch, responses):
            if resp.success:
                results.append(DeliveryResult(token=token, success=True))
                continue

            error = resp.exception
            results.append(DeliveryResult(
                token=token,
                success=False,
                error=classify_error(error),
                error_code=getattr(error, 'code', None),
                error_message=str(error) if error else None
            ))
        return results
