from .dispatcher import NotificationDispatcher
from .schemas import DeliveryErrorKind, DispatchOutcome, DispatchSummary, MessageCreatedEvent

__all__ = [
    "NotificationDispatcher",
    "DeliveryErrorKind",
    "DispatchOutcome",
    "DispatchSummary",
    "MessageCreatedEvent",
]
