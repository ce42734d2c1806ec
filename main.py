# Cloud Functions loads the target from main.py at the source root
from chat_notifier.main import on_chat_message_created

__all__ = ["on_chat_message_created"]
