import json
import re
from typing import Any, Dict, Optional, Union

from google.events.cloud import firestore as firestore_events
from google.protobuf.message import DecodeError

from .schemas import MessageCreatedEvent

PROTOBUF_CONTENT_TYPE = "application/protobuf"


class EventDecodeError(ValueError):
    """Raised when a CloudEvent is not a message-created Firestore event."""


def decode_value(value: Dict[str, Any]) -> Any:
    """
    Convert one Firestore REST/JSON typed value into a plain Python value.

    Timestamps, references and bytes stay in their string form.
    """
    if 'nullValue' in value:
        return None
    if 'stringValue' in value:
        return value['stringValue']
    if 'booleanValue' in value:
        return bool(value['booleanValue'])
    if 'integerValue' in value:
        return int(value['integerValue'])
    if 'doubleValue' in value:
        return float(value['doubleValue'])
    if 'arrayValue' in value:
        return [decode_value(v) for v in value['arrayValue'].get('values', [])]
    if 'mapValue' in value:
        return decode_fields(value['mapValue'].get('fields', {}))
    if 'geoPointValue' in value:
        return dict(value['geoPointValue'])
    for key in ('timestampValue', 'referenceValue', 'bytesValue'):
        if key in value:
            return value[key]
    raise EventDecodeError(f"Unsupported Firestore value: {sorted(value)}")


def decode_fields(fields: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
    return {name: decode_value(value) for name, value in fields.items()}


def decode_protobuf(data: bytes) -> Dict[str, Any]:
    """
    Decode a protobuf DocumentEventData into the same shape as the JSON form.

    Gen-2 Firestore triggers send protobuf unless the trigger asks for JSON.
    """
    try:
        event_data = firestore_events.DocumentEventData.deserialize(data)
    except DecodeError as e:
        raise EventDecodeError(f"Event data is not a DocumentEventData: {str(e)}") from e
    return firestore_events.DocumentEventData.to_dict(event_data, preserving_proto_field_name=False)


def message_path_pattern(chats_collection: str = "chats") -> re.Pattern:
    return re.compile(
        rf"(?:^|/){re.escape(chats_collection)}/(?P<chat_id>[^/]+)/messages/(?P<message_id>[^/]+)$"
    )


def parse_message_created(data: Union[bytes, str, Dict[str, Any], None],
                          document: Optional[str] = None,
                          chats_collection: str = "chats",
                          content_type: Optional[str] = None) -> MessageCreatedEvent:
    """
    Decode the data of a Firestore document-created CloudEvent.

    Args:
        data: Event data, either protobuf bytes or Firestore JSON ({"value": {"name", "fields"}})
        document: The CloudEvent ``document`` attribute, if the transport set one
        chats_collection: Name of the chats collection in the document path
        content_type: The CloudEvent ``datacontenttype`` attribute

    Returns:
        The decoded event; ``message`` is None when the event carries no document

    Raises:
        EventDecodeError: If the data cannot be decoded or the path is not a chat message
    """
    if content_type and content_type.startswith(PROTOBUF_CONTENT_TYPE) and isinstance(data, bytes):
        data = decode_protobuf(data)
    elif isinstance(data, (bytes, str)):
        try:
            data = json.loads(data) if data else None
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise EventDecodeError(f"Event data is not JSON: {str(e)}") from e

    if data is not None and not isinstance(data, dict):
        raise EventDecodeError(f"Unexpected event data type: {type(data).__name__}")

    value = (data or {}).get('value') or {}
    path = document or value.get('name')
    if not path:
        raise EventDecodeError("Event does not name a document")

    match = message_path_pattern(chats_collection).search(path)
    if not match:
        raise EventDecodeError(f"Document {path} is not a chat message")

    message = decode_fields(value['fields']) if 'fields' in value else None
    if message is None and value.get('name'):
        # A created document with no fields is still a document
        message = {}

    return MessageCreatedEvent(
        chat_id=match.group('chat_id'),
        message_id=match.group('message_id'),
        message=message
    )
