import json

import pytest
from google.events.cloud import firestore as firestore_events

from chat_notifier.events import EventDecodeError, decode_value, parse_message_created

DOC_NAME = "projects/demo/databases/(default)/documents/chats/c1/messages/m1"


def firestore_event(fields=None, name=DOC_NAME):
    value = {"name": name}
    if fields is not None:
        value["fields"] = fields
    return {"oldValue": {}, "value": value}


def test_decode_value_handles_nested_types():
    value = {"mapValue": {"fields": {
        "users": {"arrayValue": {"values": [{"stringValue": "a"}, {"stringValue": "b"}]}},
        "count": {"integerValue": "3"},
        "ratio": {"doubleValue": 0.5},
        "muted": {"booleanValue": False},
        "gone": {"nullValue": None},
        "sentAt": {"timestampValue": "2024-05-01T10:00:00Z"},
        "empty": {"arrayValue": {}},
    }}}

    assert decode_value(value) == {
        "users": ["a", "b"],
        "count": 3,
        "ratio": 0.5,
        "muted": False,
        "gone": None,
        "sentAt": "2024-05-01T10:00:00Z",
        "empty": [],
    }


def test_decode_value_rejects_unknown_type():
    with pytest.raises(EventDecodeError):
        decode_value({"mysteryValue": 1})


def test_parse_message_created_from_dict():
    event = parse_message_created(firestore_event({
        "senderId": {"stringValue": "alice"},
        "text": {"stringValue": "hi"},
        "senderUsername": {"stringValue": "Alice"},
    }))

    assert event.chat_id == "c1"
    assert event.message_id == "m1"
    assert event.message == {"senderId": "alice", "text": "hi", "senderUsername": "Alice"}


def test_parse_message_created_from_json_bytes_and_document_attribute():
    data = json.dumps(firestore_event({"text": {"stringValue": "hi"}})).encode()

    event = parse_message_created(data, document="chats/c9/messages/m9")

    assert (event.chat_id, event.message_id) == ("c9", "m9")
    assert event.message == {"text": "hi"}


def test_parse_message_created_without_document_data():
    event = parse_message_created({"value": {}}, document="chats/c1/messages/m1")

    assert event.message is None


def test_parse_message_created_with_empty_document():
    event = parse_message_created(firestore_event())

    assert event.message == {}


@pytest.mark.parametrize("data, document", [
    (b"not json", None),
    ([1, 2], None),
    ({}, None),
    (firestore_event({}, name="projects/demo/databases/(default)/documents/users/bob"), None),
    (firestore_event({}), "chats/c1/messages/m1/reactions/r1"),
])
def test_parse_message_created_rejects_other_events(data, document):
    with pytest.raises(EventDecodeError):
        parse_message_created(data, document=document)


def test_parse_message_created_with_custom_collection():
    event = parse_message_created({}, document="rooms/r1/messages/m1", chats_collection="rooms")

    assert event.chat_id == "r1"


def protobuf_event(fields):
    document = firestore_events.Document(name=DOC_NAME, fields=fields)
    return firestore_events.DocumentEventData.serialize(firestore_events.DocumentEventData(value=document))


def test_parse_message_created_from_protobuf():
    data = protobuf_event({
        "senderId": firestore_events.Value(string_value="alice"),
        "text": firestore_events.Value(string_value="hi"),
        "seq": firestore_events.Value(integer_value=7),
        "tags": firestore_events.Value(array_value=firestore_events.ArrayValue(
            values=[firestore_events.Value(string_value="a")]
        )),
    })

    event = parse_message_created(data, content_type="application/protobuf")

    assert (event.chat_id, event.message_id) == ("c1", "m1")
    assert event.message == {"senderId": "alice", "text": "hi", "seq": 7, "tags": ["a"]}


def test_parse_message_created_from_garbage_protobuf():
    with pytest.raises(EventDecodeError):
        parse_message_created(b"\x0a\x05ab", document="chats/c1/messages/m1",
                              content_type="application/protobuf")
