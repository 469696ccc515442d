"""Tests for the client-side timeline that merges optimistic sends with server copies."""
from datetime import datetime, timedelta, timezone

from chatline.client.timeline import MessageTimeline, is_temp_id

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def server_message(mid, text, sender="me", at=T0, **extra):
    return {
        "id": mid,
        "conversationId": "c1",
        "senderId": sender,
        "text": text,
        "delivered": False,
        "read": False,
        "createdAt": at.isoformat(),
        **extra,
    }


def test_optimistic_entry_replaced_by_client_message_id():
    timeline = MessageTimeline("c1", "me")
    temp = timeline.add_optimistic("hi", now=T0)
    assert is_temp_id(temp["id"])

    timeline.apply_new(server_message("m1", "hi", clientMessageId=temp["clientMessageId"]))

    assert timeline.ids() == ["m1"]


def test_fallback_match_on_sender_and_text():
    timeline = MessageTimeline("c1", "me")
    timeline.add_optimistic("first", now=T0)
    timeline.add_optimistic("second", now=T0 + timedelta(seconds=1))

    timeline.apply_new(server_message("m2", "second", at=T0 + timedelta(seconds=1)))

    assert [m["text"] for m in timeline.messages] == ["first", "second"]
    assert timeline.ids()[1] == "m2"
    assert is_temp_id(timeline.ids()[0])


def test_message_from_other_user_is_appended():
    timeline = MessageTimeline("c1", "me")
    timeline.add_optimistic("hi", now=T0)

    timeline.apply_new(server_message("m9", "hi", sender="them", at=T0 + timedelta(seconds=2)))

    assert len(timeline.messages) == 2
    assert timeline.ids()[1] == "m9"


def test_duplicate_new_does_not_regress_status():
    timeline = MessageTimeline("c1", "me", [server_message("m1", "hi")])
    timeline.apply_delivered("m1")
    timeline.apply_read(["m1"])

    timeline.apply_new(server_message("m1", "hi"))

    message = timeline.get("m1")
    assert message["read"] is True
    assert message["delivered"] is True
    assert timeline.ids() == ["m1"]


def test_apply_read_counts_transitions_and_implies_delivered():
    timeline = MessageTimeline("c1", "me", [server_message("m1", "a"), server_message("m2", "b")])

    assert timeline.apply_read(["m1", "m2", "unknown"], read_at="2024-05-01T12:01:00+00:00") == 2
    assert timeline.apply_read(["m1"]) == 0
    assert timeline.get("m2")["delivered"] is True
    assert timeline.get("m1")["readAt"] == "2024-05-01T12:01:00+00:00"


def test_other_conversation_is_ignored():
    timeline = MessageTimeline("c1", "me")
    other = server_message("m1", "hi")
    other["conversationId"] = "c2"

    assert timeline.apply_new(other) is False
    assert timeline.messages == []


def test_ordering_by_created_at_is_stable():
    later = server_message("m2", "later", at=T0 + timedelta(seconds=5))
    tie_a = server_message("m1a", "a")
    tie_b = server_message("m1b", "b")

    timeline = MessageTimeline("c1", "me", [later, tie_a, tie_b])

    assert timeline.ids() == ["m1a", "m1b", "m2"]


def test_reject_only_drops_temp_entries():
    timeline = MessageTimeline("c1", "me", [server_message("m1", "kept")])
    temp = timeline.add_optimistic("failed", now=T0 + timedelta(seconds=1))

    assert timeline.reject("m1") is False
    assert timeline.reject(temp["id"]) is True
    assert timeline.ids() == ["m1"]
