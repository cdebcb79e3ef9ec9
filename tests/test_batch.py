from __future__ import annotations

import pytest

from fomo.batch import BatchAction, BatchActionType, process_batch
from fomo.errors import ValidationError
from fomo.friendships import upsert_friendship
from fomo.models import Friendship, ResponseValue
from fomo.responses import current_response, history_for


def test_mixed_batch_applies_actions_in_order(session):
    upsert_friendship(session, "bob", "me", "pending")
    session.commit()

    result = process_batch(
        session,
        [
            {"id": "1", "type": "event_response", "data": {"event_id": "ev1", "response": "interested"}},
            {"id": "2", "type": "event_response", "data": {"event_id": "ev1", "response": "going"}},
            {
                "id": "3",
                "type": "friendship_accept",
                "data": {"friendship_id": "friendship_bob_me", "to_user_id": "bob"},
            },
        ],
        "me",
    )
    session.commit()

    assert result.processed == 3
    assert result.total == 3
    assert [item.type for item in result.results] == [
        BatchActionType.EVENT_RESPONSE,
        BatchActionType.EVENT_RESPONSE,
        BatchActionType.FRIENDSHIP_ACCEPT,
    ]
    assert current_response(session, user_id="me", event_id="ev1") is ResponseValue.GOING
    friendship = session.get(Friendship, "friendship_bob_me")
    assert friendship.status == "active"
    # Direction is preserved from the original request.
    assert friendship.from_user_id == "bob"


def test_failed_action_does_not_stop_the_batch(session):
    result = process_batch(
        session,
        [
            {"id": "ok-1", "type": "event_response", "data": {"event_id": "ev1", "response": "maybe"}},
            {"id": "bad", "type": "event_response", "data": {"response": "going"}},
            {"id": "bad-value", "type": "event_response", "data": {"event_id": "ev2", "response": "nope"}},
            {"id": "ok-2", "type": "event_response", "data": {"event_id": "ev3", "response": "going"}},
        ],
        "me",
    )
    session.commit()

    assert result.processed == 2
    assert result.total == 4
    assert [item.action_id for item in result.results] == ["ok-1", "ok-2"]
    assert [failure["id"] for failure in result.failed] == ["bad", "bad-value"]
    assert {entry.event_id for entry in history_for(session, user_id="me")} == {"ev1", "ev3"}


def test_unknown_types_are_skipped_silently(session):
    result = process_batch(
        session,
        [
            {"id": "x", "type": "poke_friend", "data": {}},
            {"id": "y", "data": {}},
            "not-an-action",
            {"id": "z", "type": "event_response", "data": {"event_id": "ev1", "response": "seen"}},
        ],
        "me",
    )

    assert result.processed == 1
    assert result.total == 4
    assert result.failed == []
    assert [item.action_id for item in result.results] == ["z"]


def test_action_user_id_overrides_batch_user(session):
    result = process_batch(
        session,
        [
            BatchAction(
                id="invite",
                type="event_response",
                userId="friend",
                data={"event_id": "ev1", "response": "invited", "invited_by_user_id": "me"},
            )
        ],
        "me",
    )
    session.commit()

    assert result.processed == 1
    entries = history_for(session, event_id="ev1")
    assert [(entry.user_id, entry.invited_by_user_id) for entry in entries] == [("friend", "me")]


def test_friendship_block_and_remove(session):
    upsert_friendship(session, "me", "bob", "active")
    upsert_friendship(session, "carol", "me", "active")
    session.commit()

    result = process_batch(
        session,
        [
            {"type": "friendship_block", "data": {"friendship_id": "friendship_me_bob", "to_user_id": "bob"}},
            {"type": "friendship_remove", "data": {"friendship_id": "friendship_carol_me", "to_user_id": "carol"}},
            {"id": "missing", "type": "friendship_accept", "data": {"friendship_id": "friendship_me_zed", "to_user_id": "zed"}},
        ],
        "me",
    )
    session.commit()

    assert result.processed == 2
    assert [item.action for item in result.results] == ["updated", "deleted"]
    assert result.failed[0]["id"] == "missing"
    assert session.get(Friendship, "friendship_me_bob").status == "blocked"
    removed = session.get(Friendship, "friendship_carol_me")
    assert removed.deleted_at is not None
    assert removed.status == "cancelled"


def test_friendship_action_requires_ids(session):
    result = process_batch(
        session,
        [{"id": "a", "type": "friendship_accept", "data": {"friendship_id": "friendship_x_y"}}],
        "me",
    )
    assert result.processed == 0
    assert result.failed == [
        {"id": "a", "error": "friendship_id and to_user_id are required"}
    ]


@pytest.mark.parametrize("actions", [None, [], "event_response", {"type": "event_response"}])
def test_invalid_actions_payload_is_rejected(session, actions):
    with pytest.raises(ValidationError):
        process_batch(session, actions, "me")


def test_missing_user_id_is_rejected(session):
    with pytest.raises(ValidationError):
        process_batch(session, [{"type": "event_response", "data": {}}], "  ")


def test_result_serializes_counts():
    from fomo.batch import BatchItemResult, BatchResult

    result = BatchResult(
        processed=1,
        total=2,
        results=[
            BatchItemResult(
                type=BatchActionType.EVENT_RESPONSE,
                action="appended",
                action_id="1",
                event_id="ev1",
                response="going",
            )
        ],
    )
    assert result.to_dict() == {
        "processed": 1,
        "total": 2,
        "results": [
            {
                "type": "event_response",
                "action": "appended",
                "action_id": "1",
                "event_id": "ev1",
                "response": "going",
            }
        ],
        "failed": [],
    }
