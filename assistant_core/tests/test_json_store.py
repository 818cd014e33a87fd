import tempfile
from pathlib import Path
from datetime import datetime, timedelta, timezone

import pytest

from assistant_core.infrastructure.storage.json_store import JsonConversationStore
from assistant_core.domain.conversation import ConversationMessage, PendingProposal
from assistant_core.domain.exceptions import StoreError


def _msg(mid, sender, at, reply_to=None, conv="u-1"):
    return ConversationMessage(
        id=mid, conversation_id=conv, sender=sender, content=f"content {mid}", created_at=at, reply_to_id=reply_to
    )


def test_history_round_trip_preserves_order_and_reply_to():
    with tempfile.TemporaryDirectory() as d:
        store = JsonConversationStore(root=Path(d) / ".storage")
        t0 = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
        store.append_message(_msg("m1", "user", t0))
        store.append_message(_msg("m2", "assistant", t0 + timedelta(seconds=1), reply_to="m1"))
        store.append_message(_msg("m3", "user", t0 + timedelta(seconds=2)))

        reopened = JsonConversationStore(root=Path(d) / ".storage")
        msgs = reopened.list_messages("u-1")
        assert [m.id for m in msgs] == ["m1", "m2", "m3"]
        assert [m.sender for m in msgs] == ["user", "assistant", "user"]
        assert msgs[1].reply_to_id == "m1"
        assert msgs[0].created_at == t0
        assert reopened.get_message("u-1", "m2").content == "content m2"


def test_conversations_are_isolated_per_user():
    with tempfile.TemporaryDirectory() as d:
        store = JsonConversationStore(root=Path(d))
        now = datetime.now(timezone.utc)
        store.append_message(_msg("a1", "user", now, conv="u-a"))
        store.append_message(_msg("b1", "user", now, conv="u-b"))
        assert [m.id for m in store.list_messages("u-a")] == ["a1"]
        assert store.list_messages("u-missing") == []


def test_created_at_must_strictly_increase():
    with tempfile.TemporaryDirectory() as d:
        store = JsonConversationStore(root=Path(d))
        now = datetime.now(timezone.utc)
        store.append_message(_msg("m1", "user", now))
        with pytest.raises(StoreError) as info:
            store.append_message(_msg("m2", "assistant", now, reply_to="m1"))
        assert info.value.code == "STORE_ORDER_VIOLATION"
        assert [m.id for m in store.list_messages("u-1")] == ["m1"]


def test_reply_to_must_reference_earlier_message():
    with tempfile.TemporaryDirectory() as d:
        store = JsonConversationStore(root=Path(d))
        now = datetime.now(timezone.utc)
        store.append_message(_msg("m1", "user", now))
        with pytest.raises(StoreError) as info:
            store.append_message(_msg("m2", "assistant", now + timedelta(seconds=1), reply_to="nope"))
        assert info.value.code == "STORE_REPLY_TO_INVALID"


def test_pending_proposal_set_get_clear():
    with tempfile.TemporaryDirectory() as d:
        store = JsonConversationStore(root=Path(d))
        now = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
        assert store.get_pending_proposal("u-1") is None
        proposal = PendingProposal(
            kind="CREATE_TASK",
            payload={"action": "CREATE_TASK", "project_name": "Gala", "task_title": "Book venue"},
            created_at=now,
            expires_at=now + timedelta(minutes=10),
        )
        store.set_pending_proposal("u-1", proposal)
        loaded = store.get_pending_proposal("u-1")
        assert loaded == proposal
        assert not loaded.is_expired(now + timedelta(minutes=5))
        assert loaded.is_expired(now + timedelta(minutes=10))
        store.clear_pending_proposal("u-1")
        assert store.get_pending_proposal("u-1") is None
        assert not list((Path(d) / "conversations" / "u-1").glob("*.tmp"))
