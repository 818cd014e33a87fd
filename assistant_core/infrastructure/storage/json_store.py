import json
import os
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Any, List, Optional
from uuid import uuid4

from assistant_core.config.settings import settings
from assistant_core.domain.conversation import ConversationStore, ConversationMessage, PendingProposal
from assistant_core.domain.exceptions import StoreError


def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_iso(value: str) -> datetime:
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


class JsonConversationStore(ConversationStore):
    """按用户划分的 JSONL 会话存储。

    目录结构：
        <root>/conversations/<user_id>/messages.jsonl   只追加的消息记录
        <root>/conversations/<user_id>/state.json       待确认提议（原子替换写入）
    """

    def __init__(self, root: str | Path | None = None):
        self._root = Path(root or settings.storage_root).resolve()
        self._conv_root = self._root / "conversations"
        self._conv_root.mkdir(parents=True, exist_ok=True)

    def _conv_dir(self, conversation_id: str) -> Path:
        cdir = self._conv_root / conversation_id
        cdir.mkdir(parents=True, exist_ok=True)
        return cdir

    def append_message(self, message: ConversationMessage) -> None:
        existing = self.list_messages(message.conversation_id)
        if existing and message.created_at <= existing[-1].created_at:
            raise StoreError(
                code="STORE_ORDER_VIOLATION",
                message="created_at must be strictly increasing within a conversation",
                message_id=message.id,
            )
        if message.reply_to_id is not None and message.reply_to_id not in {m.id for m in existing}:
            raise StoreError(
                code="STORE_REPLY_TO_INVALID",
                message=f"reply_to_id {message.reply_to_id} does not reference an earlier message",
                message_id=message.id,
            )
        msgs_path = self._conv_dir(message.conversation_id) / "messages.jsonl"
        try:
            payload = asdict(message)
            payload["created_at"] = _iso(message.created_at)
            line = json.dumps(payload, ensure_ascii=False)
            with msgs_path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        except Exception as e:
            raise StoreError(code="STORE_WRITE_ERROR", message=str(e))

    def get_message(self, conversation_id: str, message_id: str) -> ConversationMessage:
        for msg in self.list_messages(conversation_id):
            if msg.id == message_id:
                return msg
        raise StoreError(code="MESSAGE_NOT_FOUND", message=message_id, http_status=404)

    def list_messages(self, conversation_id: str) -> List[ConversationMessage]:
        msgs_path = self._conv_root / conversation_id / "messages.jsonl"
        items: List[ConversationMessage] = []
        if not msgs_path.exists():
            return items
        try:
            lines = msgs_path.read_text(encoding="utf-8").splitlines()
        except Exception as e:
            raise StoreError(code="STORE_READ_ERROR", message=str(e))
        for line in lines:
            if not line.strip():
                continue
            try:
                items.append(self._to_message(json.loads(line)))
            except (ValueError, KeyError) as e:
                raise StoreError(code="STORE_READ_ERROR", message=f"corrupt history line: {e}")
        items.sort(key=lambda m: m.created_at)
        return items

    def get_pending_proposal(self, conversation_id: str) -> Optional[PendingProposal]:
        state = self._read_state(conversation_id)
        data = state.get("pending_proposal")
        if not data:
            return None
        return PendingProposal(
            kind=data["kind"],
            payload=data.get("payload") or {},
            created_at=_parse_iso(data["created_at"]),
            expires_at=_parse_iso(data["expires_at"]),
        )

    def set_pending_proposal(self, conversation_id: str, proposal: PendingProposal) -> None:
        state = self._read_state(conversation_id)
        state["pending_proposal"] = {
            "kind": proposal.kind,
            "payload": proposal.payload,
            "created_at": _iso(proposal.created_at),
            "expires_at": _iso(proposal.expires_at),
        }
        self._write_state(conversation_id, state)

    def clear_pending_proposal(self, conversation_id: str) -> None:
        state = self._read_state(conversation_id)
        if state.pop("pending_proposal", None) is not None:
            self._write_state(conversation_id, state)

    def _read_state(self, conversation_id: str) -> Dict[str, Any]:
        state_path = self._conv_root / conversation_id / "state.json"
        if not state_path.exists():
            return {}
        try:
            return json.loads(state_path.read_text(encoding="utf-8"))
        except Exception as e:
            raise StoreError(code="STORE_READ_ERROR", message=str(e))

    def _write_state(self, conversation_id: str, state: Dict[str, Any]) -> None:
        cdir = self._conv_dir(conversation_id)
        state_path = cdir / "state.json"
        tmp_path = cdir / f"state.{uuid4().hex}.json.tmp"
        try:
            tmp_path.write_text(json.dumps(state, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, state_path)
        except Exception as e:
            raise StoreError(code="STORE_WRITE_ERROR", message=str(e))

    def _to_message(self, data: Dict[str, Any]) -> ConversationMessage:
        return ConversationMessage(
            id=data["id"],
            conversation_id=data["conversation_id"],
            sender=data["sender"],
            content=data.get("content") or "",
            created_at=_parse_iso(data["created_at"]),
            reply_to_id=data.get("reply_to_id"),
            meta=data.get("meta") or {},
        )
