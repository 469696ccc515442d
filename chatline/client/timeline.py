"""Client-side merge of optimistic sends with server-confirmed messages.

A client keeps one ``MessageTimeline`` per open conversation and feeds it the
events it receives. Messages are dicts shaped like the server's
``MessagePayload`` (camelCase keys).

Matching a confirmation to its optimistic entry prefers the ``clientMessageId``
the server echoes back; the (sender, identical text) first-match is only a
fallback for payloads without one, and is ambiguous when the same text is sent
twice in quick succession.
"""
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

TEMP_PREFIX = "temp-"


def is_temp_id(message_id: Any) -> bool:
    return str(message_id).startswith(TEMP_PREFIX)


def _created_key(message: Dict[str, Any]) -> datetime:
    value = message.get("createdAt")
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if not isinstance(value, datetime):
        return datetime.min.replace(tzinfo=timezone.utc)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


class MessageTimeline:

    def __init__(self, conversation_id: str, user_id: str, messages: Iterable[Dict[str, Any]] = ()) -> None:
        self.conversation_id = str(conversation_id)
        self.user_id = str(user_id)
        self._messages: List[Dict[str, Any]] = [dict(m) for m in messages]
        self._sort()

    @property
    def messages(self) -> List[Dict[str, Any]]:
        return list(self._messages)

    def ids(self) -> List[str]:
        return [str(m["id"]) for m in self._messages]

    def get(self, message_id: str) -> Optional[Dict[str, Any]]:
        index = self._index_of(message_id)
        return self._messages[index] if index is not None else None

    def add_optimistic(self, text: str, now: Optional[datetime] = None, **media: Any) -> Dict[str, Any]:
        """Render a send immediately. The returned entry's ``clientMessageId``
        should go out with the ``message:send`` request."""
        client_id = uuid.uuid4().hex
        temp = {
            "id": f"{TEMP_PREFIX}{client_id}",
            "conversationId": self.conversation_id,
            "senderId": self.user_id,
            "text": text,
            "delivered": False,
            "read": False,
            "createdAt": (now or datetime.now(timezone.utc)).isoformat(),
            "clientMessageId": client_id,
            **media,
        }
        self._messages.append(temp)
        self._sort()
        return temp

    def apply_new(self, message: Dict[str, Any]) -> bool:
        """Merge a ``message:new`` payload. Returns False if it belongs elsewhere."""
        if str(message.get("conversationId")) != self.conversation_id:
            return False
        index = self._index_of(message["id"])
        if index is not None:
            self._messages[index] = self._merge(self._messages[index], message)
        else:
            temp_index = self._find_temp(message)
            if temp_index is not None:
                self._messages[temp_index] = dict(message)
            else:
                self._messages.append(dict(message))
        self._sort()
        return True

    def apply_delivered(self, message_id: str, delivered_at: Any = None) -> bool:
        index = self._index_of(message_id)
        if index is None:
            return False
        current = self._messages[index]
        if not current.get("delivered"):
            current["delivered"] = True
            current["deliveredAt"] = delivered_at or current.get("deliveredAt")
        return True

    def apply_read(self, message_ids: Iterable[str], read_at: Any = None) -> int:
        updated = 0
        for message_id in message_ids:
            index = self._index_of(message_id)
            if index is None:
                continue
            current = self._messages[index]
            if not current.get("read"):
                current["read"] = True
                current["readAt"] = read_at or current.get("readAt")
                current["delivered"] = True
                updated += 1
        return updated

    def reject(self, temp_id: str) -> bool:
        """Drop an optimistic entry whose send the server rejected."""
        index = self._index_of(temp_id)
        if index is None or not is_temp_id(temp_id):
            return False
        del self._messages[index]
        return True

    def _find_temp(self, message: Dict[str, Any]) -> Optional[int]:
        client_id = message.get("clientMessageId")
        if client_id:
            for i, m in enumerate(self._messages):
                if is_temp_id(m["id"]) and m.get("clientMessageId") == client_id:
                    return i
        if str(message.get("senderId")) != self.user_id:
            return None
        for i, m in enumerate(self._messages):
            if (
                is_temp_id(m["id"])
                and str(m.get("senderId")) == self.user_id
                and m.get("text") == message.get("text")
            ):
                return i
        return None

    @staticmethod
    def _merge(current: Dict[str, Any], incoming: Dict[str, Any]) -> Dict[str, Any]:
        merged = {**current, **incoming}
        # status never regresses
        for flag, stamp in (("delivered", "deliveredAt"), ("read", "readAt")):
            if current.get(flag) and not incoming.get(flag):
                merged[flag] = True
                merged[stamp] = current.get(stamp)
        if merged.get("read"):
            merged["delivered"] = True
        return merged

    def _index_of(self, message_id: Any) -> Optional[int]:
        target = str(message_id)
        for i, m in enumerate(self._messages):
            if str(m["id"]) == target:
                return i
        return None

    def _sort(self) -> None:
        # list.sort is stable, so exact createdAt ties keep their current order
        self._messages.sort(key=_created_key)
