"""
Merge persisted chat history with the messages a client already shows.

The server list is authoritative. Local messages still marked ``pending``
(sent optimistically, not yet confirmed) survive a server refresh when the
server does not have them yet.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


@dataclass
class ChatMessage:
    role: str
    content: str
    timestamp: Optional[datetime] = None
    references: List[Dict[str, Any]] = field(default_factory=list)
    pending: bool = False

    @property
    def key(self) -> Tuple[str, str]:
        return (self.role, self.content)

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "ChatMessage":
        timestamp = data.get("timestamp")
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
        return cls(
            role=data.get("role", ""),
            content=data.get("content", ""),
            timestamp=timestamp,
            references=data.get("references") or [],
        )


@dataclass
class ChatMergeResult:
    messages: List[ChatMessage]
    adopted_server: bool
    reason: str
    reappended: int = 0


def _with_pending(server: Sequence[ChatMessage], local: Sequence[ChatMessage]) -> Tuple[List[ChatMessage], int]:
    known = {message.key for message in server}
    merged = list(server)
    reappended = 0
    for message in local:
        if message.pending and message.key not in known:
            merged.append(message)
            known.add(message.key)
            reappended += 1
    return merged, reappended


def merge_chat_history(
    local: Sequence[ChatMessage],
    server: Sequence[ChatMessage],
    content_id: Optional[str] = None,
) -> ChatMergeResult:
    """
    Decide which list to show after fetching persisted history.

    - Server longer than local, or local empty: adopt server
    - Same length, different last message: adopt server
    - Same length, same last message: keep local
    - Server shorter: adopt server and log it, since confirmed messages
      should never disappear

    Whenever the server list is adopted, pending local messages it lacks are
    appended after it (matched on role and content).
    """
    if not server and not local:
        return ChatMergeResult(messages=[], adopted_server=False, reason="empty")

    if not local:
        return ChatMergeResult(messages=list(server), adopted_server=True, reason="local_empty")

    if len(server) == len(local) and server[-1].content == local[-1].content:
        return ChatMergeResult(messages=list(local), adopted_server=False, reason="unchanged")

    if len(server) > len(local):
        reason = "server_longer"
    elif len(server) == len(local):
        reason = "last_message_changed"
    else:
        confirmed = sum(1 for message in local if not message.pending)
        if len(server) < confirmed:
            logger.warning(
                f"Server returned {len(server)} chat messages for content {content_id}, "
                f"fewer than the {confirmed} confirmed locally"
            )
        reason = "server_shorter"

    messages, reappended = _with_pending(server, local)
    return ChatMergeResult(messages=messages, adopted_server=True, reason=reason, reappended=reappended)
