"""
Client-side reconciliation for content views.

- api: httpx client for the ingestion/reconciliation endpoints
- poller: bounded summary and title polling with re-classification
- chat: merging server chat history with optimistic local messages
- events: pub/sub bus scoped to one content view
"""

from app.client.api import ClientRequestError, LearnChatClient
from app.client.chat import ChatMergeResult, ChatMessage, merge_chat_history
from app.client.events import ContentEvents
from app.client.poller import ContentPoller, PollState, needs_title_polling

__all__ = [
    "ClientRequestError",
    "LearnChatClient",
    "ChatMergeResult",
    "ChatMessage",
    "merge_chat_history",
    "ContentEvents",
    "ContentPoller",
    "PollState",
    "needs_title_polling",
]
