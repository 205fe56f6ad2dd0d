"""
Conversation Memory Module

Keeps the chat history and token usage of a conversation between turns.

Design:
- History is a bounded queue; once it grows past ``max_history_length``
  messages the oldest user/assistant pair is evicted
- Each session owns its own state, so several conversations can run
  side by side in one process
- An asyncio.Lock per session lets callers serialize turns on a session
- Sessions idle for longer than ``max_age_hours`` can be swept away

Usage:
    session = ChatSession(max_history_length=30)
    messages, history = build_chat_messages(
        session.history, query, context, system_prompt, prior_answer
    )
    ...
    session.update(history + [ChatItem("assistant", answer)], usage)
"""

import asyncio
import hashlib
import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Deque, Dict, Iterable, List, Optional, Tuple

from nx_docs_ai.prompts import build_user_turn

logger = logging.getLogger(__name__)

ROLES = ("system", "user", "assistant")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ChatItem:
    """
    Represents a single message in the conversation.

    Attributes:
        role: "system", "user" or "assistant"
        content: The message text
        timestamp: When the message was created
    """

    role: str
    content: str
    timestamp: datetime = field(default_factory=_utcnow)

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValueError(f"Unknown chat role: {self.role}")

    def to_dict(self) -> Dict[str, str]:
        """Chat-completions message shape."""
        return {"role": self.role, "content": self.content}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatItem":
        """Create from dictionary."""
        timestamp = data.get("timestamp")
        return cls(
            role=data["role"],
            content=data["content"],
            timestamp=datetime.fromisoformat(timestamp) if timestamp else _utcnow(),
        )

    def __str__(self) -> str:
        return f"{self.role}: {self.content}"


def trim_history(items: Iterable[ChatItem], max_length: int) -> Deque[ChatItem]:
    """
    Evict the oldest messages until at most ``max_length`` remain.

    Eviction works on user/assistant pairs: when a user message is dropped the
    assistant reply that follows it goes too.
    """
    history: Deque[ChatItem] = deque(items)
    while len(history) > max_length:
        history.popleft()
        if history and history[0].role == "assistant":
            history.popleft()
    return history


def build_chat_messages(
    history: List[ChatItem],
    query: str,
    context: str,
    system_prompt: str,
    prior_answer: Optional[str] = None,
    max_history_length: int = 30,
) -> Tuple[List[Dict[str, str]], List[ChatItem]]:
    """
    Build the message list for a completion request.

    Order: system prompt, prior history (capped), the previous assistant
    answer when the caller supplies one the history does not already end
    with, then the user turn augmented with the documentation context.

    Args:
        history: Current conversation history
        query: The user's query
        context: Assembled documentation context
        system_prompt: System instructions
        prior_answer: Previous assistant answer supplied by the caller
        max_history_length: History cap

    Returns:
        (messages to send, history to persist once the turn completes).
        The persisted history holds the plain query, not the augmented turn.
    """
    capped = list(trim_history(history, max_history_length))

    messages = [{"role": "system", "content": system_prompt}]
    messages.extend(item.to_dict() for item in capped)

    if prior_answer:
        last = capped[-1] if capped else None
        if last is None or last.role != "assistant" or last.content != prior_answer:
            messages.append({"role": "assistant", "content": prior_answer})

    messages.append({"role": "user", "content": build_user_turn(query, context)})

    return messages, capped + [ChatItem(role="user", content=query)]


class ChatSession:
    """
    History and token accounting for one conversation.

    Example:
        session = ChatSession()
        session.update([ChatItem("user", "hi"), ChatItem("assistant", "hello")],
                       {"total_tokens": 42})
        session.total_tokens  # 42
        session.reset()
    """

    def __init__(
        self,
        max_history_length: int = 30,
        session_id: Optional[str] = None,
    ):
        """
        Initialize a chat session.

        Args:
            max_history_length: Maximum number of messages kept
            session_id: Unique ID for this session
        """
        if max_history_length < 2:
            raise ValueError("max_history_length must allow at least one exchange")

        self.max_history_length = max_history_length
        self.session_id = session_id or self._generate_id()
        self.total_tokens = 0
        self.last_activity = _utcnow()

        self._history: Deque[ChatItem] = deque()
        self.lock = asyncio.Lock()

        logger.debug(f"ChatSession created: id={self.session_id}")

    def _generate_id(self) -> str:
        """Generate a unique session ID."""
        timestamp = _utcnow().isoformat()
        return hashlib.md5(timestamp.encode()).hexdigest()[:12]

    @property
    def history(self) -> List[ChatItem]:
        """Current history, oldest first (a copy)."""
        return list(self._history)

    def update(
        self,
        history: Iterable[ChatItem],
        usage: Optional[Dict[str, int]] = None,
    ) -> None:
        """
        Replace the history and add a completion's token usage.

        Args:
            history: New history (capped on the way in)
            usage: Completion usage with a ``total_tokens`` entry
        """
        self._history = trim_history(history, self.max_history_length)
        self.total_tokens += (usage or {}).get("total_tokens") or 0
        self.last_activity = _utcnow()

    def reset(self) -> None:
        """Clear history and zero the token counter."""
        self._history.clear()
        self.total_tokens = 0
        self.last_activity = _utcnow()
        logger.debug(f"Reset session {self.session_id}")

    def __len__(self) -> int:
        """Return number of messages."""
        return len(self._history)


class SessionManager:
    """
    Manages multiple chat sessions (for multi-user scenarios).

    Example:
        manager = SessionManager()
        session = manager.get_session("user_123")

        # Clean up idle sessions
        manager.cleanup_idle_sessions(max_age_hours=24)
    """

    DEFAULT_SESSION_ID = "default"

    def __init__(self, max_history_length: int = 30):
        """
        Initialize session manager.

        Args:
            max_history_length: History cap for new sessions
        """
        self._sessions: Dict[str, ChatSession] = {}
        self._lock = threading.Lock()
        self.max_history_length = max_history_length

        logger.info("SessionManager initialized")

    def get_session(
        self,
        session_id: Optional[str] = None,
        create_if_missing: bool = True,
    ) -> Optional[ChatSession]:
        """
        Get the session for an ID.

        Args:
            session_id: Unique ID (default session when omitted)
            create_if_missing: Create new session if not found

        Returns:
            ChatSession instance or None
        """
        session_id = session_id or self.DEFAULT_SESSION_ID
        with self._lock:
            if session_id not in self._sessions:
                if not create_if_missing:
                    return None
                self._sessions[session_id] = ChatSession(
                    max_history_length=self.max_history_length,
                    session_id=session_id,
                )
                logger.debug(f"Created new session {session_id}")

            return self._sessions[session_id]

    def delete_session(self, session_id: str) -> bool:
        """
        Delete a session.

        Returns:
            True if deleted, False if not found
        """
        with self._lock:
            if session_id in self._sessions:
                del self._sessions[session_id]
                logger.debug(f"Deleted session {session_id}")
                return True
            return False

    def cleanup_idle_sessions(self, max_age_hours: float = 24) -> int:
        """
        Remove sessions with no recent activity.

        Args:
            max_age_hours: Max hours since the last completed turn or reset

        Returns:
            Number of sessions removed
        """
        cutoff = _utcnow() - timedelta(hours=max_age_hours)

        with self._lock:
            stale = [
                sid for sid, s in self._sessions.items()
                if s.last_activity < cutoff and not s.lock.locked()
            ]
            for sid in stale:
                del self._sessions[sid]

        if stale:
            logger.info(f"Cleaned up {len(stale)} idle sessions")

        return len(stale)

    def __len__(self) -> int:
        """Return number of active sessions."""
        return len(self._sessions)
