"""Per-session conversation history for follow-up questions."""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

RECENT_TURNS_IN_CONTEXT = 5
ASSISTANT_EXCERPT_CHARS = 300


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversationTurn(BaseModel):
    """One user question and the answer it received."""

    id: str = Field(default_factory=lambda: f"turn-{uuid.uuid4().hex[:12]}")
    timestamp: datetime = Field(default_factory=_utcnow)
    user_message: str
    assistant_message: str
    tool_results: Optional[Dict[str, Any]] = None
    analysis: Optional[Dict[str, Any]] = None


class ConversationContext(BaseModel):
    session_id: str
    turns: List[ConversationTurn] = Field(default_factory=list)
    last_updated: datetime = Field(default_factory=_utcnow)


class ConversationContextManager:
    """In-memory conversation store keyed by session id."""

    def __init__(
        self,
        max_turns: int = 10,
        max_context_length: int = 8000,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.max_turns = max_turns
        self.max_context_length = max_context_length
        self._clock = clock
        self._contexts: Dict[str, ConversationContext] = {}

    def get_context(self, session_id: str) -> ConversationContext:
        if session_id not in self._contexts:
            self._contexts[session_id] = ConversationContext(session_id=session_id, last_updated=self._clock())
        return self._contexts[session_id]

    def add_turn(
        self,
        session_id: str,
        user_message: str,
        assistant_message: str,
        tool_results: Optional[Dict[str, Any]] = None,
        analysis: Optional[Dict[str, Any]] = None,
    ) -> ConversationTurn:
        context = self.get_context(session_id)
        turn = ConversationTurn(
            timestamp=self._clock(),
            user_message=user_message,
            assistant_message=assistant_message,
            tool_results=tool_results,
            analysis=analysis,
        )
        context.turns.append(turn)
        context.last_updated = turn.timestamp
        if len(context.turns) > self.max_turns:
            del context.turns[: len(context.turns) - self.max_turns]

        logger.debug("Conversation turn added", extra={"session_id": session_id, "turns": len(context.turns)})
        return turn

    def get_formatted_context(self, session_id: str, current_query: Optional[str] = None) -> Optional[str]:
        """Recent turns as markdown, or None for a session with no history.

        Oldest turns are dropped until the text fits ``max_context_length``.
        """
        context = self._contexts.get(session_id)
        if context is None or not context.turns:
            return None

        blocks = [self._format_turn(turn) for turn in context.turns[-RECENT_TURNS_IN_CONTEXT:]]
        footer = f"### Current Query\n{current_query}\n" if current_query else ""
        while blocks:
            text = "## Conversation History\n\n" + "".join(blocks) + footer
            if len(text) <= self.max_context_length:
                return text
            blocks.pop(0)
        return None

    @staticmethod
    def _format_turn(turn: ConversationTurn) -> str:
        answer = turn.assistant_message
        if len(answer) > ASSISTANT_EXCERPT_CHARS:
            answer = answer[:ASSISTANT_EXCERPT_CHARS] + "..."
        return (
            f"### {turn.timestamp.strftime('%H:%M:%S')}\n"
            f"**User:** {turn.user_message}\n"
            f"**Assistant:** {answer}\n\n"
        )

    def clear(self, session_id: str) -> None:
        self._contexts.pop(session_id, None)

    def cleanup(self, max_age_hours: float = 24) -> int:
        """Drop sessions idle for longer than ``max_age_hours``. Returns how many."""
        cutoff = self._clock() - timedelta(hours=max_age_hours)
        stale = [session_id for session_id, context in self._contexts.items() if context.last_updated < cutoff]
        for session_id in stale:
            del self._contexts[session_id]
        if stale:
            logger.info("Cleaned up idle conversations", extra={"removed": len(stale)})
        return len(stale)

    def stats(self) -> Dict[str, float]:
        total_turns = sum(len(context.turns) for context in self._contexts.values())
        active = len(self._contexts)
        return {
            "active_contexts": active,
            "total_turns": total_turns,
            "avg_turns_per_context": total_turns / active if active else 0.0,
        }
