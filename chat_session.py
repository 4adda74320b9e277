"""
Chat session: one conversation with Flowbot.

Holds the board, the transcript and the highlight for a single user,
and feeds every message through ``workflow_engine.interpret``. Turns are
serialized so only one interpretation runs against a given board at a
time; the engine itself keeps no state between calls.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import Callable, Optional

import flowbot_config
from workflow_engine import interpret, new_id
from workflow_models import ChatMessage, InterpretResult, WorkflowState, utcnow

logger = logging.getLogger(__name__)


class ChatSession:
    """A conversation: board state, messages and highlight."""

    def __init__(
        self,
        state: WorkflowState | None = None,
        think_delay: float | None = None,
        highlight_ttl: float | None = None,
        history_limit: int | None = None,
        message_limit: int | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.session_id = new_id()
        self.created_at = utcnow()
        self.state = state if state is not None else WorkflowState()
        self.think_delay = flowbot_config.THINK_DELAY if think_delay is None else think_delay
        self.highlight_ttl = flowbot_config.HIGHLIGHT_TTL if highlight_ttl is None else highlight_ttl
        if history_limit is None:
            history_limit = flowbot_config.HISTORY_LIMIT
        if message_limit is None:
            message_limit = flowbot_config.MESSAGE_LIMIT
        # Oldest entries fall off once a limit is reached
        self.messages: deque[ChatMessage] = deque(maxlen=message_limit)
        self.messages.append(self._message("system", flowbot_config.GREETING))
        self.history: deque[WorkflowState] = deque([self.state], maxlen=history_limit)
        self.turns = 0
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._highlight_id: Optional[str] = None
        self._highlight_expires = 0.0

    @staticmethod
    def _message(role: str, content: str) -> ChatMessage:
        return ChatMessage(id=new_id(), role=role, content=content, timestamp=utcnow())

    @property
    def suggestions(self) -> list[str]:
        return list(flowbot_config.SUGGESTIONS)

    @property
    def highlighted_id(self) -> Optional[str]:
        """The workflow to emphasize: last turn's target until it expires, then the selection."""
        if self._highlight_id and self._clock() < self._highlight_expires:
            return self._highlight_id
        return self.state.selected_workflow_id

    def send(self, text: str) -> Optional[InterpretResult]:
        """
        Run one chat turn.

        Blank input is ignored and returns None. Otherwise the user
        message and the reply are appended to the transcript, the board
        is replaced by the next state and the highlight is refreshed.
        """
        trimmed = (text or "").strip()
        if not trimmed:
            return None

        with self._lock:
            self.turns += 1
            self.messages.append(self._message("user", trimmed))
            if self.think_delay > 0:
                self._sleep(self.think_delay)

            result = interpret(self.state, trimmed)

            self.messages.append(self._message("assistant", result.reply))
            if result.state is not self.state:
                self.history.append(result.state)
            self.state = result.state
            self._highlight_id = result.highlighted_id
            self._highlight_expires = self._clock() + self.highlight_ttl

        logger.info(f"[{self.session_id[:8]}] {trimmed!r} -> {result.intent}")
        return result

    def clear_highlight(self) -> None:
        self._highlight_id = None
        self._highlight_expires = 0.0

    def summary(self) -> dict:
        return {
            "session_id": self.session_id,
            "created_at": self.created_at.isoformat(),
            "last_prompt": next(
                (m.content for m in reversed(self.messages) if m.role == "user"), ""
            ),
            "turns": self.turns,
            "workflows": len(self.state.workflows),
        }
