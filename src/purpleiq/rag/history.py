"""Per-project conversation history.

Each project keeps a ring buffer of its most recent turns (oldest dropped
first). The number of tracked projects is capped as well; the least
recently used project's history is evicted when the cap is exceeded.
"""

from __future__ import annotations

import re
import time
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from datetime import datetime

_FEATURE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"(?:for|of|on|about)\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)"),
    re.compile(r"(?:module|feature|functionality)\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)", re.I),
    re.compile(r"([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)\s+(?:test|testing|cases|plan|automation)", re.I),
)
_MAX_FEATURES = 10
_USER_PREVIEW_CHARS = 200


@dataclass(frozen=True)
class ConversationTurn:
    user_message: str
    assistant_response: str
    intent: str | None = None
    workflow: str | None = None
    documents_used: tuple[str, ...] = ()
    timestamp: float = field(default_factory=time.time)

    @property
    def task_type(self) -> str:
        return self.workflow or self.intent or "General"


class ConversationHistory:
    """Bounded, per-project conversation memory.

    Args:
        max_turns: Turns retained per project.
        max_projects: Projects retained before LRU eviction.
    """

    def __init__(self, max_turns: int = 50, max_projects: int = 1_000) -> None:
        if max_turns < 1 or max_projects < 1:
            raise ValueError("max_turns and max_projects must be >= 1")
        self._max_turns = max_turns
        self._max_projects = max_projects
        self._projects: OrderedDict[str, deque[ConversationTurn]] = OrderedDict()

    def append(self, project_id: str, turn: ConversationTurn) -> None:
        turns = self._projects.get(project_id)
        if turns is None:
            turns = deque(maxlen=self._max_turns)
            self._projects[project_id] = turns
        self._projects.move_to_end(project_id)
        turns.append(turn)
        while len(self._projects) > self._max_projects:
            self._projects.popitem(last=False)

    def recent(self, project_id: str, n: int = 5) -> list[ConversationTurn]:
        """Last *n* turns, oldest first."""
        turns = self._projects.get(project_id)
        if not turns or n <= 0:
            return []
        return list(turns)[-n:]

    def clear(self, project_id: str) -> bool:
        return self._projects.pop(project_id, None) is not None

    def __len__(self) -> int:
        return len(self._projects)

    def turn_count(self, project_id: str) -> int:
        return len(self._projects.get(project_id, ()))

    def documents_used(self, project_id: str) -> list[str]:
        """Unique document names referenced by any turn, in first-seen order."""
        seen: dict[str, None] = {}
        for turn in self._projects.get(project_id, ()):
            for doc in turn.documents_used:
                seen.setdefault(doc, None)
        return list(seen)

    def discussed_features(self, project_id: str) -> list[str]:
        """Capitalised feature/module names mentioned in past turns (at most 10)."""
        found: dict[str, None] = {}
        for turn in self._projects.get(project_id, ()):
            text = f"{turn.user_message} {turn.assistant_response}"
            for pattern in _FEATURE_PATTERNS:
                for m in pattern.finditer(text):
                    name = m.group(1)
                    if len(name) > 2:
                        found.setdefault(name, None)
        return list(found)[:_MAX_FEATURES]

    def build_context(self, project_id: str, turns: int = 3) -> str:
        """Render recent turns as a prompt section; empty string without history."""
        recent = self.recent(project_id, turns)
        if not recent:
            return ""

        lines = [
            "=== PREVIOUS CONVERSATION CONTEXT ===",
            f"You have had {len(recent)} previous interaction(s) with this user in this project:",
            "",
        ]
        for i, turn in enumerate(recent, 1):
            user = turn.user_message
            if len(user) > _USER_PREVIEW_CHARS:
                user = user[:_USER_PREVIEW_CHARS] + "..."
            stamp = datetime.fromtimestamp(turn.timestamp).strftime("%Y-%m-%d %H:%M")
            lines.append(f"Turn {i} ({stamp}):")
            lines.append(f"User: {user}")
            lines.append(f"Task: {turn.task_type}")
            if turn.documents_used:
                lines.append(f"Documents used: {', '.join(turn.documents_used)}")
            lines.append("")

        features = self.discussed_features(project_id)
        if features:
            lines.append(f"Previously discussed features/modules: {', '.join(features)}")
        documents = self.documents_used(project_id)
        if documents:
            lines.append(f"Documents you've already analyzed: {', '.join(documents)}")

        lines.append("")
        lines.append("Use this context to keep responses consistent with earlier discussion.")
        lines.append("=== END CONVERSATION CONTEXT ===")
        return "\n".join(lines)
