from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field

from botrelay.api.models import ChatMessage, PlayerRecord, StatusPayload, VitalsSnapshot

MAX_MESSAGES = 100


@dataclass(slots=True)
class RelayStore:
    """Latest value of every entity viewers can see.

    Lives as long as the process; sessions reset it, never replace it.
    """

    status: StatusPayload = field(default_factory=StatusPayload)
    chat: deque[ChatMessage] = field(default_factory=lambda: deque(maxlen=MAX_MESSAGES))
    roster: list[PlayerRecord] = field(default_factory=list)
    vitals: VitalsSnapshot = field(default_factory=VitalsSnapshot.empty)

    def append_chat(self, message: ChatMessage) -> None:
        self.chat.append(message)

    def chat_history(self) -> list[ChatMessage]:
        return list(self.chat)

    def reset_telemetry(self) -> None:
        self.roster = []
        self.vitals = VitalsSnapshot.empty()
