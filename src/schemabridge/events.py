"""Stream events: the vocabulary every transport hands to the UI.

Types:
    - "user": Echo of the message the user sent
    - "assistant": A complete block of assistant text
    - "assistant_delta": An incremental fragment of assistant text
    - "result": Terminal event (stop reason, optional cost/turn counters)
    - "error": Any failure, flattened to a single message
"""

import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

USER = "user"
ASSISTANT = "assistant"
ASSISTANT_DELTA = "assistant_delta"
RESULT = "result"
ERROR = "error"

EVENT_TYPES = frozenset({USER, ASSISTANT, ASSISTANT_DELTA, RESULT, ERROR})


@dataclass
class StreamEvent:
    """Normalized unit of agent output."""

    type: str
    content: Any = ""
    metadata: dict = field(default_factory=dict)

    @classmethod
    def user(cls, text: str) -> "StreamEvent":
        return cls(type=USER, content=text)

    @classmethod
    def assistant(cls, text: str) -> "StreamEvent":
        return cls(type=ASSISTANT, content=text)

    @classmethod
    def delta(cls, text: str) -> "StreamEvent":
        return cls(type=ASSISTANT_DELTA, content=text)

    @classmethod
    def result(
        cls,
        stop_reason: str | None = None,
        *,
        cost: float | None = None,
        turns: int | None = None,
    ) -> "StreamEvent":
        metadata: dict[str, Any] = {"stop_reason": stop_reason}
        if cost is not None:
            metadata["cost"] = cost
        if turns is not None:
            metadata["turns"] = turns
        return cls(type=RESULT, content="", metadata=metadata)

    @classmethod
    def error(cls, message: str) -> "StreamEvent":
        return cls(type=ERROR, content=message)

    @property
    def stop_reason(self) -> str | None:
        return self.metadata.get("stop_reason")

    def to_dict(self) -> dict[str, Any]:
        """Wire shape sent to browsers and SSE clients."""
        if self.type == RESULT:
            data: dict[str, Any] = {"type": RESULT}
            for key in ("stop_reason", "cost", "turns"):
                if self.metadata.get(key) is not None:
                    data[key] = self.metadata[key]
            return data
        return {"type": self.type, "content": self.content}


# A sink may be a plain callable or a coroutine function.
EventSink = Callable[[StreamEvent], Awaitable[None] | None]


async def deliver(sink: EventSink | None, event: StreamEvent) -> None:
    """Hand *event* to *sink*, awaiting it when the sink is async."""
    if sink is None:
        return
    outcome = sink(event)
    if inspect.isawaitable(outcome):
        await outcome
