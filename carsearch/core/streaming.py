import asyncio
import json
import logging
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from carsearch.core.errors import SessionAlreadyActive

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    DELTA_TEXT = "delta-text"
    CRITERIA_UPDATED = "criteria-updated"
    SEARCH_RESULTS = "search-results"
    TITLE_UPDATED = "title-updated"
    DONE = "done"
    ERROR = "error"


TERMINAL_EVENTS = {EventType.DONE, EventType.ERROR}


class StreamEvent(BaseModel):
    seq: int
    type: EventType
    data: Dict[str, Any] = Field(default_factory=dict)

    @property
    def terminal(self) -> bool:
        return self.type in TERMINAL_EVENTS

    def to_sse(self) -> str:
        payload = json.dumps(dict(self.data, seq=self.seq), default=str)
        return f"event: {self.type.value}\ndata: {payload}\n\n"


class StreamClosedError(RuntimeError):
    """Raised when something tries to emit after 'done' or 'error'."""


class StreamOrderError(RuntimeError):
    """Raised when search results would arrive after text that may reference them."""


class TurnStream:
    """
    The event channel of ONE turn.

    Producer: the turn orchestrator, via emit().
    Consumer: the HTTP response, via events().
    The queue is bounded, so a slow client slows the producer down.
    """

    def __init__(self, chat_id: UUID, max_pending: int = 64, on_close: Optional[Callable[[], None]] = None):
        self.chat_id = chat_id
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_pending)
        self._seq = 0
        self._closed = False
        self._cancelled = False
        self._text_started = False
        self._task: Optional[asyncio.Task] = None
        self._on_close = on_close

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def attach(self, task: asyncio.Task):
        """Registers the task producing this stream so cancel() can stop it."""
        self._task = task

    async def emit(self, event_type: EventType, data: Optional[Dict[str, Any]] = None) -> StreamEvent:
        if self._closed:
            raise StreamClosedError(f"Stream for chat {self.chat_id} already terminated")
        if event_type == EventType.SEARCH_RESULTS and self._text_started:
            raise StreamOrderError("search-results must precede any delta-text")
        if event_type == EventType.DELTA_TEXT:
            self._text_started = True

        self._seq += 1
        event = StreamEvent(seq=self._seq, type=event_type, data=data or {})
        if event.terminal:
            self._closed = True
            # Free the chat slot before delivery: a client that saw "done" may send right away
            if self._on_close is not None:
                self._on_close()

        # Nobody is listening any more: keep the bookkeeping, drop the event
        if self._cancelled:
            return event

        await self._queue.put(event)
        return event

    async def events(self) -> AsyncIterator[StreamEvent]:
        while True:
            event = await self._queue.get()
            yield event
            if event.terminal:
                return

    def cancel(self):
        """Client went away. Stops the producing task at its current await."""
        if self._closed or self._cancelled:
            return
        self._cancelled = True
        logger.info(f"🛑 Client disconnected from chat {self.chat_id}, cancelling turn")
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def abandon(self):
        """The producer was cancelled from outside: later events are dropped instead of queued."""
        self._cancelled = True


class SessionRegistry:
    """
    At most one open stream per chat. A second turn is rejected, not queued.
    Check-and-set runs without an await in between, so it is atomic on the event loop.
    """

    def __init__(self, max_pending: int = 64):
        self.max_pending = max_pending
        self._active: Dict[UUID, TurnStream] = {}

    def is_active(self, chat_id: UUID) -> bool:
        return chat_id in self._active

    def open(self, chat_id: UUID) -> TurnStream:
        if chat_id in self._active:
            raise SessionAlreadyActive(f"A reply is already streaming for chat {chat_id}")
        stream = TurnStream(chat_id, max_pending=self.max_pending)
        stream._on_close = lambda: self.release(chat_id, stream)
        self._active[chat_id] = stream
        return stream

    def release(self, chat_id: UUID, stream: TurnStream):
        # Only the owner may release its slot
        if self._active.get(chat_id) is stream:
            del self._active[chat_id]
