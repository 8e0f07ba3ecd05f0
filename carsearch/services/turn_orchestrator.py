from typing import List, Optional, Set
from uuid import UUID
import asyncio
import logging

from sqlalchemy.exc import SQLAlchemyError

from carsearch.core.errors import (
    CarSearchError,
    ChatNotFound,
    CompositionFailure,
    ConcurrentMergeConflict,
    ErrorKind,
    TurnCancelled,
)
from carsearch.core.state import Turn, TurnPhase
from carsearch.core.streaming import EventType, SessionRegistry, TurnStream
from carsearch.graphs.turn_graph import build_turn_graph
from carsearch.schemas.criteria import ConversationIntent, ExtractionResult
from carsearch.schemas.enums import MessageRole
from carsearch.services.chat_title import make_title
from carsearch.services.criteria_merge import changed_fields, intent_diff, merge, record_readiness
from carsearch.services.readiness import ReadinessOptions
from carsearch.services.reply_composer import ReplyPayload

logger = logging.getLogger(__name__)


class TurnOrchestrator:
    """
    Runs one user message through:
    extraction -> merge -> readiness -> (search) -> composition -> commit,
    pushing events into the chat's TurnStream as it goes.

    Steps up to the search run as a LangGraph graph; composition and the
    commit stay here because they talk to the stream directly.
    """

    def __init__(
        self,
        store,
        extractor,
        composer,
        inventory,
        registry: Optional[SessionRegistry] = None,
        readiness_options: Optional[ReadinessOptions] = None,
        result_cap: int = 5,
        extraction_timeout: float = 8.0,
        extraction_backoff: float = 0.5,
        search_timeout: float = 5.0,
        compose_timeout: float = 45.0,
    ):
        self.store = store
        self.extractor = extractor
        self.composer = composer
        self.inventory = inventory
        self.registry = registry or SessionRegistry()
        self.readiness_options = readiness_options or ReadinessOptions()
        self.result_cap = result_cap
        self.extraction_timeout = extraction_timeout
        self.extraction_backoff = extraction_backoff
        self.search_timeout = search_timeout
        self.compose_timeout = compose_timeout

        self.graph = build_turn_graph()
        # The event loop only keeps weak references to tasks
        self._tasks: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, settings, store, extractor, composer, inventory):
        return cls(
            store=store,
            extractor=extractor,
            composer=composer,
            inventory=inventory,
            registry=SessionRegistry(max_pending=settings.STREAM_MAX_PENDING_EVENTS),
            readiness_options=settings.readiness_options,
            result_cap=settings.SEARCH_RESULT_CAP,
            extraction_timeout=settings.EXTRACTION_TIMEOUT_SECONDS,
            extraction_backoff=settings.EXTRACTION_RETRY_BACKOFF_SECONDS,
            search_timeout=settings.SEARCH_TIMEOUT_SECONDS,
            compose_timeout=settings.COMPOSE_TIMEOUT_SECONDS,
        )

    # ==========================================================================
    # ENTRY POINT
    # ==========================================================================
    async def start_turn(self, chat_id: UUID, user_text: str) -> TurnStream:
        """
        Admits the turn and starts it in the background.
        Raises ChatNotFound or SessionAlreadyActive before anything is written.
        """
        chat = await self.store.get_chat(chat_id)
        if not chat:
            raise ChatNotFound(chat_id)

        stream = self.registry.open(chat_id)
        try:
            user_message_id = await self.store.log_message(chat_id, MessageRole.USER, user_text)
        except BaseException:
            self.registry.release(chat_id, stream)
            raise

        task = asyncio.create_task(
            self._run_turn(stream, user_text, user_message_id, had_title=bool(chat["title"]))
        )
        stream.attach(task)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        # A task cancelled before its first step never reaches _run_turn's finally
        task.add_done_callback(lambda _: self.registry.release(chat_id, stream))
        return stream

    async def shutdown(self):
        """Cancels in-flight turns (server stopping)."""
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    # ==========================================================================
    # ONE TURN
    # ==========================================================================
    async def _run_turn(self, stream: TurnStream, user_text: str, user_message_id: UUID, had_title: bool):
        chat_id = stream.chat_id
        turn: Optional[Turn] = None
        base: Optional[ConversationIntent] = None
        merged: Optional[ConversationIntent] = None
        extraction: Optional[ExtractionResult] = None
        searched = False
        committed: Optional[ConversationIntent] = None
        text_parts: List[str] = []

        try:
            intent = await self.store.load_intent(chat_id)
            turn = Turn(chat_id=chat_id, user_message_id=user_message_id, base_version=intent.version)
            logger.info(f"▶️ Turn {turn.turn_id} started for chat {chat_id} at intent v{intent.version}")

            # --- 1. EXTRACT / MERGE / READINESS / SEARCH ---
            final = {"chat_id": chat_id, "user_text": user_text, "intent": intent}
            async for update in self.graph.astream(final.copy(), config=self._graph_config(), stream_mode="updates"):
                for node, values in update.items():
                    values = values or {}
                    final.update(values)
                    turn.phase = values.get("phase", turn.phase)

                    if node == "merge":
                        merged = values["merged"]
                    elif node == "search":
                        result = values["search_result"]
                        spec = values["search_spec"]
                        searched = True
                        await stream.emit(EventType.SEARCH_RESULTS, {
                            "total_count": result.total_count,
                            "items": [car.model_dump(mode="json") for car in result.items],
                            "sort": spec.sort.value,
                            "limit": spec.limit,
                        })

            base = final["intent"]
            extraction = final["extraction"]

            # --- 2. COMPOSE ---
            turn.phase = TurnPhase.COMPOSING_REPLY
            payload = ReplyPayload(
                intent_diff=intent_diff(base.criteria, merged.criteria),
                missing_fields=final.get("missing_fields", []),
                search=final.get("search_result"),
                no_matches=final.get("no_matches", False),
                forced=searched and final.get("force_search", False),
            )
            await self._compose(stream, payload, text_parts)

            # --- 3. COMMIT & FINISH ---
            turn.phase = TurnPhase.EMITTING
            title = None if had_title else make_title(merged.criteria, user_text)
            committed, message_id, committed_on = await self._commit(
                base, merged, extraction, searched, "".join(text_parts), False, title
            )
            turn.assistant_message_id = message_id

            # Reported only once stored; failed turns never show an unsaved version
            changed = changed_fields(committed_on.criteria, committed.criteria)
            if changed:
                await stream.emit(EventType.CRITERIA_UPDATED, {
                    "version": committed.version,
                    "criteria": committed.criteria.set_fields(),
                    "changed": changed,
                    "ready": final["ready"],
                })
            if title:
                await stream.emit(EventType.TITLE_UPDATED, {"title": title})
            await stream.emit(EventType.DONE, {
                "message_id": str(message_id),
                "intent_version": committed.version,
                "truncated": False,
            })
            turn.phase = TurnPhase.COMPLETED
            logger.info(f"✅ Turn {turn.turn_id} completed, chat {chat_id} now at v{committed.version}")

        except asyncio.CancelledError:
            # Client gone or server stopping: nobody drains the queue any more
            stream.abandon()
            if turn:
                turn.phase = TurnPhase.FAILED
                turn.truncated = committed is None
            if committed is None:
                await self._save_truncated(chat_id, base, merged, extraction, searched, text_parts)
            if not stream.closed:
                # Dropped, but it still closes the stream and frees the chat slot
                await stream.emit(EventType.ERROR, TurnCancelled("Client disconnected").to_payload())
            raise

        except CarSearchError as e:
            if turn:
                turn.phase = TurnPhase.FAILED
            logger.warning(f"❌ Turn failed for chat {chat_id}: {e.kind.value} {e.message}")
            if isinstance(e, CompositionFailure) and text_parts:
                # Keep what the user already saw, but the intent stays where it was
                await self._log_partial(chat_id, "".join(text_parts))
            await self._emit_error(stream, e.to_payload())

        except Exception as e:
            if turn:
                turn.phase = TurnPhase.FAILED
            logger.exception(f"Unexpected error in turn for chat {chat_id}: {e}")
            await self._emit_error(stream, {
                "kind": ErrorKind.INTERNAL_ERROR.value,
                "message": "Something went wrong while answering",
                "retryable": True,
            })

        finally:
            self.registry.release(chat_id, stream)

    def _graph_config(self) -> dict:
        return {
            "configurable": {
                "extractor": self.extractor,
                "store": self.store,
                "inventory": self.inventory,
                "readiness_options": self.readiness_options,
                "result_cap": self.result_cap,
                "extraction_timeout": self.extraction_timeout,
                "extraction_backoff": self.extraction_backoff,
                "search_timeout": self.search_timeout,
            }
        }

    async def _compose(self, stream: TurnStream, payload: ReplyPayload, text_parts: List[str]):
        """Streams composer output as delta-text under one overall deadline."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.compose_timeout
        fragments = self.composer.compose(payload)
        try:
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise CompositionFailure(f"Reply not finished within {self.compose_timeout}s")
                try:
                    fragment = await asyncio.wait_for(fragments.__anext__(), timeout=remaining)
                except StopAsyncIteration:
                    break
                except asyncio.TimeoutError as e:
                    raise CompositionFailure(f"Reply not finished within {self.compose_timeout}s") from e
                if not fragment:
                    continue
                text_parts.append(fragment)
                await stream.emit(EventType.DELTA_TEXT, {"text": fragment})
        finally:
            await fragments.aclose()

    async def _commit(self, base, merged, extraction, searched, content, truncated, title):
        """
        Compare-and-swap from `base.version`. On conflict, rebase the same
        extraction on the fresh intent and try once more.
        Returns (committed intent, assistant message id, intent it was committed on top of).
        """
        intent = record_readiness(merged, searched)
        try:
            message_id = await self.store.commit_turn(intent, base.version, content, truncated=truncated, title=title)
            return intent, message_id, base
        except ConcurrentMergeConflict:
            logger.warning(f"🔁 Commit conflict on chat {base.chat_id}, rebasing once")

        fresh = await self.store.load_intent(base.chat_id)
        intent = record_readiness(merge(fresh, extraction), searched)
        message_id = await self.store.commit_turn(intent, fresh.version, content, truncated=truncated, title=title)
        return intent, message_id, fresh

    async def _save_truncated(self, chat_id, base, merged, extraction, searched, text_parts):
        """Disconnect mid-reply: persist what was generated, marked truncated."""
        if not text_parts:
            return
        content = "".join(text_parts)
        try:
            if merged is not None and base is not None and extraction is not None:
                await self._commit(base, merged, extraction, searched, content, True, None)
            else:
                await self.store.log_message(chat_id, MessageRole.ASSISTANT, content, truncated=True)
            logger.info(f"✂️ Saved truncated reply for chat {chat_id} ({len(content)} chars)")
        except (CarSearchError, SQLAlchemyError) as e:
            logger.error(f"Could not save truncated reply for chat {chat_id}: {e}")

    async def _log_partial(self, chat_id: UUID, content: str):
        try:
            await self.store.log_message(chat_id, MessageRole.ASSISTANT, content, truncated=True)
        except SQLAlchemyError as e:
            logger.error(f"Could not save partial reply for chat {chat_id}: {e}")

    async def _emit_error(self, stream: TurnStream, payload: dict):
        if stream.closed:
            logger.error(f"Turn for chat {stream.chat_id} failed after its stream closed: {payload}")
            return
        await stream.emit(EventType.ERROR, payload)
