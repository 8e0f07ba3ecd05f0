from typing import Optional
from uuid import UUID
import uuid
import logging

from carsearch.core.errors import ChatNotFound, ConcurrentMergeConflict
from carsearch.db.repositories.chat_repository import ChatRepository
from carsearch.schemas.criteria import CarSearchCriteria, ConversationIntent
from carsearch.schemas.enums import MessageRole

logger = logging.getLogger(__name__)

class ConversationService:
    """
    Persistence for the turn orchestrator: append-only messages plus the
    single-writer conversation intent (compare-and-swap on version).
    Each call runs in its own session and transaction.
    """

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def create_chat(self, title: Optional[str] = None) -> dict:
        chat_id = uuid.uuid4()
        async with self.session_factory() as db:
            async with db.begin():
                await ChatRepository(db).insert_chat(chat_id, title)
        logger.info(f"🆕 Created chat {chat_id}")
        return {"id": chat_id, "title": title}

    async def get_chat(self, chat_id: UUID):
        async with self.session_factory() as db:
            return await ChatRepository(db).get_chat(chat_id)

    async def load_intent(self, chat_id: UUID) -> ConversationIntent:
        async with self.session_factory() as db:
            row = await ChatRepository(db).get_intent_row(chat_id)
        if not row:
            raise ChatNotFound(chat_id)
        return ConversationIntent(
            chat_id=row["chat_id"],
            criteria=CarSearchCriteria.model_validate(row["criteria"] or {}),
            version=row["version"],
            clarifying_turns=row["clarifying_turns"],
        )

    async def get_intent_version(self, chat_id: UUID) -> int:
        async with self.session_factory() as db:
            version = await ChatRepository(db).get_intent_version(chat_id)
        if version is None:
            raise ChatNotFound(chat_id)
        return version

    async def log_message(self, chat_id: UUID, role: MessageRole, content: str, truncated: bool = False) -> UUID:
        """
        Logs a message (user or assistant) on its own.
        Used for user messages and for partial replies of failed turns.
        """
        message_id = uuid.uuid4()
        async with self.session_factory() as db:
            async with db.begin():
                await ChatRepository(db).insert_message(message_id, chat_id, role.value, content, truncated)
        return message_id

    async def commit_turn(
        self,
        intent: ConversationIntent,
        expected_version: int,
        assistant_content: str,
        truncated: bool = False,
        title: Optional[str] = None,
    ) -> UUID:
        """
        Advances the intent and stores the assistant reply in ONE transaction.
        Raises ConcurrentMergeConflict (and writes nothing) when the stored
        version is no longer `expected_version`.
        """
        if intent.version != expected_version + 1:
            raise ValueError(f"Intent version {intent.version} does not follow {expected_version}")

        message_id = uuid.uuid4()
        async with self.session_factory() as db:
            async with db.begin():
                repo = ChatRepository(db)
                swapped = await repo.compare_and_swap_intent(
                    chat_id=intent.chat_id,
                    expected_version=expected_version,
                    new_version=intent.version,
                    criteria=intent.criteria.set_fields(),
                    clarifying_turns=intent.clarifying_turns,
                )
                if not swapped:
                    # Leaving the block through the exception rolls everything back
                    raise ConcurrentMergeConflict(
                        f"Intent of chat {intent.chat_id} moved past version {expected_version}"
                    )
                await repo.insert_message(
                    message_id, intent.chat_id, MessageRole.ASSISTANT.value, assistant_content, truncated
                )
                if title:
                    await repo.set_title_if_missing(intent.chat_id, title)

        logger.info(f"💾 Chat {intent.chat_id}: intent v{expected_version} -> v{intent.version}, reply {message_id}")
        return message_id
