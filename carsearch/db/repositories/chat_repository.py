from typing import Optional
from uuid import UUID
import json
import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

class ChatRepository:
    """
    Raw SQL access to chats, messages and conversation intents.
    Callers own the transaction: nothing here commits.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def insert_chat(self, chat_id: UUID, title: Optional[str] = None):
        # The intent row is born together with its chat
        await self.db.execute(
            text("INSERT INTO chats (id, title) VALUES (:id, :title)"),
            {"id": chat_id, "title": title},
        )
        await self.db.execute(
            text("""
                INSERT INTO conversation_intents (chat_id, criteria, version, clarifying_turns)
                VALUES (:chat_id, CAST('{}' AS JSONB), 0, 0)
            """),
            {"chat_id": chat_id},
        )

    async def get_chat(self, chat_id: UUID):
        result = await self.db.execute(
            text("SELECT id, title, created_at, updated_at FROM chats WHERE id = :id"),
            {"id": chat_id},
        )
        return result.mappings().first()

    async def get_intent_row(self, chat_id: UUID):
        result = await self.db.execute(
            text("""
                SELECT chat_id, criteria, version, clarifying_turns
                FROM conversation_intents
                WHERE chat_id = :chat_id
            """),
            {"chat_id": chat_id},
        )
        return result.mappings().first()

    async def get_intent_version(self, chat_id: UUID) -> Optional[int]:
        result = await self.db.execute(
            text("SELECT version FROM conversation_intents WHERE chat_id = :chat_id"),
            {"chat_id": chat_id},
        )
        return result.scalar()

    async def compare_and_swap_intent(
        self,
        chat_id: UUID,
        expected_version: int,
        new_version: int,
        criteria: dict,
        clarifying_turns: int,
    ) -> bool:
        """
        Writes the intent only if nobody advanced it since `expected_version`.
        Returns False when the row was not updated (stale version).
        """
        result = await self.db.execute(
            text("""
                UPDATE conversation_intents
                SET criteria = CAST(:criteria AS JSONB),
                    version = :new_version,
                    clarifying_turns = :clarifying_turns,
                    updated_at = NOW()
                WHERE chat_id = :chat_id
                  AND version = :expected_version
            """),
            {
                "chat_id": chat_id,
                "criteria": json.dumps(criteria),
                "new_version": new_version,
                "clarifying_turns": clarifying_turns,
                "expected_version": expected_version,
            },
        )
        return result.rowcount == 1

    async def insert_message(self, message_id: UUID, chat_id: UUID, role: str, content: str, truncated: bool = False):
        await self.db.execute(
            text("""
                INSERT INTO messages (id, chat_id, role, content, truncated)
                VALUES (:id, :chat_id, :role, :content, :truncated)
            """),
            {
                "id": message_id,
                "chat_id": chat_id,
                "role": role.upper(),
                "content": content,
                "truncated": truncated,
            },
        )
        # Keep the chat list sorted by activity
        await self.db.execute(
            text("UPDATE chats SET updated_at = NOW() WHERE id = :chat_id"),
            {"chat_id": chat_id},
        )

    async def set_title_if_missing(self, chat_id: UUID, title: str) -> bool:
        # Never overwrite a title that was set in the meantime
        result = await self.db.execute(
            text("""
                UPDATE chats
                SET title = :title
                WHERE id = :chat_id AND title IS NULL
            """),
            {"chat_id": chat_id, "title": title},
        )
        return result.rowcount == 1
