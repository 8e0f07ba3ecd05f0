from dataclasses import dataclass, field
from enum import Enum
from typing import TypedDict, Annotated, List, Optional
from uuid import UUID
import uuid

from carsearch.schemas.criteria import ConversationIntent, ExtractionResult
from carsearch.schemas.search import SearchResult, SearchSpecification

def replace_value(existing, new):
    if new is None:
        return existing
    return new

class TurnPhase(str, Enum):
    AWAITING_EXTRACTION = "awaiting_extraction"
    MERGING = "merging"
    EVALUATING_READINESS = "evaluating_readiness"
    SEARCHING = "searching"
    COMPOSING_REPLY = "composing_reply"
    EMITTING = "emitting"
    COMPLETED = "completed"
    FAILED = "failed"

@dataclass
class Turn:
    """Bookkeeping for one user message being processed. Lives only in memory."""
    chat_id: UUID
    user_message_id: UUID
    base_version: int
    turn_id: UUID = field(default_factory=uuid.uuid4)
    assistant_message_id: Optional[UUID] = None
    phase: TurnPhase = TurnPhase.AWAITING_EXTRACTION
    truncated: bool = False

class TurnState(TypedDict, total=False):
    # 1. Input
    chat_id: UUID
    user_text: str

    # 2. The intent as loaded at turn start, then as merged
    intent: Annotated[Optional[ConversationIntent], replace_value]
    merged: Optional[ConversationIntent]
    changed_fields: List[str]

    # 3. Extraction
    extraction: Optional[ExtractionResult]
    extraction_degraded: bool

    # 4. Readiness
    ready: bool
    force_search: bool
    missing_fields: List[str]
    next_step: Optional[str]

    # 5. Search
    search_spec: Optional[SearchSpecification]
    search_result: Optional[SearchResult]
    no_matches: bool

    phase: TurnPhase
