from typing import AsyncIterator, Dict, List, Optional
import json
import logging

import openai
from pydantic import BaseModel, Field

from carsearch.core.errors import CompositionFailure
from carsearch.schemas.criteria import FieldDiff
from carsearch.schemas.search import SearchResult
from carsearch.services.openai_service import OpenAIService

logger = logging.getLogger(__name__)


class ReplyPayload(BaseModel):
    """
    Everything the composer is allowed to see about a turn.
    No chat history and no full intent: only what this turn changed or found.
    """

    intent_diff: Dict[str, FieldDiff] = Field(default_factory=dict)
    missing_fields: List[str] = Field(default_factory=list)
    search: Optional[SearchResult] = None
    no_matches: bool = False
    # Search ran because the user asked for it or the question budget ran out
    forced: bool = False


COMPOSER_PROMPT = """
You are a friendly, knowledgeable car sales consultant.
You are answering the user's latest message in an ongoing chat.

-------------------------------------------------------
CONTEXT YOU HAVE:
• What changed this turn: {intent_diff}
• Still unknown (main criteria): {missing_fields}
• Search ran: {searched}
• Search was forced without full details: {forced}
• Cars found: {results}
-------------------------------------------------------

### 1. IF CARS WERE FOUND
- The cards are already displayed to the user. Do NOT repeat every spec.
- Highlight one or two cars that fit best and say why in a sentence.
- Mention how many cars matched in total if it is more than shown.

### 2. IF THE SEARCH FOUND NOTHING
- Say so plainly, without apologising at length.
- Suggest ONE criterion to relax (e.g. a higher budget or another body type).

### 3. IF NO SEARCH RAN
- Acknowledge what the user just told you in a few words.
- Ask for ONE of the missing main criteria. Be concise (1-2 sentences).

### 4. STYLE
- No greetings after the first turn. No emojis. Plain text, no markdown tables.
"""


def _results_block(result: Optional[SearchResult]) -> str:
    if result is None or not result.items:
        return "None"
    lines = [f"{result.total_count} total, showing {len(result.items)}:"]
    for car in result.items:
        lines.append(
            f"- {car.brand} {car.model} {car.year}, {car.price}, "
            f"{car.body_type.value}, {car.engine_type.value}, {car.power_hp} hp"
        )
    return "\n".join(lines)


class ReplyComposer:
    def __init__(self, llm: OpenAIService, model: str):
        self.llm = llm
        self.model = model

    def build_prompt(self, payload: ReplyPayload) -> str:
        diff = {name: d.model_dump() for name, d in payload.intent_diff.items()}
        return COMPOSER_PROMPT.format(
            intent_diff=json.dumps(diff, ensure_ascii=False, default=str) if diff else "Nothing",
            missing_fields=", ".join(payload.missing_fields) or "None",
            searched="yes" if payload.search is not None else "no",
            forced="yes" if payload.forced else "no",
            results=_results_block(payload.search),
        )

    async def compose(self, payload: ReplyPayload) -> AsyncIterator[str]:
        """Streams the reply text. Provider failures surface as CompositionFailure."""
        system_prompt = self.build_prompt(payload)
        try:
            async for fragment in self.llm.stream_text(self.model, system_prompt, "Write the reply."):
                yield fragment
        except openai.APIError as e:
            logger.error(f"Composer Error: {e}")
            raise CompositionFailure(f"Reply generation failed: {e}") from e
