import json
import logging

from carsearch.core.errors import ExtractionMalformed
from carsearch.schemas.criteria import CarSearchCriteria, ExtractionResult
from carsearch.services.openai_service import OpenAIService

logger = logging.getLogger(__name__)

EXTRACTOR_PROMPT = """
You are a Criteria Extractor for a car-buying assistant.

### WHAT WE ALREADY KNOW
{current_criteria}

### AVAILABLE FIELDS
{field_docs}

### YOUR GOAL
Read ONLY the user's latest message and report what it changes.

### RULES
1. **Mentioned with a value** -> put it in "set".
   - "Up to 3 million" -> "price_max": 3000000
   - "Something newer than 2019" -> "year_min": 2019
   - "A crossover" -> "body_type": "suv"
2. **Explicitly dropped** -> put the field name in "clear".
   - "Any brand is fine" -> "clear": ["brand"]
   - "Forget the budget" -> "clear": ["price_min", "price_max"]
3. **Not mentioned** -> leave it out completely. Never repeat what we already know.
4. If the user wants to see cars without giving more details ("just show me something"),
   set "show_anything" to true.
5. Never invent values the user did not say.

### OUTPUT JSON FORMAT
{{
  "set": {{"field_name": value}},
  "clear": ["field_name"],
  "show_anything": false
}}
"""


def _field_docs() -> str:
    lines = []
    for name, info in CarSearchCriteria.model_fields.items():
        lines.append(f"- {name}: {info.description or ''}")
    return "\n".join(lines)


class CriteriaExtractor:
    """Turns one user message into an ExtractionResult (set / clear / absent per field)."""

    def __init__(self, llm: OpenAIService, model: str):
        self.llm = llm
        self.model = model
        self._field_docs = _field_docs()

    async def extract(self, user_text: str, intent_summary: dict) -> ExtractionResult:
        system_prompt = EXTRACTOR_PROMPT.format(
            current_criteria=json.dumps(intent_summary, ensure_ascii=False) if intent_summary else "Nothing yet.",
            field_docs=self._field_docs,
        )

        try:
            payload = await self.llm.complete_json(self.model, system_prompt, user_text)
            result = ExtractionResult.from_llm_payload(payload)
        except ValueError as e:
            # Covers bad JSON as well as values the schema rejects
            raise ExtractionMalformed(f"Unusable extraction output: {e}") from e

        logger.info(f"🧲 Extracted changes: {list(result.changes)} (show_anything={result.show_anything})")
        return result
