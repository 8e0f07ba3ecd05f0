from langchain_core.runnables import RunnableConfig
from carsearch.core.errors import ExtractionMalformed
from carsearch.core.state import TurnState, TurnPhase
from carsearch.schemas.criteria import ExtractionResult
import asyncio
import logging
import openai

logger = logging.getLogger(__name__)

# Failures worth a second attempt
TRANSIENT_ERRORS = (asyncio.TimeoutError, openai.APIError, OSError)

async def extractor_node(state: TurnState, config: RunnableConfig):
    """
    Reads the latest user message against a compact summary of the intent.
    Never fails the turn: after one retry it degrades to "nothing extracted".
    """
    cfg = config.get("configurable", {})
    extractor = cfg["extractor"]
    timeout = cfg.get("extraction_timeout", 8.0)
    backoff = cfg.get("extraction_backoff", 0.5)

    intent = state["intent"]
    user_text = state["user_text"]

    for attempt in (1, 2):
        try:
            extraction = await asyncio.wait_for(
                extractor.extract(user_text, intent.summary()),
                timeout=timeout,
            )
            return {"extraction": extraction, "extraction_degraded": False, "phase": TurnPhase.MERGING}
        except ExtractionMalformed as e:
            # Asking again rarely fixes a confused model
            logger.warning(f"⚠️ Extraction malformed for chat {intent.chat_id}: {e}")
            break
        except TRANSIENT_ERRORS as e:
            logger.warning(f"⚠️ Extraction attempt {attempt} failed for chat {intent.chat_id}: {type(e).__name__} {e}")
            if attempt == 1:
                await asyncio.sleep(backoff)

    logger.info(f"Extraction degraded for chat {intent.chat_id}, keeping the intent as is")
    return {"extraction": ExtractionResult(), "extraction_degraded": True, "phase": TurnPhase.MERGING}
