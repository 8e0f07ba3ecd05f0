from langchain_core.runnables import RunnableConfig
from sqlalchemy.exc import SQLAlchemyError
from carsearch.core.errors import SearchUnavailable
from carsearch.core.state import TurnState, TurnPhase
from carsearch.services.query_builder import build_search_spec
import asyncio
import logging

logger = logging.getLogger(__name__)

async def search_node(state: TurnState, config: RunnableConfig):
    """
    Builds the search specification from the merged intent and runs it.
    Zero hits is a normal outcome; an unreachable inventory fails the turn.
    """
    cfg = config.get("configurable", {})
    inventory = cfg["inventory"]
    timeout = cfg.get("search_timeout", 5.0)

    merged = state["merged"]
    spec = build_search_spec(merged, cfg.get("result_cap", 5))
    logger.info(f"🔍 Chat {merged.chat_id}: searching with {[(p.field, p.op.value) for p in spec.predicates]}")

    try:
        result = await asyncio.wait_for(inventory.search(spec), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise SearchUnavailable(f"Inventory did not answer within {timeout}s") from e
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Search Error: {e}")
        raise SearchUnavailable("Inventory is unavailable") from e

    if not result.items:
        logger.info(f"❌ Chat {merged.chat_id}: no cars match")

    return {
        "search_spec": spec,
        "search_result": result,
        "no_matches": not result.items,
        "phase": TurnPhase.COMPOSING_REPLY,
    }
