from langchain_core.runnables import RunnableConfig
from carsearch.core.errors import ConcurrentMergeConflict
from carsearch.core.state import TurnState, TurnPhase
from carsearch.services.criteria_merge import changed_fields, merge
import logging

logger = logging.getLogger(__name__)

async def merge_node(state: TurnState, config: RunnableConfig):
    """
    Folds the extraction into the intent loaded at turn start.
    If someone advanced the stored intent meanwhile, rebase once on the fresh copy.
    """
    store = config.get("configurable", {})["store"]
    intent = state["intent"]
    extraction = state["extraction"]
    update = {}

    stored_version = await store.get_intent_version(intent.chat_id)
    if stored_version != intent.version:
        logger.warning(f"🔁 Chat {intent.chat_id}: intent moved v{intent.version} -> v{stored_version}, rebasing")
        intent = await store.load_intent(intent.chat_id)
        if await store.get_intent_version(intent.chat_id) != intent.version:
            raise ConcurrentMergeConflict(f"Intent of chat {intent.chat_id} keeps changing under this turn")
        update["intent"] = intent

    merged = merge(intent, extraction)
    changed = changed_fields(intent.criteria, merged.criteria)
    if changed:
        logger.info(f"🧩 Chat {intent.chat_id}: merged fields {changed}")

    update.update({"merged": merged, "changed_fields": changed, "phase": TurnPhase.EVALUATING_READINESS})
    return update
