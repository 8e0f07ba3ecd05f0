from langchain_core.runnables import RunnableConfig
from carsearch.core.state import TurnState, TurnPhase
from carsearch.services.readiness import ReadinessOptions, is_ready, missing_primary_fields

SHOW_ANYTHING_PHRASES = [
    "just show", "show me something", "show me anything", "show anything",
    "show me what you have", "surprise me",
]

def wants_anything(user_text: str) -> bool:
    msg_lower = user_text.lower()
    return any(p in msg_lower for p in SHOW_ANYTHING_PHRASES)

def readiness_node(state: TurnState, config: RunnableConfig):
    """
    Traffic Cop Logic:
    Search now, or ask for one more detail?
    """
    options = config.get("configurable", {}).get("readiness_options") or ReadinessOptions()
    merged = state["merged"]
    extraction = state.get("extraction")

    override = bool(extraction and extraction.show_anything) or wants_anything(state["user_text"])
    ready = is_ready(merged, options, override=override)
    # Searching without any primary field means the user or the question budget forced it
    forced = ready and not any(merged.criteria.is_set(f) for f in options.primary_fields)

    return {
        "ready": ready,
        "force_search": forced,
        "missing_fields": missing_primary_fields(merged, options),
        "next_step": "execute_search" if ready else "ask_clarification",
        "phase": TurnPhase.SEARCHING if ready else TurnPhase.COMPOSING_REPLY,
    }
