from langgraph.graph import StateGraph, END
from carsearch.core.state import TurnState
from carsearch.graphs.nodes.extractor import extractor_node
from carsearch.graphs.nodes.merge import merge_node
from carsearch.graphs.nodes.readiness import readiness_node
from carsearch.graphs.nodes.search import search_node

# --- 1. BUILD THE GRAPH ---
workflow = StateGraph(TurnState)

# Add Nodes
workflow.add_node("extractor", extractor_node)
workflow.add_node("merge", merge_node)
workflow.add_node("readiness", readiness_node)
workflow.add_node("search", search_node)

# Add Edges
workflow.set_entry_point("extractor")
workflow.add_edge("extractor", "merge")
workflow.add_edge("merge", "readiness")

# --- 2. ROUTING ---
def route_readiness(state: TurnState):
    if state.get("next_step") == "execute_search":
        return "search"
    # Not ready: the reply will be a clarifying question
    return END

workflow.add_conditional_edges(
    "readiness",
    route_readiness,
    {
        "search": "search",
        END: END
    }
)

workflow.add_edge("search", END)

# --- 3. COMPILE ---
# No checkpointer: the conversation intent is persisted by ConversationService, not by the graph.
def build_turn_graph():
    return workflow.compile()
