"""
Workflow Definition for the Echo mind map engine.

This module defines the graph that turns one content source into a mind map.
It connects the nodes (functional units) using the StateGraph primitive from
LangGraph.

Architecture:
    [START] -> [extractor] -> [poller] (uploads only) -> [synthesizer] -> [parser] -> [END]
"""

from langgraph.graph import StateGraph, END

# Import the State Schema
from echo_mindmap.graph.state import MindMapState

# Import the Functional Nodes
from echo_mindmap.graph.nodes import (
    extract_content_node,
    await_asset_node,
    synthesize_node,
    parse_response_node,
    route_after_extraction,
)


def create_graph():
    """
    Constructs and compiles the LangGraph workflow.

    Returns:
        CompiledGraph: A runnable graph object ready for execution.
    """
    workflow = StateGraph(MindMapState)

    workflow.add_node("extractor", extract_content_node)
    workflow.add_node("poller", await_asset_node)
    workflow.add_node("synthesizer", synthesize_node)
    workflow.add_node("parser", parse_response_node)

    workflow.set_entry_point("extractor")

    # Uploads go through the poller first; URLs already carry their text.
    workflow.add_conditional_edges(
        "extractor",
        route_after_extraction,
        {"poller": "poller", "synthesizer": "synthesizer"},
    )
    workflow.add_edge("poller", "synthesizer")
    workflow.add_edge("synthesizer", "parser")
    workflow.add_edge("parser", END)

    return workflow.compile()


# Expose the runnable app for import by the pipeline
app = create_graph()
