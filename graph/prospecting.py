import uuid
from typing import Any, Dict, List, Optional

from langgraph.graph import StateGraph, START, END
from loguru import logger

from graph.approval import ApprovalWorkflow
from graph.nodes.request_approval import request_approval
from graph.nodes.research import research
from graph.nodes.score import score
from graph.nodes.summarize import summarize
from graph.state import Prospect, ProspectingState

AUTOMATION_NAME = "Sports Club Prospector"


def build_prospecting_graph(workflow: ApprovalWorkflow, notifier: Any):
    """Build the research -> score -> approval -> summary workflow."""
    graph = StateGraph(ProspectingState)

    async def request_approval_node(state: ProspectingState) -> ProspectingState:
        return await request_approval(state, workflow)

    async def summarize_node(state: ProspectingState) -> ProspectingState:
        return await summarize(state, notifier)

    # Add nodes
    graph.add_node("research", research)
    graph.add_node("score", score)
    graph.add_node("request_approval", request_approval_node)
    graph.add_node("summarize", summarize_node)

    # Add edges
    graph.add_edge(START, "research")
    graph.add_edge("research", "score")

    def branch_decision(state: ProspectingState) -> str:
        if state.get("qualified"):
            return "request_approval"
        logger.info("No qualified leads this run, skipping approvals")
        return "summarize"

    graph.add_conditional_edges(
        "score",
        branch_decision,
        {
            "request_approval": "request_approval",
            "summarize": "summarize"
        }
    )

    graph.add_edge("request_approval", "summarize")
    graph.add_edge("summarize", END)

    return graph.compile()


async def run_prospecting(workflow: ApprovalWorkflow, notifier: Any, seed: Optional[int] = None,
                          prospects: Optional[List[Prospect]] = None) -> Dict[str, Any]:
    """Execute one prospecting run; failures are logged and alerted, never raised."""
    run_id = f"run_{uuid.uuid4().hex[:12]}"
    logger.info(f"Executing {AUTOMATION_NAME} ({run_id})...")

    initial_state: ProspectingState = {
        "run_id": run_id,
        "seed": seed,
        "prospects": list(prospects or []),
        "qualified": [],
        "approvals": [],
        "notifications": [],
        "errors": []
    }

    try:
        final_state = await build_prospecting_graph(workflow, notifier).ainvoke(initial_state)
        logger.info(f"{AUTOMATION_NAME} completed successfully ({run_id})")
        return final_state["result"]

    except Exception as e:
        logger.exception(f"{AUTOMATION_NAME} failed ({run_id}): {e}")
        try:
            await notifier.send_failure_alert(AUTOMATION_NAME, e)
        except Exception as alert_error:
            logger.error(f"Failure alert could not be delivered: {alert_error}")
        return {"success": False, "runId": run_id, "error": str(e)}
