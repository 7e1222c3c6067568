from typing import Any

from graph.state import ProspectingState
from loguru import logger


def build_run_result(state: ProspectingState) -> dict:
    prospects = state.get("prospects", [])
    qualified = state.get("qualified", [])
    approvals = state.get("approvals", [])
    sent = sum(1 for a in approvals if a.get("status") == "approval_sent")

    return {
        "success": True,
        "runId": state.get("run_id"),
        "prospectsResearched": len(prospects),
        "qualifiedLeads": len(qualified),
        "approvalsSent": sent,
        "topProspects": [
            {
                "name": lead.get("club_name"),
                "location": lead.get("location"),
                "score": lead.get("score"),
                "athleteReach": lead.get("estimated_athletes"),
            }
            for lead in qualified[:5]
        ],
        "errors": list(state.get("errors", [])),
        "summary": (
            f"Researched {len(prospects)} sports clubs, qualified {len(qualified)} leads, "
            f"sent {sent} approval requests"
        ),
    }


async def summarize(state: ProspectingState, notifier: Any) -> ProspectingState:
    """Build the run result and post it to Slack."""
    result = build_run_result(state)
    state["result"] = result
    logger.info(f"Prospecting run {state.get('run_id')}: {result['summary']}")

    try:
        await notifier.send_run_summary(result)
        state.setdefault("notifications", []).append("run_summary")
    except Exception as e:
        error_msg = f"Run summary notification failed: {str(e)}"
        logger.error(error_msg)
        state.setdefault("errors", []).append(error_msg)

    return state
