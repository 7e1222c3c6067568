from graph.approval import ApprovalWorkflow
from graph.state import ProspectingState
from tools.llm import summarize_lead
from loguru import logger


async def request_approval(state: ProspectingState, workflow: ApprovalWorkflow) -> ProspectingState:
    """Send each qualified lead to Slack for a create-deal / skip decision."""
    qualified = state.get("qualified", [])
    logger.info(f"Requesting approval for {len(qualified)} leads in run: {state.get('run_id', 'unknown')}")

    for lead in qualified:
        lead["summary"] = await summarize_lead(lead)

    results = await workflow.request_approvals(qualified)
    state["approvals"] = results

    for result in results:
        if result["status"] == "approval_sent":
            state.setdefault("notifications", []).append(f"approval:{result['approvalId']}")
        else:
            state.setdefault("errors", []).append(
                f"Approval request failed for {result['leadId']}: {result.get('error')}"
            )

    return state
