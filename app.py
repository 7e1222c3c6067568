import asyncio
import json
import os
import time
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Dict, List, Optional

from fastapi import BackgroundTasks, FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse
from loguru import logger
from dotenv import load_dotenv

# Import our modules
from graph.approval import APPROVE, PENDING, SKIP, ApprovalWorkflow, calculate_deal_value
from graph.events import (
    APPROVE_ACTION,
    SKIP_ACTION,
    AutomationEvent,
    CrmEvent,
    parse_interactivity,
    parse_prospect,
    parse_webhook_body,
)
from graph.nodes.score import is_qualified, score_breakdown, to_scored_lead
from graph.prospecting import run_prospecting
from tools.approval_store import build_store
from tools.errors import ExternalGatewayError, NotFoundError, ValidationError
from tools.hubspot import HubSpotClient
from tools.llm import summarize_lead
from tools.render import render_lead_details, render_lead_view, render_not_found
from tools.slack import SlackNotifier

# Load environment variables
load_dotenv()

# Configure logging
logger.add("logs/app.log", rotation="1 day", retention="7 days", level=os.getenv("LOG_LEVEL", "INFO"))

VERSION = "1.0.0"


def build_workflow() -> ApprovalWorkflow:
    """Wire the approval workflow to its store and gateways."""
    return ApprovalWorkflow(
        store=build_store(),
        crm=HubSpotClient(),
        notifier=SlackNotifier(),
        retention_hours=float(os.getenv("APPROVAL_RETENTION_HOURS", "24")),
        pending_ttl_days=float(os.getenv("PENDING_APPROVAL_TTL_DAYS", "14")),
    )


# Initialize workflow
workflow = build_workflow()
crm_event_counts: Dict[str, int] = {}


async def run_maintenance() -> Dict[str, List[str]]:
    """Expire stale pending approvals and drop resolved ones past retention."""
    return {
        "expired": workflow.expire_stale(),
        "purged": workflow.purge_resolved(),
    }


async def run_scheduled_prospecting() -> Dict[str, Any]:
    return await run_prospecting(workflow, workflow.notifier)


async def _repeat(name: str, interval_seconds: float, job: Callable[[], Awaitable[Any]]) -> None:
    """Run `job` every `interval_seconds` until cancelled; failures are logged."""
    logger.info(f"Scheduled {name} every {interval_seconds:.0f}s")
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await job()
        except Exception as e:
            logger.exception(f"Scheduled {name} failed: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    tasks = []
    prospecting_hours = float(os.getenv("PROSPECTING_INTERVAL_HOURS", "168"))
    maintenance_minutes = float(os.getenv("MAINTENANCE_INTERVAL_MINUTES", "60"))

    if prospecting_hours > 0:
        tasks.append(asyncio.create_task(_repeat("prospecting", prospecting_hours * 3600, run_scheduled_prospecting)))
    if maintenance_minutes > 0:
        tasks.append(asyncio.create_task(_repeat("maintenance", maintenance_minutes * 60, run_maintenance)))

    logger.info("BD Lead Approvals started")
    yield

    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    logger.info("BD Lead Approvals stopped")


# Initialize FastAPI app
app = FastAPI(
    title="BD Lead Approvals",
    description="Sports club lead scoring with Slack approval and HubSpot deal creation",
    version=VERSION,
    lifespan=lifespan
)


def ephemeral(text: str) -> JSONResponse:
    return JSONResponse(status_code=200, content={"response_type": "ephemeral", "text": text})


async def handle_automation_event(event: AutomationEvent) -> Dict[str, Any]:
    """Forward an automation envelope to Slack; prospect alerts also enter the approval workflow."""
    try:
        await workflow.notifier.send_automation_update(event.automation or event.type, event.status, event.details)
    except ExternalGatewayError as e:
        logger.error(f"Automation update not forwarded to Slack: {e}")

    if event.type == "prospect_alert" and event.details:
        lead = to_scored_lead(parse_prospect(event.details))
        if not is_qualified(lead["score"]):
            logger.info(f"Prospect {lead.get('club_name')} not qualified (score {lead['score']})")
            return {"qualified": False, "score": lead["score"]}

        lead["summary"] = await summarize_lead(lead)
        approval_id = await workflow.register_approval(lead)
        return {"qualified": True, "score": lead["score"], "approvalId": approval_id}

    return {}


async def handle_crm_events(events: List[CrmEvent]) -> Dict[str, Any]:
    """Log HubSpot webhook events and announce won deals."""
    for event in events:
        crm_event_counts[event.subscriptionType] = crm_event_counts.get(event.subscriptionType, 0) + 1
        logger.info(f"CRM event {event.subscriptionType} for object {event.objectId}")

        if (event.subscriptionType == "deal.propertyChange"
                and event.propertyName == "dealstage" and event.propertyValue == "closedwon"):
            try:
                await workflow.notifier.send_automation_update(
                    "HubSpot", "completed", {"deal_won": event.objectId}
                )
            except ExternalGatewayError as e:
                logger.error(f"Deal won notification failed: {e}")

    return {"events": len(events)}


async def process_approval(approval_id: str, actor_id: str, actor_name: str) -> None:
    """Follow-up task for an approve click, run after Slack has been acknowledged."""
    try:
        result = await workflow.decide(approval_id, APPROVE, actor_id, actor_name)
        logger.info(f"Approval {approval_id} processed: {result['message']}")
    except NotFoundError as e:
        logger.warning(f"Approval follow-up skipped: {e}")
    except ExternalGatewayError as e:
        logger.error(f"Approval {approval_id} left pending for retry: {e}")
    except Exception as e:
        logger.exception(f"Approval {approval_id} follow-up failed: {e}")


@app.post("/webhook")
async def webhook(req: Request):
    """
    Automation and CRM webhook endpoint.

    Accepts either an automation envelope:
    {"type": "prospect_alert", "automation": "...", "status": "...", "details": {...}}
    or a HubSpot event batch:
    [{"subscriptionType": "deal.propertyChange", "objectId": 123, ...}]
    """
    try:
        try:
            body = await req.json()
        except ValueError as e:
            raise ValidationError(f"Invalid JSON body: {e}")

        event = parse_webhook_body(body)
        logger.info(f"Received webhook: {'CRM batch' if isinstance(event, list) else event.type}")

        if isinstance(event, list):
            outcome = await handle_crm_events(event)
        else:
            outcome = await handle_automation_event(event)

        return JSONResponse(status_code=200, content={"success": True, **outcome})

    except ValidationError as e:
        logger.warning(f"Rejected webhook: {e}")
        return JSONResponse(status_code=400, content={"error": str(e)})
    except Exception as e:
        logger.error(f"Webhook error: {e}")
        return JSONResponse(status_code=500, content={"error": str(e)})


@app.post("/interactivity")
async def interactivity(req: Request, background_tasks: BackgroundTasks):
    """Slack interactive-component callback (form field `payload` holding JSON)."""
    try:
        form = await req.form()
        raw = form.get("payload")
        if not raw or not isinstance(raw, str):
            raise ValidationError("Missing payload field")
        try:
            data = json.loads(raw)
        except ValueError:
            raise ValidationError("payload is not valid JSON")

        payload = parse_interactivity(data)
        action = payload.actions[0]
        if action.action_id in (APPROVE_ACTION, SKIP_ACTION) and not action.value:
            raise ValidationError(f"Action {action.action_id} carries no approval id")

    except ValidationError as e:
        logger.warning(f"Rejected Slack interactivity: {e}")
        return JSONResponse(status_code=400, content={"error": str(e)})

    approval_id = action.value or ""
    user = payload.user
    logger.info(f"Slack action {action.action_id} on {approval_id or 'n/a'} by {user.display_name}")

    try:
        if action.action_id == APPROVE_ACTION:
            approval = workflow.get(approval_id)
            if approval.get("status") != PENDING:
                return ephemeral(f"This lead was already {approval.get('status')} by {approval.get('decided_by')}.")

            background_tasks.add_task(process_approval, approval_id, user.id, user.display_name)
            club = approval["lead_data"].get("club_name", "this lead")
            return ephemeral(f"⏳ Creating HubSpot deal for {club}... you'll see a confirmation shortly.")

        if action.action_id == SKIP_ACTION:
            result = await workflow.decide(approval_id, SKIP, user.id, user.display_name)
            if result["duplicate"]:
                return ephemeral(f"{result['message']}.")
            return ephemeral("❌ Lead skipped.")

        label = action.text.get("text") if isinstance(action.text, dict) else action.text
        return ephemeral(f"You clicked: {label or action.action_id}")

    except NotFoundError:
        return ephemeral("⚠️ This lead approval was not found or has expired.")
    except Exception as e:
        logger.error(f"Slack interactivity error: {e}")
        return ephemeral("⚠️ Something went wrong while processing your request. Please try again.")


@app.get("/lead-details/{approval_id}")
async def lead_details(approval_id: str):
    """Human-readable detail page for one approval."""
    try:
        approval = workflow.get(approval_id)
    except NotFoundError:
        return HTMLResponse(render_not_found(approval_id), status_code=404)

    lead = approval.get("lead_data") or {}
    return HTMLResponse(render_lead_details(approval, score_breakdown(lead), calculate_deal_value(lead)))


@app.get("/view/{approval_id}")
async def view_lead(approval_id: str, req: Request):
    """Legacy lead view; counts the view."""
    viewer_id = req.headers.get("x-user-id", "anonymous")
    try:
        approval = await workflow.record_view(approval_id, viewer_id)
    except NotFoundError:
        return HTMLResponse(render_not_found(approval_id), status_code=404)

    crm_details = None
    contact_id = (approval.get("external_result") or {}).get("contactId")
    if contact_id:
        try:
            crm_details = await workflow.crm.get_lead_details(contact_id)
        except ExternalGatewayError as e:
            logger.error(f"Error fetching HubSpot details for {approval_id}: {e}")

    return HTMLResponse(render_lead_view(approval, crm_details))


@app.get("/api/pending-approvals")
def pending_approvals():
    return {"approvals": workflow.pending()}


@app.get("/api/dashboard-data")
def dashboard_data():
    return {"metrics": workflow.stats(), "crmEvents": dict(crm_event_counts)}


@app.get("/api/metrics")
async def lead_metrics(days: int = 30):
    """Lead and deal metrics from HubSpot."""
    try:
        return await workflow.crm.get_lead_metrics(days)
    except ExternalGatewayError as e:
        logger.error(f"Error getting metrics: {e}")
        return JSONResponse(status_code=502, content={"error": str(e)})


@app.get("/admin/approvals/{approval_id}")
def get_approval(approval_id: str):
    """Raw approval record (for debugging)."""
    try:
        return workflow.get(approval_id)
    except NotFoundError as e:
        return JSONResponse(status_code=404, content={"error": str(e)})


@app.post("/admin/run-prospector")
async def run_prospector(background_tasks: BackgroundTasks, seed: Optional[int] = None):
    """Queue a prospecting run outside the schedule."""
    background_tasks.add_task(run_prospecting, workflow, workflow.notifier, seed)
    return {"status": "started", "seed": seed}


@app.get("/health")
def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": time.time(),
        "version": VERSION,
        "services": {
            "approval_store": type(workflow.store.backend).__name__,
            "hubspot": "live" if workflow.crm.access_token else "mock",
            "slack": "live" if workflow.notifier.webhook_url else "mock",
        },
        "approvals": len(workflow.store)
    }


# Error handlers
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"status": "error", "message": "Internal server error"}
    )


if __name__ == "__main__":
    import uvicorn

    # Create logs directory if it doesn't exist
    os.makedirs("logs", exist_ok=True)

    logger.info("Starting BD Lead Approvals")

    uvicorn.run(
        "app:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=True,
        log_level="info"
    )
