"""
Human-in-the-loop approval workflow for qualified leads.

Every qualified lead becomes an Approval in the ``pending`` state. A reviewer
either approves it, which creates the HubSpot contact and deal, or skips it.
Both ``approved`` and ``rejected`` are terminal: a decision that arrives for
an approval that is no longer pending returns the recorded outcome and
performs no side effects, so retried Slack callbacks are harmless.
"""
import asyncio
import copy
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from graph.state import Approval, DecisionResult, ScoredLead
from tools.approval_store import ApprovalStore
from tools.errors import ExternalGatewayError, NotFoundError, ValidationError

PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"

APPROVE = "approve"
REJECT = "reject"
SKIP = "skip"
DECISIONS = (APPROVE, REJECT, SKIP)

AUTO_EXPIRY_ACTOR = "auto-expiry"

BASE_DEAL_VALUE = 10000
COMPETITION_MULTIPLIERS = {
    "National": 1.5,
    "State": 1.3,
    "Regional": 1.1,
    "Local": 1.0,
}


def generate_approval_id() -> str:
    return f"lead_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def calculate_deal_value(lead: ScoredLead, current_year: Optional[int] = None) -> int:
    """Estimated deal value in dollars for a lead."""
    year = current_year if current_year is not None else datetime.now(timezone.utc).year

    athlete_value = min((lead.get("estimated_athletes") or 0) * 50, 25000)
    facility_bonus = (lead.get("facilities") or 0) * 2000
    competition_multiplier = COMPETITION_MULTIPLIERS.get(lead.get("competition_level") or "", 1.0)

    founded = lead.get("founded_year")
    years_in_business = max(year - founded, 0) if founded else 0
    stability_multiplier = min(years_in_business * 0.05 + 1, 1.5)

    total = (BASE_DEAL_VALUE + athlete_value + facility_bonus) * competition_multiplier * stability_multiplier
    return int(total + 0.5)


def build_crm_payload(lead: ScoredLead) -> Dict[str, Any]:
    """Map a scored lead onto the CRM lead-creation input."""
    contact = lead.get("contact_info") or {}
    personnel = lead.get("key_personnel") or []

    return {
        "clubName": lead.get("club_name"),
        "sport": lead.get("sport"),
        "location": lead.get("location"),
        "athletes": lead.get("estimated_athletes"),
        "score": lead.get("score"),
        "contactEmail": contact.get("email"),
        "contactPhone": contact.get("phone"),
        "contactName": personnel[0].get("name") if personnel else "Unknown",
        "source": lead.get("source") or "bd_research_agent",
        "estimatedValue": calculate_deal_value(lead),
        "customFields": {
            "competition_level": lead.get("competition_level"),
            "facilities_count": lead.get("facilities"),
            "founded_year": lead.get("founded_year"),
            "age_groups": ", ".join(lead.get("age_groups") or []),
            "website": lead.get("website"),
            "priority": lead.get("priority"),
            "qualification_date": lead.get("qualification_date"),
        },
    }


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


class ApprovalWorkflow:
    """Registers qualified leads for review and applies reviewer decisions exactly once."""

    def __init__(self, store: ApprovalStore, crm: Any, notifier: Any,
                 retention_hours: float = 24, pending_ttl_days: float = 14,
                 clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.crm = crm
        self.notifier = notifier
        self.retention = timedelta(hours=retention_hours)
        self.pending_ttl = timedelta(days=pending_ttl_days) if pending_ttl_days else None
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, approval_id: str) -> asyncio.Lock:
        return self._locks.setdefault(approval_id, asyncio.Lock())

    async def register_approval(self, lead: ScoredLead) -> str:
        """Store a pending approval for the lead, then prompt reviewers in Slack."""
        approval_id = generate_approval_id()
        approval: Approval = {
            "id": approval_id,
            "lead_data": copy.deepcopy(lead),
            "status": PENDING,
            "created_at": self.clock().isoformat(),
            "decision": None,
            "decided_by": None,
            "decided_by_id": None,
            "decided_at": None,
            "external_result": None,
            "view_count": 0,
        }

        # Durable before the prompt goes out, so an immediate callback finds it
        self.store.put(approval_id, approval)
        logger.info(f"Registered approval {approval_id} for {lead.get('club_name')} (score {lead.get('score')})")

        try:
            await self.notifier.send_approval_request(lead, approval_id)
        except Exception as e:
            logger.error(f"Approval prompt for {approval_id} was not delivered: {e}")

        return approval_id

    async def request_approvals(self, leads: List[ScoredLead]) -> List[Dict[str, Any]]:
        """Register a batch of qualified leads; one failing lead does not stop the rest."""
        logger.info(f"Processing {len(leads)} qualified leads for approval")
        results = []

        for lead in leads:
            try:
                approval_id = await self.register_approval(lead)
                results.append({
                    "leadId": lead.get("club_name"),
                    "approvalId": approval_id,
                    "status": "approval_sent"
                })
            except Exception as e:
                logger.error(f"Error processing lead {lead.get('club_name')}: {e}")
                results.append({
                    "leadId": lead.get("club_name"),
                    "status": "error",
                    "error": str(e)
                })

        return results

    def get(self, approval_id: str) -> Approval:
        approval = self.store.get(approval_id)
        if approval is None:
            raise NotFoundError(approval_id)
        return approval

    def pending(self) -> List[Approval]:
        approvals = self.store.list(lambda a: a.get("status") == PENDING)
        return sorted(approvals, key=lambda a: a.get("created_at") or "")

    def stats(self) -> Dict[str, Any]:
        approvals = self.store.list()
        counts = {PENDING: 0, APPROVED: 0, REJECTED: 0}
        for approval in approvals:
            status = approval.get("status", PENDING)
            counts[status] = counts.get(status, 0) + 1

        decided = counts[APPROVED] + counts[REJECTED]
        return {
            "totalLeads": len(approvals),
            "pendingLeads": counts[PENDING],
            "approvedLeads": counts[APPROVED],
            "rejectedLeads": counts[REJECTED],
            "approvalRate": counts[APPROVED] / decided * 100 if decided else 0,
        }

    async def decide(self, approval_id: str, decision: str, actor_id: str, actor_name: str) -> DecisionResult:
        """
        Apply a reviewer decision to a pending approval.

        Raises:
            ValidationError: unknown decision
            NotFoundError: no approval with this id
            ExternalGatewayError: HubSpot failed during approve; the approval stays pending
        """
        if decision not in DECISIONS:
            raise ValidationError(f"Unknown decision '{decision}'")

        # Unknown ids never get a lock entry
        if approval_id not in self.store:
            raise NotFoundError(approval_id)

        async with self._lock_for(approval_id):
            approval = self.store.get(approval_id)
            if approval is None:
                self._locks.pop(approval_id, None)
                raise NotFoundError(approval_id)

            if approval.get("status") != PENDING:
                logger.info(f"Approval {approval_id} already {approval.get('status')}, ignoring {decision}")
                return self._result(approval, duplicate=True)

            if decision == APPROVE:
                return await self._approve(approval, actor_id, actor_name)
            return await self._reject(approval, decision, actor_id, actor_name)

    async def _approve(self, approval: Approval, actor_id: str, actor_name: str) -> DecisionResult:
        approval_id = approval["id"]
        lead = approval["lead_data"]

        try:
            crm_result = await self.crm.create_lead(build_crm_payload(lead))
        except Exception as e:
            logger.error(f"Error creating HubSpot deal for {approval_id}: {e}")
            try:
                await self.notifier.send_deal_error(lead, e, actor_name)
            except Exception as notify_error:
                logger.error(f"Deal error notification failed for {approval_id}: {notify_error}")
            if isinstance(e, ExternalGatewayError):
                raise
            raise ExternalGatewayError("hubspot", str(e)) from e

        # Views may have been recorded while the CRM call was in flight
        approval = self.store.get(approval_id) or approval
        approval.update({
            "status": APPROVED,
            "decision": APPROVE,
            "decided_by": actor_name,
            "decided_by_id": actor_id,
            "decided_at": self.clock().isoformat(),
            "external_result": dict(crm_result),
        })
        try:
            self.store.put(approval_id, approval)
        except Exception:
            logger.error(
                f"Approval {approval_id} could not be saved after HubSpot created contact "
                f"{crm_result.get('contactId')} and deal {crm_result.get('dealId')}; reconcile before retrying"
            )
            raise
        logger.info(f"Approval {approval_id} approved by {actor_name}: contact {crm_result.get('contactId')}")

        try:
            await self.notifier.send_deal_created(lead, crm_result, actor_name, calculate_deal_value(lead))
        except Exception as e:
            logger.error(f"Deal created notification failed for {approval_id}: {e}")

        try:
            await self.crm.add_note(
                crm_result["contactId"],
                f"Automated outreach sequence started for {lead.get('club_name')}. "
                f"Lead score: {lead.get('score')}/100. Approved by {actor_name}."
            )
        except Exception as e:
            logger.error(f"Outreach note failed for {approval_id}: {e}")

        return self._result(approval, message="HubSpot deal created successfully")

    async def _reject(self, approval: Approval, decision: str, actor_id: str, actor_name: str) -> DecisionResult:
        approval_id = approval["id"]
        lead = approval["lead_data"]

        approval.update({
            "status": REJECTED,
            "decision": decision,
            "decided_by": actor_name,
            "decided_by_id": actor_id,
            "decided_at": self.clock().isoformat(),
        })
        self.store.put(approval_id, approval)
        logger.info(f"Approval {approval_id} rejected ({decision}) by {actor_name}")

        try:
            await self.notifier.send_lead_skipped(lead, actor_name, calculate_deal_value(lead))
        except Exception as e:
            logger.error(f"Lead skipped notification failed for {approval_id}: {e}")

        return self._result(approval, message="Lead skipped")

    def _result(self, approval: Approval, message: Optional[str] = None, duplicate: bool = False) -> DecisionResult:
        status = approval.get("status", PENDING)
        if message is None:
            message = f"Lead already {status} by {approval.get('decided_by') or 'unknown'}"
        return {
            "approval_id": approval["id"],
            "success": True,
            "status": status,
            "message": message,
            "duplicate": duplicate,
            "external_result": approval.get("external_result"),
        }

    async def record_view(self, approval_id: str, viewer_id: str) -> Approval:
        """Count a detail-page view, mirrored to the CRM contact when there is one."""
        approval = self.get(approval_id)
        approval["view_count"] = approval.get("view_count", 0) + 1
        approval["last_viewed_by"] = viewer_id
        approval["last_viewed_at"] = self.clock().isoformat()
        self.store.put(approval_id, approval)

        contact_id = (approval.get("external_result") or {}).get("contactId")
        if contact_id:
            try:
                await self.crm.track_view(contact_id, viewer_id)
            except Exception as e:
                logger.error(f"Error tracking view in HubSpot for {approval_id}: {e}")

        return approval

    def expire_stale(self, now: Optional[datetime] = None) -> List[str]:
        """Auto-reject pending approvals older than the pending TTL."""
        if self.pending_ttl is None:
            return []

        now = now or self.clock()
        expired = []
        for approval in self.store.list(lambda a: a.get("status") == PENDING):
            approval_id = approval["id"]
            created = _parse_time(approval.get("created_at"))
            if created is None or now - created < self.pending_ttl:
                continue
            if self._lock_for(approval_id).locked():
                continue

            approval.update({
                "status": REJECTED,
                "decision": REJECT,
                "decided_by": AUTO_EXPIRY_ACTOR,
                "decided_by_id": AUTO_EXPIRY_ACTOR,
                "decided_at": now.isoformat(),
            })
            self.store.put(approval_id, approval)
            expired.append(approval_id)

        if expired:
            logger.info(f"Auto-rejected {len(expired)} stale pending approvals")
        return expired

    def purge_resolved(self, now: Optional[datetime] = None) -> List[str]:
        """Drop decided approvals once the retention window has passed."""
        now = now or self.clock()
        purged = []
        for approval in self.store.list(lambda a: a.get("status") != PENDING):
            approval_id = approval["id"]
            decided = _parse_time(approval.get("decided_at"))
            if decided is None or now - decided < self.retention:
                continue
            self.store.remove(approval_id)
            self._locks.pop(approval_id, None)
            purged.append(approval_id)

        if purged:
            logger.info(f"Purged {len(purged)} resolved approvals")
        return purged
