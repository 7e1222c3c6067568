import os
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Optional

import httpx
from loguru import logger

from tools.errors import ExternalGatewayError

# Custom contact properties used for lead tracking
LEAD_SCORE = "lead_score"
LEAD_SOURCE_DETAIL = "lead_source_detail"
SPORT_TYPE = "sport_type"
ATHLETE_COUNT = "athlete_count"
CLUB_LOCATION = "club_location"
APPROVAL_STATUS = "approval_status"
VIEW_COUNT = "view_count"
LAST_VIEWED_BY = "last_viewed_by"

# HubSpot-defined association type ids
DEAL_TO_CONTACT = 3
NOTE_TO_CONTACT = 202


class HubSpotClient:
    """HubSpot CRM client for lead contacts, deals, notes and metrics."""

    def __init__(self, access_token: Optional[str] = None, portal_id: Optional[str] = None,
                 timeout: Optional[float] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.access_token = access_token or os.getenv("HUBSPOT_ACCESS_TOKEN")
        self.portal_id = portal_id or os.getenv("HUBSPOT_PORTAL_ID", "")
        self.base_url = os.getenv("HUBSPOT_BASE_URL", "https://api.hubapi.com")
        self.timeout = timeout if timeout is not None else float(os.getenv("DEFAULT_TIMEOUT", "30"))
        self.transport = transport

        if not self.access_token:
            logger.warning("No HubSpot access token provided, using mock mode")

    def _get_headers(self) -> Dict[str, str]:
        """Get headers for HubSpot API requests."""
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json"
        }

    def contact_url(self, contact_id: str) -> str:
        return f"https://app.hubspot.com/contacts/{self.portal_id}/contact/{contact_id}"

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        """Send one API request and return the decoded JSON body."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.request(
                    method,
                    f"{self.base_url}{path}",
                    headers=self._get_headers(),
                    **kwargs
                )
                response.raise_for_status()
                if response.status_code == 204 or not response.content:
                    return {}
                return response.json()
        except httpx.HTTPStatusError as e:
            raise ExternalGatewayError("hubspot", f"{method} {path} returned {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise ExternalGatewayError("hubspot", f"{method} {path} failed: {e}") from e
        except ValueError as e:
            raise ExternalGatewayError("hubspot", f"{method} {path} returned malformed JSON") from e

    async def create_lead(self, lead: Dict[str, Any]) -> Dict[str, str]:
        """
        Create a contact and an associated deal for an approved lead.

        Args:
            lead: CRM lead input (club name, contact details, score, estimated value...)

        Returns:
            Dict with contactId, dealId and hubspotUrl
        """
        if not self.access_token:
            logger.info("Using mock lead creation")
            return self._mock_lead_creation(lead)

        club_name = lead.get("clubName") or "Unknown Club"
        contact_properties = {
            "email": lead.get("contactEmail") or f"contact@{club_name.lower().replace(' ', '')}.com",
            "firstname": lead.get("contactName") or "Contact",
            "lastname": f"({club_name})",
            "company": club_name,
            "phone": lead.get("contactPhone") or "",
            "city": lead.get("location") or "",
            "lifecyclestage": "lead",
            LEAD_SCORE: str(lead.get("score", 0)),
            SPORT_TYPE: lead.get("sport") or "",
            ATHLETE_COUNT: str(lead.get("athletes", 0)),
            CLUB_LOCATION: lead.get("location") or "",
            APPROVAL_STATUS: "approved",
            LEAD_SOURCE_DETAIL: lead.get("source") or "bd_research_agent",
        }

        contact = await self._request(
            "POST", "/crm/v3/objects/contacts", json={"properties": contact_properties}
        )
        contact_id = contact.get("id")
        if not contact_id:
            raise ExternalGatewayError("hubspot", "contact response had no id")

        close_date = (datetime.now(timezone.utc) + timedelta(days=30)).date().isoformat()
        deal_properties = {
            "dealname": f"{club_name} - {lead.get('sport', '')}",
            "dealstage": "qualifiedtobuy",
            "pipeline": "default",
            "amount": str(lead.get("estimatedValue", 0)),
            "closedate": close_date,
            "dealtype": "newbusiness",
            "description": (
                f"Lead from {lead.get('sport')} club with {lead.get('athletes')} athletes "
                f"in {lead.get('location')}. Lead score: {lead.get('score')}/100"
            ),
        }

        deal = await self._request(
            "POST",
            "/crm/v3/objects/deals",
            json={
                "properties": deal_properties,
                "associations": [{
                    "to": {"id": contact_id},
                    "types": [{"associationCategory": "HUBSPOT_DEFINED", "associationTypeId": DEAL_TO_CONTACT}]
                }]
            }
        )
        deal_id = deal.get("id")
        if not deal_id:
            raise ExternalGatewayError("hubspot", "deal response had no id")

        logger.info(f"Created HubSpot contact {contact_id} and deal {deal_id} for {club_name}")
        return {
            "contactId": str(contact_id),
            "dealId": str(deal_id),
            "hubspotUrl": self.contact_url(contact_id)
        }

    async def add_note(self, contact_id: str, text: str) -> None:
        """Attach a note to a contact."""
        if not self.access_token:
            logger.info(f"Mock mode: would add note to contact {contact_id}")
            return

        await self._request(
            "POST",
            "/crm/v3/objects/notes",
            json={
                "properties": {
                    "hs_note_body": text,
                    "hs_timestamp": datetime.now(timezone.utc).isoformat()
                },
                "associations": [{
                    "to": {"id": contact_id},
                    "types": [{"associationCategory": "HUBSPOT_DEFINED", "associationTypeId": NOTE_TO_CONTACT}]
                }]
            }
        )

    async def track_view(self, contact_id: str, viewer_id: str) -> int:
        """Increment the contact's view counter and return the new count."""
        if not self.access_token:
            logger.info(f"Mock mode: would track view of contact {contact_id}")
            return 0

        contact = await self._request(
            "GET", f"/crm/v3/objects/contacts/{contact_id}", params={"properties": VIEW_COUNT}
        )
        try:
            current = int(contact.get("properties", {}).get(VIEW_COUNT) or 0)
        except (TypeError, ValueError):
            current = 0

        await self._request(
            "PATCH",
            f"/crm/v3/objects/contacts/{contact_id}",
            json={"properties": {VIEW_COUNT: str(current + 1), LAST_VIEWED_BY: viewer_id}}
        )
        return current + 1

    async def get_lead_details(self, contact_id: str) -> Dict[str, Any]:
        """Fetch contact properties for the lead detail view."""
        if not self.access_token:
            return {"contact": {}, "hubspotUrl": self.contact_url(contact_id)}

        properties = [
            "firstname", "lastname", "company", "email", "phone", "city", "lifecyclestage",
            LEAD_SCORE, SPORT_TYPE, ATHLETE_COUNT, APPROVAL_STATUS, VIEW_COUNT, LAST_VIEWED_BY,
        ]
        contact = await self._request(
            "GET", f"/crm/v3/objects/contacts/{contact_id}", params={"properties": ",".join(properties)}
        )
        return {"contact": contact.get("properties", {}), "hubspotUrl": self.contact_url(contact_id)}

    async def get_lead_metrics(self, days: int = 30) -> Dict[str, Any]:
        """Aggregate lead and deal stats for records created in the last `days` days."""
        if not self.access_token:
            logger.info("Using mock lead metrics")
            return self._summarize_metrics([], [])

        since = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()
        created_since = [{"filters": [{"propertyName": "createdate", "operator": "GTE", "value": since}]}]

        contacts = await self._request(
            "POST",
            "/crm/v3/objects/contacts/search",
            json={"filterGroups": created_since, "properties": ["createdate", LEAD_SCORE, APPROVAL_STATUS], "limit": 100}
        )
        deals = await self._request(
            "POST",
            "/crm/v3/objects/deals/search",
            json={"filterGroups": created_since, "properties": ["createdate", "dealstage", "amount"], "limit": 100}
        )
        return self._summarize_metrics(contacts.get("results", []), deals.get("results", []))

    def _summarize_metrics(self, contacts: list, deals: list) -> Dict[str, Any]:
        def prop(record, name):
            return (record.get("properties") or {}).get(name)

        def as_float(value):
            try:
                return float(value or 0)
            except (TypeError, ValueError):
                return 0.0

        total = len(contacts)
        approved = sum(1 for c in contacts if prop(c, APPROVAL_STATUS) == "approved")
        rejected = sum(1 for c in contacts if prop(c, APPROVAL_STATUS) == "rejected")
        closed_won = sum(1 for d in deals if prop(d, "dealstage") == "closedwon")

        return {
            "totalLeads": total,
            "approvedLeads": approved,
            "rejectedLeads": rejected,
            "pendingLeads": total - approved - rejected,
            "closedWonDeals": closed_won,
            "totalPipelineValue": sum(as_float(prop(d, "amount")) for d in deals),
            "avgLeadScore": sum(as_float(prop(c, LEAD_SCORE)) for c in contacts) / total if total else 0,
            "conversionRate": closed_won / total * 100 if total else 0,
            "approvalRate": approved / total * 100 if total else 0,
        }

    def _mock_lead_creation(self, lead: Dict[str, Any]) -> Dict[str, str]:
        """Mock lead creation for local runs."""
        return {
            "contactId": "mock_contact_12345",
            "dealId": "mock_deal_67890",
            "hubspotUrl": self.contact_url("mock_contact_12345")
        }
