import os
import time
from typing import Dict, Any, List, Optional

from loguru import logger
from slack_sdk.webhook.async_client import AsyncWebhookClient

from tools.errors import ExternalGatewayError

BOT_USERNAME = "BD Research Agent"

STATUS_COLORS = {
    "started": "#2196F3",
    "completed": "#4CAF50",
    "failed": "#F44336",
    "warning": "#FF9800",
}


def _field(label: str, value: Any) -> Dict[str, str]:
    return {"type": "mrkdwn", "text": f"*{label}*\n{value}"}


def _section(text: str) -> Dict[str, Any]:
    return {"type": "section", "text": {"type": "mrkdwn", "text": text}}


class SlackNotifier:
    """Slack integration for approval prompts and BD automation updates."""

    def __init__(self, webhook_url: Optional[str] = None, channel: Optional[str] = None,
                 public_url: Optional[str] = None, timeout: Optional[float] = None):
        self.webhook_url = webhook_url or os.getenv("SLACK_WEBHOOK_URL")
        self.channel = channel or os.getenv("SLACK_CHANNEL", "#bd-automation")
        self.public_url = (public_url or os.getenv("PUBLIC_BASE_URL", "http://localhost:8000")).rstrip("/")
        self.timeout = int(timeout if timeout is not None else float(os.getenv("DEFAULT_TIMEOUT", "30")))

        if not self.webhook_url:
            logger.warning("No Slack webhook URL provided, using mock mode")

    async def send_message(self, message: Dict[str, Any]) -> None:
        """
        Post one structured message to the Slack webhook.

        Raises:
            ExternalGatewayError: the webhook call failed or Slack did not answer 200
        """
        if not self.webhook_url:
            logger.info(f"Mock mode: would send Slack message: {message.get('text', '')}")
            return

        payload = {"channel": self.channel, "username": BOT_USERNAME, **message}
        try:
            client = AsyncWebhookClient(self.webhook_url, timeout=self.timeout)
            response = await client.send_dict(payload)
        except Exception as e:
            raise ExternalGatewayError("slack", str(e)) from e

        if response.status_code != 200:
            raise ExternalGatewayError("slack", f"webhook returned {response.status_code}: {response.body}")

        logger.info("Sent to Slack successfully")

    async def send_approval_request(self, lead: Dict[str, Any], approval_id: str) -> None:
        await self.send_message(self.build_approval_request(lead, approval_id))

    async def send_deal_created(self, lead: Dict[str, Any], crm_result: Dict[str, Any],
                                approved_by: str, deal_value: int) -> None:
        await self.send_message(self.build_deal_created(lead, crm_result, approved_by, deal_value))

    async def send_deal_error(self, lead: Dict[str, Any], error: Exception, requested_by: str) -> None:
        await self.send_message(self.build_deal_error(lead, error, requested_by))

    async def send_lead_skipped(self, lead: Dict[str, Any], skipped_by: str, deal_value: int) -> None:
        await self.send_message(self.build_lead_skipped(lead, skipped_by, deal_value))

    async def send_automation_update(self, automation: Optional[str], status: Optional[str],
                                     details: Optional[Dict[str, Any]] = None) -> None:
        await self.send_message(self.build_automation_update(automation, status, details))

    async def send_run_summary(self, result: Dict[str, Any]) -> None:
        await self.send_message(self.build_run_summary(result))

    async def send_failure_alert(self, automation: str, error: Exception) -> None:
        await self.send_message(self.build_automation_update(automation, "failed", {"error": str(error)}))

    def lead_details_url(self, approval_id: str) -> str:
        return f"{self.public_url}/lead-details/{approval_id}"

    def build_approval_request(self, lead: Dict[str, Any], approval_id: str) -> Dict[str, Any]:
        """Build the interactive approval prompt for a qualified lead."""
        contact = lead.get("contact_info") or {}
        personnel = lead.get("key_personnel") or []
        club = lead.get("club_name", "Unknown club")

        people = "\n".join(f"• {p.get('name', 'Unknown')} ({p.get('role', 'Contact')})" for p in personnel)
        blocks: List[Dict[str, Any]] = [
            _section(f":dart: *New Qualified Lead Found: {club}*\n_BD Research Agent has identified a high-value prospect_"),
            {
                "type": "section",
                "fields": [
                    _field("Sport", lead.get("sport", "Unknown")),
                    _field("Location", lead.get("location", "Unknown")),
                    _field("Athletes", lead.get("estimated_athletes", "Unknown")),
                    _field("Lead Score", f"{lead.get('score', 0)}/100"),
                    _field("Priority", lead.get("priority", "Unknown")),
                    _field("Competition Level", lead.get("competition_level", "Unknown")),
                ]
            },
            _section(
                f"*Contact Information*\n:email: {contact.get('email', 'N/A')}\n"
                f":phone: {contact.get('phone', 'N/A')}\n:globe_with_meridians: {lead.get('website', 'N/A')}"
            ),
        ]
        if people:
            blocks.append(_section(f"*Key Personnel*\n{people}"))
        if lead.get("summary"):
            blocks.append(_section(f"*Why This Lead Matters*\n{lead['summary']}"))

        blocks.append({
            "type": "actions",
            "elements": [
                {
                    "type": "button",
                    "text": {"type": "plain_text", "text": "✅ Create HubSpot Deal"},
                    "style": "primary",
                    "action_id": "create_hubspot_deal",
                    "value": approval_id
                },
                {
                    "type": "button",
                    "text": {"type": "plain_text", "text": "❌ Skip This Lead"},
                    "style": "danger",
                    "action_id": "skip_lead",
                    "value": approval_id
                },
                {
                    "type": "button",
                    "text": {"type": "plain_text", "text": "📋 View Details"},
                    "url": self.lead_details_url(approval_id)
                }
            ]
        })

        return {
            "text": f"New qualified lead: {club} ({lead.get('score', 0)}/100)",
            "icon_emoji": ":dart:",
            "blocks": blocks
        }

    def build_deal_created(self, lead: Dict[str, Any], crm_result: Dict[str, Any],
                           approved_by: str, deal_value: int) -> Dict[str, Any]:
        club = lead.get("club_name", "Unknown club")
        return {
            "text": f"HubSpot deal created for {club}",
            "icon_emoji": ":white_check_mark:",
            "blocks": [
                _section(f":white_check_mark: *HubSpot Deal Created Successfully!*\n*{club}* has been added to your sales pipeline"),
                {
                    "type": "section",
                    "fields": [
                        _field("Contact ID", crm_result.get("contactId")),
                        _field("Deal ID", crm_result.get("dealId")),
                        _field("Approved By", approved_by),
                        _field("Estimated Value", f"${deal_value:,}"),
                    ]
                },
                _section("*Next Steps*\n• Follow up with initial outreach\n• Schedule discovery call\n"
                         "• Send personalized proposal\n• Track engagement in HubSpot"),
                {
                    "type": "actions",
                    "elements": [{
                        "type": "button",
                        "text": {"type": "plain_text", "text": "View in HubSpot"},
                        "url": crm_result.get("hubspotUrl"),
                        "style": "primary"
                    }]
                }
            ]
        }

    def build_deal_error(self, lead: Dict[str, Any], error: Exception, requested_by: str) -> Dict[str, Any]:
        club = lead.get("club_name", "Unknown club")
        return {
            "text": f"Error creating HubSpot deal for {club}",
            "icon_emoji": ":x:",
            "blocks": [
                _section(f":x: *Error Creating HubSpot Deal*\nFailed to create deal for *{club}*"),
                {
                    "type": "section",
                    "fields": [
                        _field("Error", str(error)),
                        _field("Requested By", requested_by),
                        _field("Lead Score", f"{lead.get('score', 0)}/100"),
                    ]
                },
                _section("*Retry Available*\nThe lead is still pending. Click *Create HubSpot Deal* again to retry."),
            ]
        }

    def build_lead_skipped(self, lead: Dict[str, Any], skipped_by: str, deal_value: int) -> Dict[str, Any]:
        club = lead.get("club_name", "Unknown club")
        return {
            "text": f"Lead skipped: {club}",
            "icon_emoji": ":heavy_minus_sign:",
            "blocks": [
                _section(f":heavy_minus_sign: *Lead Skipped*\n*{club}* was skipped by {skipped_by}"),
                {
                    "type": "section",
                    "fields": [
                        _field("Reason", "Manually skipped"),
                        _field("Lead Score", f"{lead.get('score', 0)}/100"),
                        _field("Potential Value", f"${deal_value:,}"),
                    ]
                }
            ]
        }

    def build_automation_update(self, automation: Optional[str], status: Optional[str],
                                details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return {
            "text": f":robot_face: {automation or 'Automation'} - {status or 'update'}",
            "attachments": [{
                "color": STATUS_COLORS.get(status or "", "#9E9E9E"),
                "fields": [
                    {"title": key.replace("_", " ").capitalize(), "value": str(value), "short": True}
                    for key, value in (details or {}).items()
                ],
                "footer": "BD Automation",
                "ts": int(time.time())
            }]
        }

    def build_run_summary(self, result: Dict[str, Any]) -> Dict[str, Any]:
        top = "\n".join(
            f"• {p.get('name')} ({p.get('location')}) - {p.get('score')}/100"
            for p in result.get("topProspects", [])
        ) or "• None"
        return {
            "text": f":bar_chart: Prospecting run complete: {result.get('summary', '')}",
            "blocks": [
                _section(f":bar_chart: *Sports Club Prospecting Run*\n{result.get('summary', '')}"),
                {
                    "type": "section",
                    "fields": [
                        _field("Prospects Researched", result.get("prospectsResearched", 0)),
                        _field("Qualified Leads", result.get("qualifiedLeads", 0)),
                        _field("Approvals Sent", result.get("approvalsSent", 0)),
                    ]
                },
                _section(f"*Top Prospects*\n{top}"),
            ]
        }
