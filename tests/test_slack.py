from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from tools.errors import ExternalGatewayError
from tools.slack import SlackNotifier


class TestSlackMessages:
    """Test the structured messages sent to Slack."""

    def setup_method(self):
        self.notifier = SlackNotifier(webhook_url="https://hooks.slack.test/T000/B000",
                                      public_url="https://bd.example.com/")
        self.lead = {
            "club_name": "Texas Elite Soccer Academy",
            "sport": "soccer",
            "location": "Texas, USA",
            "estimated_athletes": 420,
            "score": 88,
            "priority": "High",
            "competition_level": "State",
            "contact_info": {"email": "info@texaselitesoccer.com"},
            "key_personnel": [{"name": "Mike Brown", "role": "Director"}],
            "summary": "• 420 athletes to reach"
        }

    def test_approval_request_buttons(self):
        message = self.notifier.build_approval_request(self.lead, "lead_1_abc")

        actions = message["blocks"][-1]
        assert actions["type"] == "actions"
        approve, skip, details = actions["elements"]
        assert approve["action_id"] == "create_hubspot_deal"
        assert approve["value"] == "lead_1_abc"
        assert skip["action_id"] == "skip_lead"
        assert skip["value"] == "lead_1_abc"
        assert details["url"] == "https://bd.example.com/lead-details/lead_1_abc"
        assert "88/100" in message["text"]

    def test_approval_request_includes_personnel_and_summary(self):
        message = self.notifier.build_approval_request(self.lead, "lead_1_abc")

        texts = [block["text"]["text"] for block in message["blocks"] if "text" in block]
        assert any("Mike Brown (Director)" in text for text in texts)
        assert any("420 athletes to reach" in text for text in texts)

    def test_deal_created_message(self):
        message = self.notifier.build_deal_created(
            self.lead, {"contactId": "101", "dealId": "202", "hubspotUrl": "https://app.hubspot.com/x"}, "alice", 86625
        )

        fields = [f["text"] for f in message["blocks"][1]["fields"]]
        assert "*Estimated Value*\n$86,625" in fields
        assert "*Approved By*\nalice" in fields
        assert message["blocks"][-1]["elements"][0]["url"] == "https://app.hubspot.com/x"

    def test_automation_update_colors(self):
        message = self.notifier.build_automation_update("Sports Club Prospector", "failed", {"error": "boom"})

        attachment = message["attachments"][0]
        assert attachment["color"] == "#F44336"
        assert attachment["fields"][0] == {"title": "Error", "value": "boom", "short": True}

    def test_run_summary_without_prospects(self):
        message = self.notifier.build_run_summary({"summary": "Researched 0 sports clubs", "topProspects": []})

        assert "• None" in message["blocks"][-1]["text"]["text"]


class TestSlackDelivery:
    """Test webhook delivery and failure handling."""

    def setup_method(self):
        self.notifier = SlackNotifier(webhook_url="https://hooks.slack.test/T000/B000", channel="#bd-test")

    @pytest.mark.asyncio
    async def test_send_message(self):
        with patch("tools.slack.AsyncWebhookClient") as client_cls:
            client_cls.return_value.send_dict = AsyncMock(return_value=MagicMock(status_code=200, body="ok"))

            await self.notifier.send_message({"text": "hello"})

            payload = client_cls.return_value.send_dict.call_args.args[0]
            assert payload["channel"] == "#bd-test"
            assert payload["username"] == "BD Research Agent"
            assert payload["text"] == "hello"

    @pytest.mark.asyncio
    async def test_non_200_raises(self):
        with patch("tools.slack.AsyncWebhookClient") as client_cls:
            client_cls.return_value.send_dict = AsyncMock(return_value=MagicMock(status_code=404, body="no_service"))

            with pytest.raises(ExternalGatewayError) as exc_info:
                await self.notifier.send_lead_skipped({"club_name": "Test Club"}, "alice", 15000)

        assert exc_info.value.service == "slack"

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        with patch("tools.slack.AsyncWebhookClient") as client_cls:
            client_cls.return_value.send_dict = AsyncMock(side_effect=TimeoutError("timed out"))

            with pytest.raises(ExternalGatewayError):
                await self.notifier.send_failure_alert("Sports Club Prospector", RuntimeError("boom"))

    @pytest.mark.asyncio
    async def test_mock_mode_skips_webhook(self, monkeypatch):
        monkeypatch.delenv("SLACK_WEBHOOK_URL", raising=False)
        notifier = SlackNotifier()

        with patch("tools.slack.AsyncWebhookClient") as client_cls:
            await notifier.send_approval_request({"club_name": "Test Club"}, "lead_1_abc")

        client_cls.assert_not_called()
