import pytest
import os
import sys
import random
from unittest.mock import patch, AsyncMock

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from graph.nodes.research import research, research_prospects, simulate_club_research
from graph.nodes.request_approval import request_approval
from graph.nodes.summarize import build_run_result, summarize
from graph.prospecting import run_prospecting
from tools.errors import ExternalGatewayError


class TestResearch:
    """Test the simulated club research."""

    def test_simulate_club_research(self):
        academy, center = simulate_club_research("soccer", "Texas", random.Random(1))

        assert academy["club_name"] == "Texas Elite Soccer Academy"
        assert center["club_name"] == "Texas Soccer Training Center"
        assert academy["competition_level"] in ("Regional", "State", "National")
        assert center["competition_level"] in ("Local", "Regional")
        assert 100 <= academy["estimated_athletes"] < 600
        assert academy["contact_info"]["email"] == "info@texaselitesoccer.com"
        assert academy["source"] == "bd_research_agent"

    @pytest.mark.asyncio
    async def test_research_default_targets(self):
        prospects = await research_prospects(seed=7, delay=0)

        # 5 sports x 3 regions x 2 clubs
        assert len(prospects) == 30

    @pytest.mark.asyncio
    async def test_research_is_reproducible_with_seed(self):
        first = await research_prospects(["golf"], ["Ohio"], seed=42, delay=0)
        second = await research_prospects(["golf"], ["Ohio"], seed=42, delay=0)

        assert first == second

    @pytest.mark.asyncio
    async def test_research_node_keeps_supplied_prospects(self, elite_prospect):
        state = {"run_id": "run_test", "prospects": [elite_prospect], "errors": []}

        result = await research(state)

        assert result["prospects"] == [elite_prospect]


class TestProspectingNodes:
    """Test the approval and summary nodes on their own."""

    @pytest.mark.asyncio
    async def test_request_approval_node(self, workflow, elite_prospect):
        from graph.nodes.score import to_scored_lead

        state = {
            "run_id": "run_test",
            "qualified": [to_scored_lead(elite_prospect)],
            "notifications": [],
            "errors": []
        }

        with patch("graph.nodes.request_approval.summarize_lead", new=AsyncMock(return_value="• 450 athletes")):
            result = await request_approval(state, workflow)

        assert result["approvals"][0]["status"] == "approval_sent"
        assert result["notifications"][0].startswith("approval:lead_")
        assert result["qualified"][0]["summary"] == "• 450 athletes"

        approval = workflow.get(result["approvals"][0]["approvalId"])
        assert approval["lead_data"]["summary"] == "• 450 athletes"

    def test_build_run_result(self):
        state = {
            "run_id": "run_test",
            "prospects": [{}] * 10,
            "qualified": [{"club_name": f"Club {i}", "location": "Ohio, USA", "score": 90 - i, "estimated_athletes": 300}
                          for i in range(7)],
            "approvals": [{"status": "approval_sent"}] * 6 + [{"status": "error"}],
            "errors": ["one lead failed"]
        }

        result = build_run_result(state)

        assert result["success"] is True
        assert result["prospectsResearched"] == 10
        assert result["qualifiedLeads"] == 7
        assert result["approvalsSent"] == 6
        assert len(result["topProspects"]) == 5
        assert result["topProspects"][0] == {"name": "Club 0", "location": "Ohio, USA", "score": 90, "athleteReach": 300}
        assert result["summary"] == "Researched 10 sports clubs, qualified 7 leads, sent 6 approval requests"

    @pytest.mark.asyncio
    async def test_summarize_notification_failure(self, notifier):
        notifier.send_run_summary.side_effect = ExternalGatewayError("slack", "timeout")
        state = {"run_id": "run_test", "prospects": [], "qualified": [], "approvals": [], "errors": []}

        result = await summarize(state, notifier)

        assert result["result"]["success"] is True
        assert "Run summary notification failed" in result["errors"][0]


class TestProspectingRun:
    """Test complete prospecting runs through the graph."""

    @pytest.mark.asyncio
    async def test_run_with_mixed_prospects(self, workflow, notifier, elite_prospect, weak_prospect):
        with patch("graph.nodes.request_approval.summarize_lead", new=AsyncMock(return_value="Summary")):
            result = await run_prospecting(workflow, notifier, prospects=[weak_prospect, elite_prospect])

        assert result["success"] is True
        assert result["prospectsResearched"] == 2
        assert result["qualifiedLeads"] == 1
        assert result["approvalsSent"] == 1
        assert result["topProspects"][0]["name"] == "Bay Area Elite Soccer Academy"
        assert len(workflow.pending()) == 1
        notifier.send_approval_request.assert_awaited_once()
        notifier.send_run_summary.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_run_with_no_qualified_leads(self, workflow, notifier, weak_prospect):
        summarize_mock = AsyncMock(return_value="Summary")

        with patch("graph.nodes.request_approval.summarize_lead", new=summarize_mock):
            result = await run_prospecting(workflow, notifier, prospects=[weak_prospect])

        assert result["qualifiedLeads"] == 0
        assert result["approvalsSent"] == 0
        assert len(workflow.pending()) == 0
        summarize_mock.assert_not_awaited()
        notifier.send_approval_request.assert_not_awaited()
        notifier.send_run_summary.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_seeded_research_run(self, workflow, notifier, monkeypatch):
        monkeypatch.setenv("RESEARCH_DELAY_SECONDS", "0")

        with patch("graph.nodes.request_approval.summarize_lead", new=AsyncMock(return_value="Summary")):
            result = await run_prospecting(workflow, notifier, seed=3)

        assert result["prospectsResearched"] == 30
        assert result["approvalsSent"] == result["qualifiedLeads"]
        assert len(workflow.pending()) == result["qualifiedLeads"]

    @pytest.mark.asyncio
    async def test_run_failure_sends_alert(self, workflow, notifier):
        with patch("graph.prospecting.build_prospecting_graph", side_effect=RuntimeError("graph exploded")):
            result = await run_prospecting(workflow, notifier)

        assert result["success"] is False
        assert result["error"] == "graph exploded"
        notifier.send_failure_alert.assert_awaited_once()


if __name__ == "__main__":
    # Run tests
    pytest.main([__file__, "-v"])
