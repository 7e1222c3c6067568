import copy
import os
import sys
from unittest.mock import AsyncMock

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from graph.approval import ApprovalWorkflow
from tools.approval_store import ApprovalStore


class MemoryBackend:
    """Snapshot backend kept in a dict; survives store re-creation like a file would."""

    def __init__(self):
        self.snapshot = {}
        self.saves = 0

    def load(self):
        return copy.deepcopy(self.snapshot)

    def save(self, approvals):
        self.snapshot = copy.deepcopy(approvals)
        self.saves += 1


@pytest.fixture
def memory_backend():
    return MemoryBackend()


@pytest.fixture
def crm():
    crm = AsyncMock()
    crm.access_token = None
    crm.create_lead.return_value = {
        "contactId": "101",
        "dealId": "202",
        "hubspotUrl": "https://app.hubspot.com/contacts/999/contact/101"
    }
    return crm


@pytest.fixture
def notifier():
    notifier = AsyncMock()
    notifier.webhook_url = None
    return notifier


@pytest.fixture
def workflow(memory_backend, crm, notifier):
    return ApprovalWorkflow(ApprovalStore(memory_backend), crm, notifier)


@pytest.fixture
def elite_prospect():
    """Scores 40 + 25 + 6 + 9 + 10 = 90 in 2026."""
    return {
        "club_name": "Bay Area Elite Soccer Academy",
        "sport": "soccer",
        "location": "California, USA",
        "website": "https://www.bayareaelitesoccer.com",
        "estimated_athletes": 450,
        "age_groups": ["Youth", "High School", "College Prep"],
        "competition_level": "National",
        "facilities": 3,
        "founded_year": 2008,
        "contact_info": {"email": "info@bayareaelitesoccer.com", "phone": "(555) 123-4567"},
        "key_personnel": [{"name": "Sarah Davis", "role": "Director", "email": "director@bayareaelitesoccer.com"}],
        "source": "bd_research_agent"
    }


@pytest.fixture
def weak_prospect():
    """Scores 10 + 10 + 2 + 3 + 4 = 29 in 2026."""
    return {
        "club_name": "Springfield Tennis Club",
        "sport": "tennis",
        "location": "Illinois, USA",
        "estimated_athletes": 50,
        "age_groups": ["Adult"],
        "competition_level": "Local",
        "facilities": 1,
        "founded_year": 2024,
        "contact_info": {"email": "hello@springfieldtennis.com"},
        "key_personnel": [],
        "source": "bd_research_agent"
    }
