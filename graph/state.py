from typing import TypedDict, Optional, List, Dict, Any


class ContactInfo(TypedDict, total=False):
    email: str
    phone: str
    address: str


class KeyPerson(TypedDict, total=False):
    name: str
    role: str
    email: str


class Prospect(TypedDict, total=False):
    """Researched sports club or academy, before scoring."""
    club_name: str
    sport: str
    location: str
    website: str
    estimated_athletes: int
    age_groups: List[str]
    competition_level: str           # "National" | "State" | "Regional" | "Local"
    facilities: int
    founded_year: int
    contact_info: ContactInfo
    key_personnel: List[KeyPerson]
    source: str


class ScoredLead(Prospect, total=False):
    """Prospect annotated with its qualification score."""
    score: int                       # 0-100
    priority: str                    # "High" | "Medium" | "Low"
    qualification_date: str          # ISO timestamp
    summary: str


class CrmResult(TypedDict):
    contactId: str
    dealId: str
    hubspotUrl: str


class Approval(TypedDict, total=False):
    """Trackable unit of the human approval workflow."""
    id: str
    lead_data: ScoredLead            # frozen snapshot taken at registration
    status: str                      # "pending" | "approved" | "rejected"
    created_at: str
    decision: Optional[str]          # "approve" | "reject" | "skip"
    decided_by: Optional[str]
    decided_by_id: Optional[str]
    decided_at: Optional[str]
    external_result: Optional[CrmResult]
    view_count: int
    last_viewed_by: Optional[str]
    last_viewed_at: Optional[str]


class DecisionResult(TypedDict, total=False):
    approval_id: str
    success: bool
    status: str
    message: str
    duplicate: bool
    external_result: Optional[CrmResult]


class ProspectingState(TypedDict, total=False):
    """State shape for the prospecting workflow."""
    run_id: str
    seed: Optional[int]
    prospects: List[Prospect]
    qualified: List[ScoredLead]
    approvals: List[Dict[str, Any]]  # per-lead registration outcomes
    result: Dict[str, Any]
    notifications: List[str]
    errors: List[str]
