from datetime import datetime, timezone
from typing import Dict, List, Optional

from graph.state import Prospect, ProspectingState, ScoredLead
from loguru import logger

MIN_QUALIFICATION_SCORE = 60
MAX_SCORE = 100

# Points per competition tier; anything unlisted scores as Local
COMPETITION_POINTS = {
    "National": 25,
    "State": 20,
    "Regional": 15,
    "Local": 10,
}


def _current_year(current_year: Optional[int]) -> int:
    return current_year if current_year is not None else datetime.now(timezone.utc).year


def reach_points(athletes: int) -> int:
    """Athlete reach, up to 40 points."""
    if athletes >= 300:
        return 40
    if athletes >= 200:
        return 30
    if athletes >= 100:
        return 20
    return 10


def competition_points(level: Optional[str]) -> int:
    """Competition level, up to 25 points."""
    return COMPETITION_POINTS.get(level or "", COMPETITION_POINTS["Local"])


def facility_points(facilities: int) -> int:
    """Facility count, up to 15 points."""
    return min(max(facilities, 0) * 2, 15)


def age_group_points(age_groups: List[str]) -> int:
    """Age-group diversity, up to 10 points."""
    return min(len(set(age_groups)) * 3, 10)


def longevity_points(founded_year: Optional[int], current_year: int) -> int:
    """Years in operation, up to 10 points."""
    years = current_year - founded_year if founded_year else 0
    if years >= 15:
        return 10
    if years >= 10:
        return 8
    if years >= 5:
        return 6
    return 4


def score_breakdown(prospect: Prospect, current_year: Optional[int] = None) -> Dict[str, int]:
    """Per-factor points for a prospect."""
    year = _current_year(current_year)
    return {
        "reach": reach_points(prospect.get("estimated_athletes") or 0),
        "competition": competition_points(prospect.get("competition_level")),
        "facilities": facility_points(prospect.get("facilities") or 0),
        "age_groups": age_group_points(prospect.get("age_groups") or []),
        "longevity": longevity_points(prospect.get("founded_year"), year),
    }


def score_prospect(prospect: Prospect, current_year: Optional[int] = None) -> int:
    """Weighted lead score in [0, 100]."""
    return min(sum(score_breakdown(prospect, current_year).values()), MAX_SCORE)


def is_qualified(score: int) -> bool:
    return score >= MIN_QUALIFICATION_SCORE


def priority_for(score: int) -> str:
    if score >= 80:
        return "High"
    if score >= 70:
        return "Medium"
    return "Low"


def to_scored_lead(prospect: Prospect, current_year: Optional[int] = None,
                   qualified_at: Optional[datetime] = None) -> ScoredLead:
    """Build a new ScoredLead; the prospect itself is left untouched."""
    lead_score = score_prospect(prospect, current_year)
    lead: ScoredLead = dict(prospect)  # type: ignore[assignment]
    lead["score"] = lead_score
    lead["priority"] = priority_for(lead_score)
    lead["qualification_date"] = (qualified_at or datetime.now(timezone.utc)).isoformat()
    return lead


def score_and_qualify(prospects: List[Prospect], current_year: Optional[int] = None) -> List[ScoredLead]:
    """Score every prospect and keep the qualified ones, best first."""
    qualified = []
    for prospect in prospects:
        lead = to_scored_lead(prospect, current_year)
        if is_qualified(lead["score"]):
            qualified.append(lead)

    qualified.sort(key=lambda lead: lead["score"], reverse=True)
    logger.info(f"Qualified {len(qualified)} leads from {len(prospects)} prospects")
    return qualified


def score(state: ProspectingState) -> ProspectingState:
    """Score researched prospects and keep those above the qualification bar."""
    logger.info(f"Starting scoring for run: {state.get('run_id', 'unknown')}")

    try:
        state["qualified"] = score_and_qualify(state.get("prospects", []))
    except Exception as e:
        error_msg = f"Scoring failed: {str(e)}"
        logger.error(error_msg)
        state.setdefault("errors", []).append(error_msg)
        state["qualified"] = []

    return state
