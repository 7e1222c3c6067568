import asyncio
import os
import random
from typing import List, Optional

from graph.state import Prospect, ProspectingState
from loguru import logger

TARGET_SPORTS = [
    "football", "soccer", "basketball", "baseball", "tennis", "golf",
    "swimming", "track and field", "wrestling", "volleyball", "lacrosse",
    "hockey", "rugby", "cricket", "softball", "cross country",
]

TARGET_REGIONS = [
    "California", "Texas", "Florida", "New York", "Illinois", "Pennsylvania",
    "Ohio", "Georgia", "North Carolina", "Michigan", "New Jersey", "Virginia",
]

FIRST_NAMES = ["John", "Mike", "Sarah", "Lisa", "David", "Tom", "Karen", "Nancy"]
LAST_NAMES = ["Smith", "Johnson", "Williams", "Brown", "Davis", "Miller", "Wilson", "Clark"]


def _slug(text: str) -> str:
    return "".join(ch for ch in text.lower() if ch.isalnum())


def _phone(rng: random.Random) -> str:
    return f"(555) {rng.randint(100, 999)}-{rng.randint(1000, 9999)}"


def simulate_club_research(sport: str, region: str, rng: random.Random) -> List[Prospect]:
    """Two simulated clubs (an elite academy and a training center) for one sport and region."""
    title = sport.title()
    academy_domain = f"{_slug(region)}elite{_slug(sport)}.com"
    center_domain = f"{_slug(region)}{_slug(sport)}training.com"

    academy: Prospect = {
        "club_name": f"{region} Elite {title} Academy",
        "sport": sport,
        "location": f"{region}, USA",
        "website": f"https://www.{academy_domain}",
        "estimated_athletes": rng.randint(100, 599),
        "age_groups": ["Youth", "High School", "College Prep"],
        "competition_level": rng.choice(["Regional", "State", "National"]),
        "facilities": rng.randint(1, 10),
        "founded_year": rng.randint(2000, 2019),
        "contact_info": {
            "email": f"info@{academy_domain}",
            "phone": _phone(rng),
            "address": f"{rng.randint(1000, 9999)} {title} Drive, {region}, USA",
        },
        "key_personnel": [
            {"name": f"{rng.choice(FIRST_NAMES)} {rng.choice(LAST_NAMES)}", "role": "Director",
             "email": f"director@{academy_domain}"},
            {"name": f"Coach {rng.choice(LAST_NAMES)}", "role": "Head Coach",
             "email": f"coach@{academy_domain}"},
        ],
        "source": "bd_research_agent",
    }
    center: Prospect = {
        "club_name": f"{region} {title} Training Center",
        "sport": sport,
        "location": f"{region}, USA",
        "website": f"https://www.{center_domain}",
        "estimated_athletes": rng.randint(50, 349),
        "age_groups": ["Youth", "Adult"],
        "competition_level": rng.choice(["Local", "Regional"]),
        "facilities": rng.randint(1, 5),
        "founded_year": rng.randint(2010, 2019),
        "contact_info": {
            "email": f"contact@{center_domain}",
            "phone": _phone(rng),
            "address": f"{rng.randint(1000, 9999)} Training Lane, {region}, USA",
        },
        "key_personnel": [
            {"name": f"{rng.choice(FIRST_NAMES)} {rng.choice(LAST_NAMES)}", "role": "Owner",
             "email": f"owner@{center_domain}"},
        ],
        "source": "bd_research_agent",
    }
    return [academy, center]


async def research_prospects(sports: Optional[List[str]] = None, regions: Optional[List[str]] = None,
                             seed: Optional[int] = None, delay: Optional[float] = None) -> List[Prospect]:
    """Collect prospects across sports and regions, pausing between lookups."""
    sports = sports if sports is not None else TARGET_SPORTS[:5]
    regions = regions if regions is not None else TARGET_REGIONS[:3]
    delay = delay if delay is not None else float(os.getenv("RESEARCH_DELAY_SECONDS", "1.0"))
    rng = random.Random(seed)

    prospects: List[Prospect] = []
    for sport in sports:
        for region in regions:
            prospects.extend(simulate_club_research(sport, region, rng))
            # Rate-limit courtesy for the research sources
            if delay > 0:
                await asyncio.sleep(delay)

    logger.info(f"Researched {len(prospects)} sports club prospects")
    return prospects


async def research(state: ProspectingState) -> ProspectingState:
    """Research sports clubs and academies for this run."""
    logger.info(f"Starting research for run: {state.get('run_id', 'unknown')}")

    if state.get("prospects"):
        logger.info(f"Using {len(state['prospects'])} supplied prospects")
        return state

    state["prospects"] = await research_prospects(seed=state.get("seed"))
    return state
