import os
from datetime import datetime, timezone
from typing import Dict, Any, Optional

from loguru import logger


class LLMClient:
    """LLM client that writes short reviewer summaries for qualified leads."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.model = model or os.getenv("OPENAI_MODEL", "gpt-4o-mini")
        self.timeout = float(os.getenv("DEFAULT_TIMEOUT", "30"))

        if not self.api_key:
            logger.warning("No OpenAI API key provided, using template summaries")

    async def summarize_lead(self, lead: Dict[str, Any]) -> str:
        """
        Explain why a lead is worth a reviewer's attention.

        Args:
            lead: Scored lead

        Returns:
            A few bullet points; falls back to a template on any failure
        """
        if not self.api_key:
            return self._template_summary(lead)

        try:
            from openai import AsyncOpenAI

            client = AsyncOpenAI(api_key=self.api_key, timeout=self.timeout)
            response = await client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": self._get_summary_rubric()},
                    {"role": "user", "content": self._build_summary_prompt(lead)}
                ],
                temperature=0.3,
                max_tokens=300
            )

            summary = (response.choices[0].message.content or "").strip()
            if not summary:
                logger.warning("Empty LLM summary, using template")
                return self._template_summary(lead)

            logger.info(f"LLM summary generated for {lead.get('club_name')}")
            return summary

        except Exception as e:
            logger.error(f"LLM summarization failed: {e}")
            return self._template_summary(lead)

    def _get_summary_rubric(self) -> str:
        return """You are a business development analyst reviewing sports clubs and academies as prospects.

Write 3-4 short Slack bullet points (starting with "• ") explaining why this lead matters:
- Athlete reach and competition level
- Organizational stability (years in operation, facilities)
- Programs offered (age groups)

Be factual, no greetings, no marketing language."""

    def _build_summary_prompt(self, lead: Dict[str, Any]) -> str:
        return f"""LEAD: {lead.get('club_name', 'N/A')} ({lead.get('sport', 'N/A')})
LOCATION: {lead.get('location', 'N/A')}
ATHLETES: {lead.get('estimated_athletes', 'N/A')}
COMPETITION LEVEL: {lead.get('competition_level', 'N/A')}
FACILITIES: {lead.get('facilities', 'N/A')}
FOUNDED: {lead.get('founded_year', 'N/A')}
AGE GROUPS: {', '.join(lead.get('age_groups') or [])}
SCORE: {lead.get('score', 0)}/100 ({lead.get('priority', 'N/A')} priority)"""

    def _template_summary(self, lead: Dict[str, Any]) -> str:
        founded = lead.get("founded_year")
        years = datetime.now(timezone.utc).year - founded if founded else "Unknown"
        return "\n".join([
            f"• {lead.get('estimated_athletes', 0)} athletes to reach",
            f"• {lead.get('facilities', 0)} facilities",
            f"• {years} years in business",
            f"• {', '.join(lead.get('age_groups') or ['Unknown'])} age groups",
        ])


# Global LLM client instance
llm_client = LLMClient()


async def summarize_lead(lead: Dict[str, Any]) -> str:
    """Summarize a lead using the global LLM client."""
    return await llm_client.summarize_lead(lead)
