"""Inbound webhook and Slack interactivity payloads, validated before they reach the workflow."""
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError

from graph.state import Prospect
from tools.errors import ValidationError

APPROVE_ACTION = "create_hubspot_deal"
SKIP_ACTION = "skip_lead"


class AutomationEvent(BaseModel):
    """Automation status envelope posted to /webhook."""
    model_config = ConfigDict(extra="allow")

    type: str
    automation: Optional[str] = None
    status: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class CrmEvent(BaseModel):
    """One entry of a HubSpot webhook event batch."""
    model_config = ConfigDict(extra="allow")

    subscriptionType: str
    objectId: Union[int, str]
    eventId: Optional[Union[int, str]] = None
    propertyName: Optional[str] = None
    propertyValue: Optional[str] = None
    occurredAt: Optional[int] = None


class ContactInfoPayload(BaseModel):
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class KeyPersonPayload(BaseModel):
    name: str = "Unknown"
    role: str = "Contact"
    email: Optional[str] = None


class ProspectPayload(BaseModel):
    """Prospect details carried by a prospect_alert event."""
    club_name: str
    sport: str = "Unknown"
    location: str = "Unknown"
    website: Optional[str] = None
    estimated_athletes: int = Field(default=0, ge=0)
    age_groups: List[str] = Field(default_factory=list)
    competition_level: str = "Local"
    facilities: int = Field(default=0, ge=0)
    founded_year: Optional[int] = None
    contact_info: ContactInfoPayload = Field(default_factory=ContactInfoPayload)
    key_personnel: List[KeyPersonPayload] = Field(default_factory=list)
    source: str = "webhook"

    def to_prospect(self) -> Prospect:
        return self.model_dump(exclude_none=True)  # type: ignore[return-value]


class SlackUser(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: Optional[str] = None
    username: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.username or self.id


class SlackAction(BaseModel):
    model_config = ConfigDict(extra="allow")

    action_id: str
    value: Optional[str] = None
    text: Optional[Any] = None


class InteractivityPayload(BaseModel):
    """Slack block_actions callback body (the JSON inside the `payload` form field)."""
    model_config = ConfigDict(extra="allow")

    type: Optional[str] = None
    user: SlackUser
    actions: List[SlackAction] = Field(min_length=1)
    response_url: Optional[str] = None


def parse_webhook_body(body: Any) -> Union[AutomationEvent, List[CrmEvent]]:
    """Validate a /webhook body into an automation event or a CRM event batch."""
    try:
        if isinstance(body, list):
            return [CrmEvent.model_validate(item) for item in body]
        if isinstance(body, dict):
            return AutomationEvent.model_validate(body)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid webhook payload: {e.error_count()} validation errors") from e
    raise ValidationError("Webhook body must be a JSON object or array")


def parse_prospect(details: Dict[str, Any]) -> Prospect:
    try:
        return ProspectPayload.model_validate(details).to_prospect()
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid prospect details: {e.error_count()} validation errors") from e


def parse_interactivity(payload: Any) -> InteractivityPayload:
    try:
        return InteractivityPayload.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid interactivity payload: {e.error_count()} validation errors") from e
