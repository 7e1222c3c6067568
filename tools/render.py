from datetime import datetime
from html import escape
from typing import Any, Dict, Optional

STYLE = """
body { font-family: Arial, sans-serif; margin: 20px; background: #f5f5f5; }
.container { max-width: 800px; margin: 0 auto; background: white; padding: 20px; border-radius: 8px; }
.header { border-bottom: 2px solid #007cba; padding-bottom: 10px; margin-bottom: 20px; }
.status { display: inline-block; padding: 5px 10px; border-radius: 15px; color: white; font-size: 12px; }
.status.pending { background: #ffa500; }
.status.approved { background: #4caf50; }
.status.rejected { background: #f44336; }
.grid { display: grid; grid-template-columns: 1fr 1fr; gap: 20px; margin: 20px 0; }
.field { margin-bottom: 10px; }
.field label { font-weight: bold; color: #333; }
.hubspot-link { background: #ff7a59; color: white; padding: 10px 20px; text-decoration: none; border-radius: 5px; }
"""


def _e(value: Any) -> str:
    return escape("" if value is None else str(value))


def _format_time(value: Optional[str]) -> str:
    if not value:
        return "N/A"
    try:
        return datetime.fromisoformat(value).strftime("%Y-%m-%d %H:%M UTC")
    except ValueError:
        return value


def _field(label: str, value: Any) -> str:
    return f'<div class="field"><label>{_e(label)}:</label><div>{_e(value)}</div></div>'


def _page(title: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html>
<head>
  <title>{_e(title)}</title>
  <style>{STYLE}</style>
</head>
<body>
  <div class="container">
{body}
  </div>
</body>
</html>"""


def render_lead_details(approval: Dict[str, Any], breakdown: Optional[Dict[str, int]] = None,
                        deal_value: Optional[int] = None) -> str:
    """Full detail page for one approval."""
    lead = approval.get("lead_data") or {}
    contact = lead.get("contact_info") or {}
    status = approval.get("status", "pending")
    external = approval.get("external_result") or {}

    people = "".join(
        f"<li>{_e(p.get('name'))} ({_e(p.get('role'))}){' - ' + _e(p.get('email')) if p.get('email') else ''}</li>"
        for p in lead.get("key_personnel") or []
    )
    factors = "".join(
        f"<li>{_e(name.replace('_', ' ').title())}: {points}</li>" for name, points in (breakdown or {}).items()
    )

    left = "".join([
        _field("Sport", lead.get("sport")),
        _field("Location", lead.get("location")),
        _field("Athletes", lead.get("estimated_athletes")),
        _field("Competition Level", lead.get("competition_level")),
        _field("Facilities", lead.get("facilities")),
        _field("Founded", lead.get("founded_year")),
        _field("Age Groups", ", ".join(lead.get("age_groups") or [])),
    ])
    right = "".join([
        _field("Lead Score", f"{lead.get('score', 0)}/100"),
        _field("Priority", lead.get("priority")),
        _field("Estimated Value", f"${deal_value:,}" if deal_value is not None else "N/A"),
        _field("Created", _format_time(approval.get("created_at"))),
        _field("View Count", approval.get("view_count", 0)),
        _field("Decided By", approval.get("decided_by")) if approval.get("decided_by") else "",
        _field("Decided", _format_time(approval.get("decided_at"))) if approval.get("decided_at") else "",
    ])
    if external.get("hubspotUrl"):
        right += (f'<div class="field"><a href="{_e(external["hubspotUrl"])}" class="hubspot-link" '
                  f'target="_blank">View in HubSpot</a></div>')

    body = f"""    <div class="header">
      <h1>{_e(lead.get('club_name', 'Unknown club'))}</h1>
      <span class="status {_e(status)}">{_e(status.upper())}</span>
    </div>
    <div class="grid"><div>{left}</div><div>{right}</div></div>
    <h3>Contact</h3>
    {_field("Email", contact.get("email"))}{_field("Phone", contact.get("phone"))}{_field("Website", lead.get("website"))}
    <h3>Key Personnel</h3>
    <ul>{people or "<li>None listed</li>"}</ul>
    <h3>Score Breakdown</h3>
    <ul>{factors or "<li>N/A</li>"}</ul>"""
    if lead.get("summary"):
        body += f"\n    <h3>Why This Lead Matters</h3>\n    <pre>{_e(lead['summary'])}</pre>"

    return _page(f"Lead Details - {lead.get('club_name', 'Unknown club')}", body)


def render_lead_view(approval: Dict[str, Any], crm_details: Optional[Dict[str, Any]] = None) -> str:
    """Compact view used by the legacy /view links, with HubSpot contact fields when known."""
    lead = approval.get("lead_data") or {}
    status = approval.get("status", "pending")
    body = f"""    <div class="header">
      <h2>{_e(lead.get('club_name', 'Unknown club'))}</h2>
      <span class="status {_e(status)}">{_e(status.upper())}</span>
    </div>
    {_field("Sport", lead.get("sport"))}{_field("Location", lead.get("location"))}
    {_field("Lead Score", f"{lead.get('score', 0)}/100")}{_field("View Count", approval.get("view_count", 0))}"""

    if crm_details:
        contact = crm_details.get("contact") or {}
        body += f"""
    <h3>HubSpot</h3>
    {_field("Lifecycle Stage", contact.get("lifecyclestage", "N/A"))}{_field("CRM Views", contact.get("view_count", "N/A"))}"""
        if crm_details.get("hubspotUrl"):
            body += (f'\n    <a href="{_e(crm_details["hubspotUrl"])}" class="hubspot-link" '
                     f'target="_blank">View in HubSpot</a>')

    return _page(lead.get("club_name", "Lead"), body)


def render_not_found(approval_id: str) -> str:
    return _page("Lead Not Found", f"    <h2>Lead Not Found</h2>\n    <p>No approval {_e(approval_id)} exists or it has expired.</p>")
