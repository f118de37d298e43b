"""
Weekly match email content (subject, HTML and plain-text bodies).
"""

from __future__ import annotations

from dataclasses import dataclass
from html import escape
from urllib.parse import urlencode

from civicmatch.config import settings
from civicmatch.features.weekly_matching.domain.models import MatchNotification, Profile

TEMPLATE_VERSION = "weekly-match-v2"
MAX_REASONS_IN_EMAIL = 3


@dataclass(slots=True, frozen=True)
class RenderedEmail:
    subject: str
    html: str
    text: str


def match_quality_label(score: int) -> str:
    if score >= 90:
        return "Excellent match"
    if score >= 80:
        return "Great match"
    if score >= 70:
        return "Good match"
    return "Potential match"


def _links(recipient: Profile, match: Profile) -> dict[str, str]:
    base = settings.site_url()
    query = urlencode({"currentUserId": recipient.user_id, "targetUserId": match.user_id})
    return {
        "profile": f"{base}/profiles/{match.user_id}",
        "message": f"{base}/api/messages/start?{query}",
        "explore": f"{base}/",
        "preferences": f"{base}/profile#email-preferences",
    }


def _details(match: Profile) -> list[tuple[str, str]]:
    """Labelled profile sections, in display order, skipping empty ones."""
    sections = [
        ("Location", match.location.label if match.location else ""),
        ("Skills", ", ".join(match.skills)),
        ("Causes", ", ".join(match.causes)),
        ("Values", ", ".join(match.values)),
        ("Known for", match.fame),
        ("Current focus", match.aim[0].title if match.aim else ""),
        ("Long-term game", match.game),
        ("Work style", match.work_style),
        ("Looking for help with", match.help_needed),
    ]
    return [(label, value) for label, value in sections if value]


def render_match_email(payload: MatchNotification) -> RenderedEmail:
    recipient, match = payload.recipient, payload.match
    subject = f"You might want to connect with {match.name}"
    links = _links(recipient, match)
    reasons = list(payload.reasons[:MAX_REASONS_IN_EMAIL])
    quality = match_quality_label(payload.score)
    greeting = recipient.first_name or "there"

    details_html = "".join(
        f"<p><strong>{escape(label)}:</strong> {escape(value)}</p>"
        for label, value in _details(match)
    )
    reasons_html = "".join(f"<li>{escape(reason)}</li>" for reason in reasons)
    bio_html = escape(match.bio) if match.bio else "No bio yet."

    meeting_html = ""
    meeting_text: list[str] = []
    if payload.meeting:
        meeting = payload.meeting
        when = meeting.starts_at.strftime("%A, %B %d at %H:%M")
        meeting_html = (
            "<h3>We scheduled a call for you</h3>"
            f"<p>{escape(when)} ({escape(meeting.timezone)})</p>"
        )
        if meeting.meet_url:
            meeting_html += f'<p><a href="{escape(meeting.meet_url)}">Join Google Meet</a></p>'
        if meeting.ics_download_url:
            meeting_html += (
                f'<p><a href="{escape(meeting.ics_download_url)}">Add to calendar (.ics)</a></p>'
            )
        meeting_html += (
            f"<p>Please confirm with {escape(match.name)} that you can both attend by "
            "responding to the calendar invite or messaging them directly.</p>"
        )
        meeting_text = ["", f"We scheduled a call: {when} ({meeting.timezone})"]
        if meeting.meet_url:
            meeting_text.append(f"Join: {meeting.meet_url}")
        if meeting.ics_download_url:
            meeting_text.append(f"Add to calendar: {meeting.ics_download_url}")

    html = f"""<html>
    <body>
        <p>Hi {escape(greeting)},</p>
        <p>This week we think you might want to connect with <strong>{escape(match.name)}</strong>
        ({escape(quality)}).</p>
        <p>{bio_html}</p>
        {details_html}
        <h3>Why you're a great match</h3>
        <ul>{reasons_html}</ul>
        {meeting_html}
        <p>
            <a href="{escape(links["message"])}">Send a message</a> |
            <a href="{escape(links["profile"])}">View profile</a>
        </p>
        <p><a href="{escape(links["explore"])}">Explore more changemakers</a></p>
        <p style="font-size:12px;color:#666">
            You receive this because weekly matching is on.
            <a href="{escape(links["preferences"])}">Manage email preferences</a>
        </p>
    </body>
</html>"""

    text_lines = [
        f"Hi {greeting},",
        "",
        f"This week we think you might want to connect with {match.name} ({quality}).",
        "",
        match.bio or "No bio yet.",
        "",
        *[f"{label}: {value}" for label, value in _details(match)],
        "",
        "Why you're a great match:",
        *[f"- {reason}" for reason in reasons],
        *meeting_text,
        "",
        f"Send a message: {links['message']}",
        f"View profile: {links['profile']}",
        f"Manage email preferences: {links['preferences']}",
    ]
    return RenderedEmail(subject=subject, html=html, text="\n".join(text_lines))
