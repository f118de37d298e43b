"""
Calendar Domain Models
Wraps Google Calendar event payloads used for match meetings.
"""

from datetime import UTC, datetime

ICS_PRODID = "-//CivicMatch//Weekly Match Meeting//EN"
ICS_UID_DOMAIN = "civicmatch.app"
CALENDAR_EVENT_URL = "https://calendar.google.com/calendar/event?eid={event_id}"


def _ics_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime("%Y%m%dT%H%M%SZ")


def _ics_text(value: str) -> str:
    """Escape a TEXT property value (RFC 5545 section 3.3.11)."""
    return (
        value.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\r\n", "\\n")
        .replace("\n", "\\n")
    )


class CalendarEvent:
    """Domain model for a calendar event returned by the Calendar API."""

    def __init__(self, data: dict):
        self.id = data.get("id")
        self.summary = data.get("summary", "")
        self.description = data.get("description", "")
        self.start_time = self._parse_datetime(data.get("start", {}))
        self.end_time = self._parse_datetime(data.get("end", {}))
        self.timezone = data.get("start", {}).get("timeZone", "UTC")
        self.status = data.get("status", "confirmed")
        self.attendees = [a.get("email", "") for a in data.get("attendees", []) if a.get("email")]
        self.html_link = data.get("htmlLink")
        self.meet_url = self._extract_meet_url(data)
        self.raw_data = data

    def _parse_datetime(self, dt_data: dict) -> datetime | None:
        """Parse datetime from Google Calendar format."""
        if not dt_data:
            return None

        if "dateTime" in dt_data:
            try:
                return datetime.fromisoformat(dt_data["dateTime"].replace("Z", "+00:00"))
            except ValueError:
                return None

        if "date" in dt_data:
            return datetime.strptime(dt_data["date"], "%Y-%m-%d").replace(tzinfo=UTC)

        return None

    @staticmethod
    def _extract_meet_url(data: dict) -> str | None:
        entry_points = data.get("conferenceData", {}).get("entryPoints", [])
        for entry in entry_points:
            if entry.get("entryPointType") == "video" and entry.get("uri"):
                return entry["uri"]
        return data.get("hangoutLink")

    @property
    def calendar_url(self) -> str | None:
        if self.html_link:
            return self.html_link
        return CALENDAR_EVENT_URL.format(event_id=self.id) if self.id else None

    def duration_minutes(self) -> int:
        if not self.start_time or not self.end_time:
            return 0
        return int((self.end_time - self.start_time).total_seconds() / 60)

    def to_ics(self) -> str:
        """Render the event as a single-event VCALENDAR with CRLF line endings."""
        if not self.start_time or not self.end_time:
            raise ValueError("Event has no start or end time")

        lines = [
            "BEGIN:VCALENDAR",
            "VERSION:2.0",
            f"PRODID:{ICS_PRODID}",
            "CALSCALE:GREGORIAN",
            "METHOD:REQUEST",
            "BEGIN:VEVENT",
            f"UID:{self.id}@{ICS_UID_DOMAIN}",
            f"DTSTAMP:{_ics_timestamp(datetime.now(UTC))}",
            f"DTSTART:{_ics_timestamp(self.start_time)}",
            f"DTEND:{_ics_timestamp(self.end_time)}",
            f"SUMMARY:{_ics_text(self.summary)}",
            f"DESCRIPTION:{_ics_text(self.description)}",
            f"LOCATION:{_ics_text(self.meet_url or '')}",
            "STATUS:CONFIRMED",
            "SEQUENCE:0",
            "END:VEVENT",
            "END:VCALENDAR",
        ]
        return "\r\n".join(lines) + "\r\n"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "summary": self.summary,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "timezone": self.timezone,
            "status": self.status,
            "meet_url": self.meet_url,
            "calendar_url": self.calendar_url,
            "attendees_count": len(self.attendees),
        }
