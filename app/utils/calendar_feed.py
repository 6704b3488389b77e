"""
iCalendar (RFC 5545) feed of upcoming bill due dates.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from app.utils.dates import utcnow

PRODID = "-//ExpenseTracker//Calendar//EN"
HORIZON_DAYS = 90
MAX_LINE_OCTETS = 75

GAP_DAYS = {
    "daily": 1,
    "weekly": 7,
    "biweekly": 14,
    "monthly": 30,
    "quarterly": 91,
    "yearly": 365,
}


def ics_escape(text: Any) -> str:
    return (
        str(text or "")
        .replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\n", "\\n")
    )


def fold_line(line: str) -> str:
    """
    Fold a content line into chunks of at most 75 octets (RFC 5545 3.1).
    Continuation lines start with a single space; UTF-8 characters are
    never split.
    """
    chunks = []
    current, size, limit = "", 0, MAX_LINE_OCTETS
    for char in line:
        width = len(char.encode("utf-8"))
        if size + width > limit:
            chunks.append(current)
            # the leading space counts toward the next line
            current, size, limit = "", 0, MAX_LINE_OCTETS - 1
        current += char
        size += width
    chunks.append(current)
    return "\r\n ".join(chunks)


def _ics_date(dt: datetime) -> str:
    return dt.strftime("%Y%m%d")


def projected_dates(
    start: datetime,
    frequency: str,
    now: datetime,
    horizon_days: int = HORIZON_DAYS,
) -> List[datetime]:
    """Occurrences of start + k * gap that fall inside [now, now + horizon]."""
    gap = timedelta(days=GAP_DAYS.get(frequency, 30))
    until = now + timedelta(days=horizon_days)
    dates = []
    current = start
    while current < now:
        current += gap
    while current <= until:
        dates.append(current)
        current += gap
    return dates


def _event(uid: str, when: datetime, summary: str, description: str, now: datetime) -> List[str]:
    return [
        "BEGIN:VEVENT",
        f"UID:{uid}",
        f"DTSTAMP:{_ics_date(now)}T000000Z",
        f"DTSTART:{_ics_date(when)}T090000Z",
        f"SUMMARY:{ics_escape(summary)}",
        f"DESCRIPTION:{ics_escape(description)}",
        "END:VEVENT",
    ]


def build_calendar(
    recurring: Iterable[Dict[str, Any]],
    bills: Iterable[Dict[str, Any]] = (),
    now: Optional[datetime] = None,
) -> str:
    now = now or utcnow()
    lines = ["BEGIN:VCALENDAR", "VERSION:2.0", f"PRODID:{PRODID}", "CALSCALE:GREGORIAN"]

    for rec in recurring:
        if not rec.get("is_active", True):
            continue
        frequency = rec.get("frequency") or "monthly"
        start = (rec.get("last_seen") or now) + timedelta(days=GAP_DAYS.get(frequency, 30))
        for when in projected_dates(start, frequency, now):
            lines += _event(
                f"{rec['_id']}-{_ics_date(when)}@expense-tracker",
                when,
                f"{rec.get('name')} ({rec.get('category')})",
                f"Estimated bill: ${float(rec.get('average_amount') or 0):.2f}",
                now,
            )

    for bill in bills:
        if not bill.get("is_active", True) or not isinstance(bill.get("next_due"), datetime):
            continue
        for when in projected_dates(bill["next_due"], bill.get("frequency") or "monthly", now):
            lines += _event(
                f"bill-{bill['_id']}-{_ics_date(when)}@expense-tracker",
                when,
                f"{bill.get('name')} ({bill.get('category')})",
                f"Bill due: ${float(bill.get('amount') or 0):.2f}",
                now,
            )

    lines.append("END:VCALENDAR")
    return "\r\n".join(fold_line(line) for line in lines) + "\r\n"
