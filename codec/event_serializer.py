"""Serializer emitting VEVENT blocks and VCALENDAR documents."""
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional

from codec.text import (
    escape_text,
    fold_line,
    format_ics_date,
    format_ics_datetime,
    format_ics_timestamp,
)
from core.models import ClassSchedule, Deadline, Session

logger = logging.getLogger(__name__)

PRODUCT_ID = '-//Student Planner//ICS Feed 1.0//EN'
UID_DOMAIN = 'student-planner'
DEFAULT_CALENDAR_NAME = 'Student Planner - My Classes'
DUE_MARKER = '📋 '

# Index matches ClassSchedule.meeting_days (0 = Sunday)
WEEKDAY_CODES = ('SU', 'MO', 'TU', 'WE', 'TH', 'FR', 'SA')


def _sunday_based_weekday(day: date) -> int:
    return (day.weekday() + 1) % 7


def _valid_days(meeting_days: Iterable[int]) -> List[int]:
    return sorted(day for day in set(meeting_days) if 0 <= day < len(WEEKDAY_CODES))


def first_meeting_date(schedule: ClassSchedule) -> date:
    """First valid meeting day on or after the semester start."""
    start_weekday = _sunday_based_weekday(schedule.semester_start)
    offsets = [(day - start_weekday) % 7 for day in _valid_days(schedule.meeting_days)]
    return schedule.semester_start + timedelta(days=min(offsets))


def byday_rule(meeting_days: Iterable[int]) -> str:
    return ','.join(WEEKDAY_CODES[day] for day in _valid_days(meeting_days))


def class_to_vevent(schedule: ClassSchedule, dtstamp: str) -> Optional[List[str]]:
    """
    Build one recurring VEVENT covering a whole semester of meetings.

    Returns:
        Content lines, or None when the class has no valid meeting days
    """
    days = byday_rule(schedule.meeting_days)
    if not days:
        return None

    first_day = first_meeting_date(schedule)
    until = f"{format_ics_date(schedule.semester_end)}T235959Z"
    summary = f"{schedule.code} - {schedule.name}" if schedule.code else schedule.name
    professor = schedule.professor_name or 'TBA'

    return [
        'BEGIN:VEVENT',
        f"UID:class-{schedule.class_id}@{UID_DOMAIN}",
        f"DTSTAMP:{dtstamp}",
        f"DTSTART:{format_ics_datetime(first_day, schedule.start_time)}",
        f"DTEND:{format_ics_datetime(first_day, schedule.end_time)}",
        f"RRULE:FREQ=WEEKLY;BYDAY={days};UNTIL={until}",
        f"SUMMARY:{escape_text(summary)}",
        f"LOCATION:{escape_text(schedule.location or '')}",
        f"DESCRIPTION:{escape_text(f'Professor: {professor}')}",
        'END:VEVENT',
    ]


def session_to_vevent(session: Session, dtstamp: str,
                      schedule: Optional[ClassSchedule] = None) -> List[str]:
    """Build a single non-recurring VEVENT for a dated session."""
    summary = schedule.label if schedule else 'Class Session'
    lines = [
        'BEGIN:VEVENT',
        f"UID:session-{session.session_id}@{UID_DOMAIN}",
        f"DTSTAMP:{dtstamp}",
        f"DTSTART:{format_ics_datetime(session.session_date, session.start_time)}",
        f"DTEND:{format_ics_datetime(session.session_date, session.end_time)}",
        f"SUMMARY:{escape_text(summary)}",
    ]
    if session.location:
        lines.append(f"LOCATION:{escape_text(session.location)}")
    if session.topics:
        lines.append(f"DESCRIPTION:{escape_text('Topics: ' + ', '.join(session.topics))}")
    lines.append('END:VEVENT')
    return lines


def deadline_to_vevent(deadline: Deadline, dtstamp: str,
                       schedule: Optional[ClassSchedule] = None) -> List[str]:
    """Build an all-day VEVENT with a reminder alarm one day before."""
    summary = f"{DUE_MARKER}{deadline.title}"
    if schedule:
        summary += f" ({schedule.label})"
    description = deadline.description or f"{deadline.deadline_type} - {deadline.status}"

    return [
        'BEGIN:VEVENT',
        f"UID:deadline-{deadline.deadline_id}@{UID_DOMAIN}",
        f"DTSTAMP:{dtstamp}",
        f"DTSTART;VALUE=DATE:{format_ics_date(deadline.due_date)}",
        f"SUMMARY:{escape_text(summary)}",
        f"DESCRIPTION:{escape_text(description)}",
        'BEGIN:VALARM',
        'TRIGGER:-P1D',
        'ACTION:DISPLAY',
        f"DESCRIPTION:{escape_text(f'{deadline.title} due tomorrow')}",
        'END:VALARM',
        'END:VEVENT',
    ]


def build_vevents(
    classes: Iterable[ClassSchedule],
    sessions: Iterable[Session],
    deadlines: Iterable[Deadline],
    class_lookup: Optional[Dict[str, ClassSchedule]] = None,
    generated_at: Optional[datetime] = None,
) -> List[List[str]]:
    """
    Build VEVENT line blocks for classes, sessions and deadlines, in that order.

    Args:
        classes: Weekly class schedules
        sessions: Dated sessions
        deadlines: Deadlines
        class_lookup: class_id -> ClassSchedule used to label sessions and
            deadlines; built from ``classes`` when omitted
        generated_at: DTSTAMP value (defaults to now)

    Returns:
        List of VEVENT blocks, each a list of unfolded content lines
    """
    classes = list(classes)
    if class_lookup is None:
        class_lookup = {schedule.class_id: schedule for schedule in classes}
    dtstamp = format_ics_timestamp(generated_at or datetime.now(timezone.utc))

    blocks = []
    for schedule in classes:
        block = class_to_vevent(schedule, dtstamp)
        if block is None:
            logger.debug(f"Class {schedule.class_id} has no meeting days; skipped")
            continue
        blocks.append(block)

    for session in sessions:
        blocks.append(session_to_vevent(session, dtstamp, class_lookup.get(session.class_id)))

    for deadline in deadlines:
        schedule = class_lookup.get(deadline.class_id) if deadline.class_id else None
        blocks.append(deadline_to_vevent(deadline, dtstamp, schedule))

    return blocks


def wrap_calendar(blocks: Iterable[List[str]],
                  calendar_name: str = DEFAULT_CALENDAR_NAME) -> str:
    """Wrap VEVENT blocks in a VCALENDAR document with CRLF line endings."""
    lines = [
        'BEGIN:VCALENDAR',
        'VERSION:2.0',
        f"PRODID:{PRODUCT_ID}",
        'CALSCALE:GREGORIAN',
        'METHOD:PUBLISH',
        f"X-WR-CALNAME:{escape_text(calendar_name)}",
        'X-WR-TIMEZONE:UTC',
    ]
    for block in blocks:
        lines.extend(block)
    lines.append('END:VCALENDAR')
    return '\r\n'.join(fold_line(line) for line in lines) + '\r\n'


def serialize_calendar(
    classes: Iterable[ClassSchedule],
    sessions: Iterable[Session],
    deadlines: Iterable[Deadline],
    class_lookup: Optional[Dict[str, ClassSchedule]] = None,
    generated_at: Optional[datetime] = None,
    calendar_name: str = DEFAULT_CALENDAR_NAME,
) -> str:
    """Serialize a complete outbound ICS document."""
    blocks = build_vevents(classes, sessions, deadlines, class_lookup, generated_at)
    return wrap_calendar(blocks, calendar_name)
