"""Data models for external calendars, parsed events and outbound schedules."""
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Set


PROVIDERS = ('google', 'outlook', 'apple', 'other')
DEFAULT_COLOR = '#6366f1'


def format_timestamp(value: datetime) -> str:
    """Render an aware datetime as ``YYYY-MM-DDTHH:MM:SSZ`` in UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')


def parse_timestamp(value: str) -> datetime:
    """Inverse of format_timestamp for stored-item readers; naive values are UTC."""
    parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _parse_date(value: Any) -> date:
    if isinstance(value, date):
        return value
    # Store values may carry a time part ("2026-03-01T23:59:00+00:00")
    return date.fromisoformat(str(value)[:10])


def _parse_time(value: Any) -> time:
    if isinstance(value, time):
        return value
    return time.fromisoformat(str(value))


def _compact(item: Dict[str, Any]) -> Dict[str, Any]:
    """Drop None values; DynamoDB items carry absent attributes instead."""
    return {key: value for key, value in item.items() if value is not None}


@dataclass
class ExternalCalendar:
    """Subscription to a third-party ICS feed."""
    calendar_id: str
    owner_id: str
    name: str
    feed_url: str
    provider: str = 'other'
    color: str = DEFAULT_COLOR
    enabled: bool = True
    last_synced_at: Optional[str] = None

    def __post_init__(self):
        provider = (self.provider or 'other').lower()
        self.provider = provider if provider in PROVIDERS else 'other'

    def to_item(self) -> Dict[str, Any]:
        return _compact({
            'calendar_id': self.calendar_id,
            'owner_id': self.owner_id,
            'name': self.name,
            'feed_url': self.feed_url,
            'provider': self.provider,
            'color': self.color,
            'enabled': self.enabled,
            'last_synced_at': self.last_synced_at,
        })

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> 'ExternalCalendar':
        return cls(
            calendar_id=item['calendar_id'],
            owner_id=item['owner_id'],
            name=item['name'],
            feed_url=item['feed_url'],
            provider=item.get('provider', 'other'),
            color=item.get('color', DEFAULT_COLOR),
            enabled=bool(item.get('enabled', True)),
            last_synced_at=item.get('last_synced_at'),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Camel-cased representation for HTTP responses."""
        return {
            'id': self.calendar_id,
            'name': self.name,
            'provider': self.provider,
            'url': self.feed_url,
            'color': self.color,
            'enabled': self.enabled,
            'lastSyncedAt': self.last_synced_at,
        }


@dataclass
class ParsedEvent:
    """One VEVENT decoded from a feed (an occurrence or a recurrence master)."""
    uid: str
    title: str
    start_time: datetime
    end_time: Optional[datetime] = None
    all_day: bool = False
    description: str = ''
    location: str = ''
    recurrence_rule: Optional[str] = None


@dataclass
class ExternalCalendarEvent:
    """A ParsedEvent stored under its owning calendar."""
    calendar_id: str
    owner_id: str
    uid: str
    title: str
    start_time: datetime
    end_time: Optional[datetime] = None
    all_day: bool = False
    description: Optional[str] = None
    location: Optional[str] = None
    recurrence_rule: Optional[str] = None

    @classmethod
    def from_parsed(cls, calendar_id: str, owner_id: str,
                    event: ParsedEvent) -> 'ExternalCalendarEvent':
        return cls(
            calendar_id=calendar_id,
            owner_id=owner_id,
            uid=event.uid,
            title=event.title,
            start_time=event.start_time,
            end_time=event.end_time,
            all_day=event.all_day,
            description=event.description or None,
            location=event.location or None,
            recurrence_rule=event.recurrence_rule,
        )

    def to_item(self) -> Dict[str, Any]:
        return _compact({
            'calendar_id': self.calendar_id,
            'uid': self.uid,
            'owner_id': self.owner_id,
            'title': self.title,
            'description': self.description,
            'location': self.location,
            'start_time': format_timestamp(self.start_time),
            'end_time': format_timestamp(self.end_time) if self.end_time else None,
            'all_day': self.all_day,
            'recurrence_rule': self.recurrence_rule,
        })

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> 'ExternalCalendarEvent':
        """Rebuild a stored event; the read side for calendar views."""
        end_time = item.get('end_time')
        return cls(
            calendar_id=item['calendar_id'],
            owner_id=item['owner_id'],
            uid=item['uid'],
            title=item['title'],
            start_time=parse_timestamp(item['start_time']),
            end_time=parse_timestamp(end_time) if end_time else None,
            all_day=bool(item.get('all_day', False)),
            description=item.get('description'),
            location=item.get('location'),
            recurrence_rule=item.get('recurrence_rule'),
        )


@dataclass
class ClassSchedule:
    """Weekly recurring class meeting over one semester."""
    class_id: str
    owner_id: str
    name: str
    meeting_days: Set[int]
    start_time: time
    end_time: time
    semester_start: date
    semester_end: date
    location: str = ''
    code: Optional[str] = None
    professor_name: Optional[str] = None

    @property
    def label(self) -> str:
        """Short name used when a session or deadline refers to its class."""
        return self.code or self.name

    def to_item(self) -> Dict[str, Any]:
        return _compact({
            'class_id': self.class_id,
            'owner_id': self.owner_id,
            'name': self.name,
            'code': self.code,
            'meeting_days': sorted(self.meeting_days),
            'start_time': self.start_time.strftime('%H:%M'),
            'end_time': self.end_time.strftime('%H:%M'),
            'semester_start': self.semester_start.isoformat(),
            'semester_end': self.semester_end.isoformat(),
            'location': self.location,
            'professor_name': self.professor_name,
        })

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> 'ClassSchedule':
        return cls(
            class_id=item['class_id'],
            owner_id=item['owner_id'],
            name=item['name'],
            code=item.get('code'),
            meeting_days={int(day) for day in item.get('meeting_days', [])},
            start_time=_parse_time(item['start_time']),
            end_time=_parse_time(item['end_time']),
            semester_start=_parse_date(item['semester_start']),
            semester_end=_parse_date(item['semester_end']),
            location=item.get('location', ''),
            professor_name=item.get('professor_name'),
        )


@dataclass
class Session:
    """One concrete dated class session."""
    session_id: str
    owner_id: str
    class_id: str
    session_date: date
    start_time: time
    end_time: time
    location: Optional[str] = None
    topics: List[str] = field(default_factory=list)

    def to_item(self) -> Dict[str, Any]:
        return _compact({
            'session_id': self.session_id,
            'owner_id': self.owner_id,
            'class_id': self.class_id,
            'session_date': self.session_date.isoformat(),
            'start_time': self.start_time.strftime('%H:%M'),
            'end_time': self.end_time.strftime('%H:%M'),
            'location': self.location,
            'topics': list(self.topics) or None,
        })

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> 'Session':
        return cls(
            session_id=item['session_id'],
            owner_id=item['owner_id'],
            class_id=item['class_id'],
            session_date=_parse_date(item['session_date']),
            start_time=_parse_time(item['start_time']),
            end_time=_parse_time(item['end_time']),
            location=item.get('location'),
            topics=list(item.get('topics') or []),
        )


@dataclass
class Deadline:
    """Point-in-time due date for an assignment, exam or similar."""
    deadline_id: str
    owner_id: str
    title: str
    due_date: date
    class_id: Optional[str] = None
    deadline_type: str = 'assignment'
    status: str = 'pending'
    description: Optional[str] = None
    weight: Optional[float] = None

    def to_item(self) -> Dict[str, Any]:
        return _compact({
            'deadline_id': self.deadline_id,
            'owner_id': self.owner_id,
            'class_id': self.class_id,
            'title': self.title,
            'due_date': self.due_date.isoformat(),
            'deadline_type': self.deadline_type,
            'status': self.status,
            'description': self.description,
            'weight': Decimal(str(self.weight)) if self.weight is not None else None,
        })

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> 'Deadline':
        weight = item.get('weight')
        return cls(
            deadline_id=item['deadline_id'],
            owner_id=item['owner_id'],
            class_id=item.get('class_id'),
            title=item['title'],
            due_date=_parse_date(item['due_date']),
            deadline_type=item.get('deadline_type', 'assignment'),
            status=item.get('status', 'pending'),
            description=item.get('description'),
            weight=float(weight) if weight is not None else None,
        )


@dataclass
class CalendarSyncResult:
    """Outcome of syncing one calendar."""
    calendar_id: str
    name: str
    events_count: Optional[int] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        if self.error is not None:
            return {'id': self.calendar_id, 'name': self.name, 'error': self.error}
        return {
            'id': self.calendar_id,
            'name': self.name,
            'eventsCount': self.events_count,
            'success': True,
        }


@dataclass
class SyncReport:
    """Aggregate result of one sync request."""
    results: List[CalendarSyncResult] = field(default_factory=list)

    @property
    def succeeded(self) -> List[CalendarSyncResult]:
        return [result for result in self.results if result.success]

    @property
    def failed(self) -> List[CalendarSyncResult]:
        return [result for result in self.results if not result.success]

    @property
    def total_events(self) -> int:
        return sum(result.events_count or 0 for result in self.succeeded)

    def summary(self) -> str:
        """
        Human readable one-liner, e.g. "3 of 4 calendars synced; Outlook failed".
        """
        text = f"{len(self.succeeded)} of {len(self.results)} calendars synced"
        if self.failed:
            names = ', '.join(result.name for result in self.failed)
            text += f"; {names} failed"
        return text

    def to_dict(self) -> Dict[str, Any]:
        return {'results': [result.to_dict() for result in self.results]}


@dataclass
class FeedDocument:
    """Finished outbound ICS body with diagnostics counts."""
    body: str
    class_count: int
    session_count: int
    deadline_count: int
    total_events: int

    def stats(self) -> Dict[str, int]:
        return {
            'classCount': self.class_count,
            'sessionCount': self.session_count,
            'deadlineCount': self.deadline_count,
            'totalEvents': self.total_events,
        }
