"""Parser turning tokenized ICS content lines into ParsedEvent objects."""
import logging
from typing import Dict, Iterable, List, Optional, Union

from codec.text import parse_ics_datetime, unescape_text
from codec.tokenizer import ContentLine, tokenize
from core.exceptions import FeedParseError
from core.models import ParsedEvent

logger = logging.getLogger(__name__)

TEXT_PROPERTIES = {'UID', 'SUMMARY', 'DESCRIPTION', 'LOCATION'}


class _EventRecord:
    """Working record accumulated between BEGIN:VEVENT and END:VEVENT."""

    def __init__(self):
        self.fields: Dict[str, str] = {}
        self.start = None
        self.end = None
        self.all_day = False
        self.recurrence_rule: Optional[str] = None

    def apply(self, line: ContentLine) -> None:
        if line.name in TEXT_PROPERTIES:
            self.fields[line.name] = unescape_text(line.value)
        elif line.name in ('DTSTART', 'DTEND'):
            decoded = parse_ics_datetime(line.value, date_only=_is_date_only(line))
            if decoded is None:
                logger.debug(f"Undecodable {line.name} value: {line.value!r}")
                return
            if line.name == 'DTSTART':
                self.start, self.all_day = decoded
            else:
                self.end = decoded[0]
        elif line.name == 'RRULE':
            self.recurrence_rule = line.value.strip() or None

    def build(self) -> Optional[ParsedEvent]:
        uid = self.fields.get('UID', '').strip()
        title = self.fields.get('SUMMARY', '')
        if not uid or not title or self.start is None:
            return None
        return ParsedEvent(
            uid=uid,
            title=title,
            description=self.fields.get('DESCRIPTION', ''),
            location=self.fields.get('LOCATION', ''),
            start_time=self.start,
            end_time=self.end,
            all_day=self.all_day,
            recurrence_rule=self.recurrence_rule,
        )


def _is_date_only(line: ContentLine) -> bool:
    return (line.param('VALUE') or '').upper() == 'DATE'


def parse_events(lines: Iterable[ContentLine]) -> List[ParsedEvent]:
    """
    Build ParsedEvent objects from tokenized lines.

    Only UID, SUMMARY, DESCRIPTION, LOCATION, DTSTART, DTEND and RRULE are
    read; anything else is ignored. Components nested inside a VEVENT (such
    as VALARM) are skipped entirely. Events without a UID, a SUMMARY or a
    decodable start are dropped.

    Args:
        lines: Content lines from the tokenizer

    Returns:
        List of ParsedEvent objects in document order
    """
    events = []
    discarded = 0
    record: Optional[_EventRecord] = None
    nested: List[str] = []

    for line in lines:
        if line.name == 'BEGIN':
            component = line.value.strip().upper()
            if component == 'VEVENT':
                if record is not None:
                    discarded += 1
                record = _EventRecord()
                nested = []
            elif record is not None:
                nested.append(component)
            continue

        if line.name == 'END':
            component = line.value.strip().upper()
            if record is None:
                continue
            if nested:
                if component in nested:
                    # Unwind to the matching BEGIN, tolerating unbalanced children
                    while nested.pop() != component:
                        pass
                continue
            if component == 'VEVENT':
                event = record.build()
                if event is None:
                    discarded += 1
                else:
                    events.append(event)
                record = None
            continue

        if record is not None and not nested:
            record.apply(line)

    if record is not None:
        discarded += 1
    if discarded:
        logger.debug(f"Discarded {discarded} incomplete events")
    return events


def parse_document(document: Union[str, bytes]) -> List[ParsedEvent]:
    """
    Tokenize and parse a whole ICS document.

    Raises:
        FeedParseError: If the body has no VCALENDAR component at all
    """
    lines = tokenize(document)
    if not any(line.name == 'BEGIN' and line.value.strip().upper() == 'VCALENDAR'
               for line in lines):
        raise FeedParseError('Response is not an iCalendar document')

    events = parse_events(lines)
    logger.info(f"Parsed {len(events)} events from {len(lines)} content lines")
    return events
