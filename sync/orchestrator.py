"""Sync orchestrator: fetch, parse and replace events for external calendars."""
import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from codec.event_parser import parse_document
from core.exceptions import ICSEngineError, PersistenceError, ValidationError
from core.models import (
    CalendarSyncResult,
    ExternalCalendar,
    ExternalCalendarEvent,
    ParsedEvent,
    SyncReport,
    format_timestamp,
)
from fetcher.feed_fetcher import FeedFetcher
from storage.base import BaseStore

logger = logging.getLogger(__name__)

FEED_URL_SCHEMES = ('http://', 'https://', 'webcal://')


def dedupe_by_uid(events: List[ParsedEvent]) -> List[ParsedEvent]:
    """
    Keep the first event for each UID.

    Recurrence overrides share their master's UID; the master comes first in
    provider exports, and the store holds one row per (calendar, UID).
    """
    seen = set()
    unique = []
    for event in events:
        if event.uid in seen:
            continue
        seen.add(event.uid)
        unique.append(event)

    if len(unique) != len(events):
        logger.debug(f"Dropped {len(events) - len(unique)} events with duplicate UIDs")
    return unique


class SyncOrchestrator:
    """Runs fetch -> parse -> replace for an owner's external calendars."""

    def __init__(
        self,
        store: BaseStore,
        fetcher: FeedFetcher,
        batch_size: int = 25,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Args:
            store: CRUD collaborator
            fetcher: Feed fetcher
            batch_size: Events per upsert call
            clock: Returns the current UTC time (for last_synced_at)
        """
        self.store = store
        self.fetcher = fetcher
        self.batch_size = batch_size
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def list_calendars(self, owner_id: str, enabled_only: bool = False) -> List[ExternalCalendar]:
        parent_filter = {'enabled': True} if enabled_only else None
        items = self.store.list_items('calendars', owner_id, parent_filter)
        return [ExternalCalendar.from_item(item) for item in items]

    def get_calendar(self, owner_id: str, calendar_id: str) -> Optional[ExternalCalendar]:
        items = self.store.list_items('calendars', owner_id, {'calendar_id': calendar_id})
        return ExternalCalendar.from_item(items[0]) if items else None

    def sync(self, owner_id: str, calendar_id: Optional[str] = None) -> SyncReport:
        """
        Sync one calendar or all enabled calendars of an owner.

        Calendars are processed one after another; a failure is recorded in
        the report for that calendar only and its stored events are left as
        they were.

        Args:
            owner_id: Authenticated owner
            calendar_id: Restrict the sync to this calendar (must be enabled)

        Returns:
            SyncReport with one entry per calendar attempted
        """
        calendars = self.list_calendars(owner_id, enabled_only=True)
        if calendar_id:
            calendars = [calendar for calendar in calendars if calendar.calendar_id == calendar_id]

        logger.info(f"Starting sync of {len(calendars)} calendars for owner {owner_id}")
        report = SyncReport()

        for calendar in calendars:
            try:
                count = self.sync_calendar(calendar)
                report.results.append(CalendarSyncResult(
                    calendar_id=calendar.calendar_id,
                    name=calendar.name,
                    events_count=count,
                ))
            except ICSEngineError as e:
                logger.warning(f"Sync of calendar {calendar.calendar_id} ({calendar.name}) failed: {e}")
                report.results.append(CalendarSyncResult(
                    calendar_id=calendar.calendar_id,
                    name=calendar.name,
                    error=str(e),
                ))
            except Exception as e:
                logger.error(
                    f"Unexpected error syncing calendar {calendar.calendar_id}: {e}",
                    extra={'error_type': type(e).__name__},
                    exc_info=True
                )
                report.results.append(CalendarSyncResult(
                    calendar_id=calendar.calendar_id,
                    name=calendar.name,
                    error=str(e) or type(e).__name__,
                ))

        logger.info(report.summary())
        return report

    def sync_calendar(self, calendar: ExternalCalendar) -> int:
        """
        Fetch, parse and store one calendar's events.

        Returns:
            Number of events stored

        Raises:
            FetchError, FeedParseError, PersistenceError
        """
        body = self.fetcher.fetch(calendar.feed_url)
        events = dedupe_by_uid(parse_document(body))

        self.replace_events(calendar, events)

        # Events are already replaced; a failed stamp must not report the sync as failed
        synced_at = format_timestamp(self.clock())
        try:
            self.store.update_field(
                'calendars', calendar.owner_id, calendar.calendar_id, 'last_synced_at', synced_at
            )
            calendar.last_synced_at = synced_at
        except PersistenceError as e:
            logger.warning(f"Could not stamp last sync for calendar {calendar.calendar_id}: {e}")

        logger.info(f"Synced {len(events)} events for calendar {calendar.calendar_id}")
        return len(events)

    def replace_events(self, calendar: ExternalCalendar, events: List[ParsedEvent]) -> None:
        """
        Replace a calendar's stored events with a freshly parsed set.

        Existing rows are deleted, then the new set is upserted in batches.
        If the delete or an upsert fails, the calendar's rows are reset to
        the snapshot taken before the delete.

        Raises:
            PersistenceError: If the new set could not be written
        """
        owner_id = calendar.owner_id
        calendar_id = calendar.calendar_id
        snapshot = self.store.list_items('events', owner_id, {'calendar_id': calendar_id})

        items = [
            ExternalCalendarEvent.from_parsed(calendar_id, owner_id, event).to_item()
            for event in events
        ]

        try:
            self.store.delete_where(calendar_id, owner_id)
            for i in range(0, len(items), self.batch_size):
                self.store.upsert('events', items[i:i + self.batch_size])
        except PersistenceError:
            logger.warning(
                f"Restoring {len(snapshot)} previous events for calendar {calendar_id}"
            )
            self.store.delete_where(calendar_id, owner_id)
            self.store.upsert('events', snapshot)
            raise

    def add_calendar(
        self,
        owner_id: str,
        name: str,
        feed_url: str,
        provider: str = 'other',
        color: Optional[str] = None
    ) -> Tuple[ExternalCalendar, SyncReport]:
        """
        Create a calendar subscription and sync it immediately.

        Raises:
            ValidationError: If the name is empty or the URL is not http(s)/webcal
        """
        name = (name or '').strip()
        feed_url = (feed_url or '').strip()
        if not name:
            raise ValidationError('Calendar name is required')
        if not feed_url.lower().startswith(FEED_URL_SCHEMES):
            raise ValidationError('Feed URL must start with http://, https:// or webcal://')

        calendar = ExternalCalendar(
            calendar_id=str(uuid.uuid4()),
            owner_id=owner_id,
            name=name,
            feed_url=feed_url,
            provider=provider,
        )
        if color:
            calendar.color = color

        self.store.upsert('calendars', [calendar.to_item()])
        logger.info(f"Added calendar {calendar.calendar_id} ({calendar.provider}) for owner {owner_id}")

        report = self.sync(owner_id, calendar.calendar_id)
        return calendar, report

    def remove_calendar(self, owner_id: str, calendar_id: str) -> bool:
        """Delete a calendar and all of its events. Returns False if unknown."""
        if self.get_calendar(owner_id, calendar_id) is None:
            return False

        self.store.delete_where(calendar_id, owner_id)
        self.store.delete_item('calendars', owner_id, calendar_id)
        logger.info(f"Removed calendar {calendar_id} for owner {owner_id}")
        return True

    def set_enabled(self, owner_id: str, calendar_id: str, enabled: bool) -> Optional[ExternalCalendar]:
        """Toggle a calendar. Returns the updated calendar, or None if unknown."""
        calendar = self.get_calendar(owner_id, calendar_id)
        if calendar is None:
            return None

        self.store.update_field('calendars', owner_id, calendar_id, 'enabled', bool(enabled))
        calendar.enabled = bool(enabled)
        return calendar
