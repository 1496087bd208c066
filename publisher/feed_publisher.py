"""Feed publisher assembling an owner's schedule into an outbound ICS feed."""
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from codec.event_serializer import DEFAULT_CALENDAR_NAME, build_vevents, wrap_calendar
from core.models import ClassSchedule, Deadline, FeedDocument, Session
from storage.base import BaseStore

logger = logging.getLogger(__name__)

DOWNLOAD_FILENAME = 'student-planner.ics'


class FeedPublisher:
    """Builds the ICS document for one owner's classes, sessions and deadlines."""

    def __init__(
        self,
        store: BaseStore,
        calendar_name: str = DEFAULT_CALENDAR_NAME,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.store = store
        self.calendar_name = calendar_name
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def build_feed(self, owner_id: str) -> FeedDocument:
        """
        Read the owner's schedule and serialize it.

        The document is built completely in memory; any store or
        serialization error propagates before anything is returned.

        Args:
            owner_id: Authenticated owner

        Returns:
            FeedDocument with the ICS body and per-kind counts
        """
        classes = [ClassSchedule.from_item(item)
                   for item in self.store.list_items('classes', owner_id)]
        sessions = [Session.from_item(item)
                    for item in self.store.list_items('sessions', owner_id)]
        deadlines = [Deadline.from_item(item)
                     for item in self.store.list_items('deadlines', owner_id)]

        class_lookup = {schedule.class_id: schedule for schedule in classes}
        blocks = build_vevents(classes, sessions, deadlines, class_lookup, self.clock())
        body = wrap_calendar(blocks, self.calendar_name)

        logger.info(
            f"Built feed for owner {owner_id}: {len(classes)} classes, "
            f"{len(sessions)} sessions, {len(deadlines)} deadlines"
        )
        return FeedDocument(
            body=body,
            class_count=len(classes),
            session_count=len(sessions),
            deadline_count=len(deadlines),
            total_events=len(blocks),
        )
