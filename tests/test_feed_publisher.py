"""Tests for FeedPublisher against a mocked DynamoDB store."""
from datetime import date, datetime, time, timezone

import pytest

from codec.event_parser import parse_document
from core.models import ClassSchedule, Deadline, Session
from publisher.feed_publisher import FeedPublisher

OWNER = 'user-1'
NOW = datetime(2026, 1, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def publisher(store):
    return FeedPublisher(store, calendar_name='Spring 2026', clock=lambda: NOW)


@pytest.fixture
def schedule(store):
    """Seed one owner with two classes, a session and two deadlines."""
    store.upsert('classes', [
        ClassSchedule(
            class_id='cls-1', owner_id=OWNER, name='Calculus I', code='MATH 101',
            meeting_days={1, 3}, start_time=time(9, 0), end_time=time(10, 30),
            semester_start=date(2026, 1, 12), semester_end=date(2026, 5, 1),
            location='Room 204',
        ).to_item(),
        ClassSchedule(
            class_id='cls-2', owner_id=OWNER, name='Independent Study',
            meeting_days=set(), start_time=time(0, 0), end_time=time(0, 0),
            semester_start=date(2026, 1, 12), semester_end=date(2026, 5, 1),
        ).to_item(),
    ])
    store.upsert('sessions', [
        Session(
            session_id='ses-1', owner_id=OWNER, class_id='cls-1',
            session_date=date(2026, 2, 7), start_time=time(10, 0), end_time=time(12, 0),
            topics=['Review'],
        ).to_item(),
    ])
    store.upsert('deadlines', [
        Deadline(
            deadline_id='dl-1', owner_id=OWNER, class_id='cls-1', title='Problem set 1',
            due_date=date(2026, 2, 1), weight=0.1,
        ).to_item(),
        Deadline(
            deadline_id='dl-2', owner_id=OWNER, title='Scholarship essay',
            due_date=date(2026, 3, 15), deadline_type='application',
        ).to_item(),
    ])
    # Another owner's data must never appear
    store.upsert('deadlines', [
        Deadline(deadline_id='dl-x', owner_id='user-2', title='Not mine',
                 due_date=date(2026, 2, 2)).to_item(),
    ])


def test_build_feed_counts(publisher, schedule):
    """Test diagnostics counts; a class without meeting days emits no event."""
    document = publisher.build_feed(OWNER)

    assert document.stats() == {
        'classCount': 2,
        'sessionCount': 1,
        'deadlineCount': 2,
        'totalEvents': 4,
    }


def test_build_feed_body(publisher, schedule):
    """Test the body contains each entity joined to its class."""
    body = publisher.build_feed(OWNER).body
    events = {event.uid: event for event in parse_document(body)}

    assert set(events) == {
        'class-cls-1@student-planner',
        'session-ses-1@student-planner',
        'deadline-dl-1@student-planner',
        'deadline-dl-2@student-planner',
    }
    assert events['class-cls-1@student-planner'].recurrence_rule == \
        'FREQ=WEEKLY;BYDAY=MO,WE;UNTIL=20260501T235959Z'
    assert events['session-ses-1@student-planner'].title == 'MATH 101'
    assert events['deadline-dl-1@student-planner'].title.endswith('Problem set 1 (MATH 101)')
    assert events['deadline-dl-2@student-planner'].description == 'application - pending'
    assert 'X-WR-CALNAME:Spring 2026' in body
    assert 'DTSTAMP:20260110T120000Z' in body
    assert 'Not mine' not in body


def test_build_feed_empty_owner(publisher):
    """Test an owner without data gets a valid empty calendar."""
    document = publisher.build_feed('nobody')

    assert document.total_events == 0
    assert document.body.startswith('BEGIN:VCALENDAR\r\n')
    assert parse_document(document.body) == []


def test_deadline_with_timestamp_due_date(store, publisher):
    """Test a due date stored with a time part keeps only its date."""
    store.upsert('deadlines', [{
        'deadline_id': 'dl-9',
        'owner_id': OWNER,
        'title': 'Lab report',
        'due_date': '2026-04-20T23:59:00+00:00',
        'deadline_type': 'assignment',
        'status': 'submitted',
    }])

    body = publisher.build_feed(OWNER).body

    assert 'DTSTART;VALUE=DATE:20260420' in body
    assert 'DESCRIPTION:assignment - submitted' in body
