"""Shared fixtures: mocked DynamoDB store and ICS feed builders."""
import os

import pytest
from moto import mock_aws

from storage.dynamodb_store import DynamoDBStore

# boto3 needs a region and credentials even under moto
os.environ.setdefault('AWS_DEFAULT_REGION', 'us-east-1')
os.environ.setdefault('AWS_ACCESS_KEY_ID', 'testing')
os.environ.setdefault('AWS_SECRET_ACCESS_KEY', 'testing')


@pytest.fixture
def store():
    """DynamoDBStore backed by moto with all tables created."""
    with mock_aws():
        dynamodb_store = DynamoDBStore(region_name='us-east-1')
        dynamodb_store.create_tables()
        yield dynamodb_store


def build_vevent(uid=None, summary=None, dtstart='20260215T090000Z',
                 dtend='20260215T100000Z', extra=()):
    lines = ['BEGIN:VEVENT']
    if uid is not None:
        lines.append(f'UID:{uid}')
    if summary is not None:
        lines.append(f'SUMMARY:{summary}')
    if dtstart is not None:
        lines.append(f'DTSTART:{dtstart}')
    if dtend is not None:
        lines.append(f'DTEND:{dtend}')
    lines.extend(extra)
    lines.append('END:VEVENT')
    return lines


def build_feed(*vevents):
    lines = ['BEGIN:VCALENDAR', 'VERSION:2.0', 'PRODID:-//Test//Feed//EN']
    for vevent in vevents:
        lines.extend(vevent)
    lines.append('END:VCALENDAR')
    return '\r\n'.join(lines) + '\r\n'


@pytest.fixture
def feed_builder():
    """Expose the feed helpers to tests as ``(build_vevent, build_feed)``."""
    return build_vevent, build_feed
