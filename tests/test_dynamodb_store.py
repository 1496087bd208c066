"""Unit tests for DynamoDBStore."""
import pytest

from core.exceptions import PersistenceError
from core.models import ExternalCalendar
from storage.dynamodb_store import DynamoDBStore


def _calendar_item(calendar_id, owner_id='user-1', enabled=True):
    return ExternalCalendar(
        calendar_id=calendar_id,
        owner_id=owner_id,
        name=f'Calendar {calendar_id}',
        feed_url=f'https://example.com/{calendar_id}.ics',
        provider='google',
        enabled=enabled,
    ).to_item()


def _event_item(calendar_id, uid, owner_id='user-1', title='Event'):
    return {
        'calendar_id': calendar_id,
        'uid': uid,
        'owner_id': owner_id,
        'title': title,
        'start_time': '2026-02-15T09:00:00Z',
        'all_day': False,
    }


def test_list_items_empty(store):
    """Test listing an owner with no data returns an empty list."""
    assert store.list_items('calendars', 'user-1') == []


def test_list_calendars_scoped_to_owner(store):
    """Test calendars are filtered by owner."""
    store.upsert('calendars', [_calendar_item('cal-1'), _calendar_item('cal-2', owner_id='user-2')])

    items = store.list_items('calendars', 'user-1')

    assert [item['calendar_id'] for item in items] == ['cal-1']


def test_list_with_parent_filter(store):
    """Test attribute equality filters narrow the result."""
    store.upsert('calendars', [
        _calendar_item('cal-1'),
        _calendar_item('cal-2', enabled=False),
    ])

    enabled = store.list_items('calendars', 'user-1', {'enabled': True})
    single = store.list_items('calendars', 'user-1', {'calendar_id': 'cal-2'})

    assert [item['calendar_id'] for item in enabled] == ['cal-1']
    assert [item['calendar_id'] for item in single] == ['cal-2']


def test_upsert_replaces_by_key(store):
    """Test writing the same (calendar_id, uid) twice keeps one item."""
    store.upsert('events', [_event_item('cal-1', 'uid-1', title='Old')])
    store.upsert('events', [_event_item('cal-1', 'uid-1', title='New')])

    items = store.list_items('events', 'user-1', {'calendar_id': 'cal-1'})

    assert len(items) == 1
    assert items[0]['title'] == 'New'


def test_upsert_tolerates_duplicate_keys_in_one_batch(store):
    """Test duplicates inside a single call do not fail the batch."""
    store.upsert('events', [
        _event_item('cal-1', 'uid-1', title='First'),
        _event_item('cal-1', 'uid-1', title='Second'),
    ])

    items = store.list_items('events', 'user-1', {'calendar_id': 'cal-1'})

    assert len(items) == 1


def test_upsert_more_than_one_batch(store):
    """Test more than 25 items are written across batches."""
    store.upsert('events', [_event_item('cal-1', f'uid-{i:02d}') for i in range(60)])

    assert len(store.list_items('events', 'user-1', {'calendar_id': 'cal-1'})) == 60


def test_list_events_across_calendars_uses_owner_index(store):
    """Test events can be listed for an owner without a calendar filter."""
    store.upsert('events', [
        _event_item('cal-1', 'a'),
        _event_item('cal-2', 'b'),
        _event_item('cal-3', 'c', owner_id='user-2'),
    ])

    items = store.list_items('events', 'user-1')

    assert sorted(item['uid'] for item in items) == ['a', 'b']


def test_events_for_calendar_are_scoped_to_owner(store):
    """Test a calendar filter still applies the owner predicate."""
    store.upsert('events', [
        _event_item('cal-1', 'mine'),
        _event_item('cal-1', 'theirs', owner_id='user-2'),
    ])

    items = store.list_items('events', 'user-1', {'calendar_id': 'cal-1'})

    assert [item['uid'] for item in items] == ['mine']


def test_delete_where_only_touches_one_calendar(store):
    """Test delete_where removes one calendar's events for one owner."""
    store.upsert('events', [_event_item('cal-1', f'uid-{i}') for i in range(30)])
    store.upsert('events', [
        _event_item('cal-2', 'keep'),
        _event_item('cal-1', 'other-owner', owner_id='user-2'),
    ])

    deleted = store.delete_where('cal-1', 'user-1')

    assert deleted == 30
    assert store.list_items('events', 'user-1', {'calendar_id': 'cal-1'}) == []
    assert len(store.list_items('events', 'user-1', {'calendar_id': 'cal-2'})) == 1
    assert len(store.list_items('events', 'user-2', {'calendar_id': 'cal-1'})) == 1


def test_delete_where_empty(store):
    """Test deleting from an empty calendar is a no-op."""
    assert store.delete_where('cal-1', 'user-1') == 0


def test_update_field(store):
    """Test a single attribute is updated in place."""
    store.upsert('calendars', [_calendar_item('cal-1')])

    store.update_field('calendars', 'user-1', 'cal-1', 'last_synced_at', '2026-02-15T10:00:00Z')

    item = store.list_items('calendars', 'user-1')[0]
    assert item['last_synced_at'] == '2026-02-15T10:00:00Z'
    assert item['name'] == 'Calendar cal-1'


def test_update_field_unknown_item(store):
    """Test updating a missing item raises instead of creating it."""
    with pytest.raises(PersistenceError):
        store.update_field('calendars', 'user-1', 'missing', 'enabled', False)

    assert store.list_items('calendars', 'user-1') == []


def test_update_field_rejects_event_kind(store):
    """Test events are not addressable by owner and id."""
    with pytest.raises(ValueError):
        store.update_field('events', 'user-1', 'uid-1', 'title', 'x')


def test_delete_item(store):
    """Test deleting one calendar record."""
    store.upsert('calendars', [_calendar_item('cal-1'), _calendar_item('cal-2')])

    store.delete_item('calendars', 'user-1', 'cal-1')

    assert [item['calendar_id'] for item in store.list_items('calendars', 'user-1')] == ['cal-2']


def test_unknown_kind(store):
    """Test unknown kinds are rejected."""
    with pytest.raises(ValueError):
        store.list_items('todos', 'user-1')


def test_unknown_kind_in_table_names():
    """Test table name overrides are limited to the known kinds."""
    with pytest.raises(ValueError, match='todos'):
        DynamoDBStore(table_names={'todos': 'todo-table'}, region_name='us-east-1')


def test_get_token_owner(store):
    """Test token lookup returns the stored record or None."""
    store.tokens_table.put_item(Item={'token': 'tok-1', 'owner_id': 'user-1'})

    assert store.get_token_owner('tok-1')['owner_id'] == 'user-1'
    assert store.get_token_owner('nope') is None
