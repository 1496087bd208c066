"""DynamoDB-backed store for calendars, events, schedules and tokens."""
import logging
from typing import Any, Dict, List, Optional

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import BotoCoreError, ClientError

from core.exceptions import PersistenceError
from storage.base import BaseStore

logger = logging.getLogger(__name__)

# (partition key, sort key) per item kind
KEY_SCHEMA = {
    'calendars': ('owner_id', 'calendar_id'),
    'events': ('calendar_id', 'uid'),
    'classes': ('owner_id', 'class_id'),
    'sessions': ('owner_id', 'session_id'),
    'deadlines': ('owner_id', 'deadline_id'),
}
OWNER_INDEX = 'owner-index'

DEFAULT_TABLE_NAMES = {
    'calendars': 'external-calendars',
    'events': 'external-calendar-events',
    'classes': 'classes',
    'sessions': 'sessions',
    'deadlines': 'deadlines',
}
DEFAULT_TOKENS_TABLE = 'access-tokens'


class DynamoDBStore(BaseStore):
    """CRUD collaborator implemented on one DynamoDB table per item kind."""

    BATCH_SIZE = 25  # DynamoDB batch operation limit

    def __init__(
        self,
        table_names: Optional[Dict[str, str]] = None,
        tokens_table: str = DEFAULT_TOKENS_TABLE,
        region_name: Optional[str] = None
    ):
        """
        Initialize DynamoDB resource and table references.

        Args:
            table_names: Mapping of item kind to table name; missing kinds
                fall back to DEFAULT_TABLE_NAMES
            tokens_table: Name of the access token table
            region_name: AWS region (boto3 default chain when None)

        Raises:
            ValueError: If table_names names a kind outside KINDS
        """
        unknown = set(table_names or {}) - set(self.KINDS)
        if unknown:
            raise ValueError(f"Unknown item kinds: {', '.join(sorted(unknown))}")
        self.table_names = {**DEFAULT_TABLE_NAMES, **(table_names or {})}
        self.tokens_table_name = tokens_table
        self.dynamodb = boto3.resource('dynamodb', region_name=region_name)
        self.tables = {
            kind: self.dynamodb.Table(name) for kind, name in self.table_names.items()
        }
        self.tokens_table = self.dynamodb.Table(tokens_table)
        logger.info(f"Initialized DynamoDBStore for tables: {self.table_names}")

    def create_tables(self) -> None:
        """Create all tables with their key schemas (local setup and tests)."""
        for kind, name in self.table_names.items():
            hash_key, range_key = KEY_SCHEMA[kind]
            attributes = {hash_key, range_key}
            params = {
                'TableName': name,
                'KeySchema': [
                    {'AttributeName': hash_key, 'KeyType': 'HASH'},
                    {'AttributeName': range_key, 'KeyType': 'RANGE'},
                ],
                'BillingMode': 'PAY_PER_REQUEST',
            }
            if hash_key != 'owner_id':
                attributes.add('owner_id')
                params['GlobalSecondaryIndexes'] = [{
                    'IndexName': OWNER_INDEX,
                    'KeySchema': [{'AttributeName': 'owner_id', 'KeyType': 'HASH'}],
                    'Projection': {'ProjectionType': 'ALL'},
                }]
            params['AttributeDefinitions'] = [
                {'AttributeName': attribute, 'AttributeType': 'S'}
                for attribute in sorted(attributes)
            ]
            self.dynamodb.create_table(**params)

        self.dynamodb.create_table(
            TableName=self.tokens_table_name,
            KeySchema=[{'AttributeName': 'token', 'KeyType': 'HASH'}],
            AttributeDefinitions=[{'AttributeName': 'token', 'AttributeType': 'S'}],
            BillingMode='PAY_PER_REQUEST',
        )
        logger.info("Created DynamoDB tables")

    def _table(self, kind: str):
        if kind not in self.tables:
            raise ValueError(f"Unknown item kind: {kind}")
        return self.tables[kind]

    def _query_all(self, table, query: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Run a query and follow pagination."""
        response = table.query(**query)
        items = response.get('Items', [])

        while 'LastEvaluatedKey' in response:
            response = table.query(
                ExclusiveStartKey=response['LastEvaluatedKey'], **query
            )
            items.extend(response.get('Items', []))

        return items

    def list_items(
        self,
        kind: str,
        owner_id: str,
        parent_filter: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        table = self._table(kind)
        hash_key, _ = KEY_SCHEMA[kind]
        filters = dict(parent_filter or {})

        if hash_key == 'owner_id':
            query = {'KeyConditionExpression': Key('owner_id').eq(owner_id)}
        elif hash_key in filters:
            query = {'KeyConditionExpression': Key(hash_key).eq(filters.pop(hash_key))}
            filters['owner_id'] = owner_id
        else:
            query = {
                'IndexName': OWNER_INDEX,
                'KeyConditionExpression': Key('owner_id').eq(owner_id),
            }

        filter_expression = None
        for attribute, value in filters.items():
            condition = Attr(attribute).eq(value)
            filter_expression = (
                condition if filter_expression is None else filter_expression & condition
            )
        if filter_expression is not None:
            query['FilterExpression'] = filter_expression

        try:
            items = self._query_all(table, query)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error querying {kind} for owner {owner_id}: {e}")
            raise PersistenceError(f"Failed to list {kind}: {e}") from e

        logger.debug(f"Listed {len(items)} {kind} for owner {owner_id}")
        return items

    def upsert(self, kind: str, items: List[Dict[str, Any]]) -> None:
        """
        Write items in batches of 25, replacing existing items with the same key.

        Raises:
            PersistenceError: If any batch fails; earlier batches stay written
        """
        if not items:
            return

        table = self._table(kind)
        logger.info(f"Writing {len(items)} {kind} items to DynamoDB")

        for i in range(0, len(items), self.BATCH_SIZE):
            batch = items[i:i + self.BATCH_SIZE]
            try:
                with table.batch_writer(overwrite_by_pkeys=list(KEY_SCHEMA[kind])) as writer:
                    for item in batch:
                        writer.put_item(Item=item)
            except (ClientError, BotoCoreError) as e:
                logger.error(f"Error writing {kind} batch {i // self.BATCH_SIZE + 1}: {e}")
                raise PersistenceError(f"Failed to write {kind}: {e}") from e

    def delete_where(self, calendar_id: str, owner_id: str) -> int:
        items = self.list_items('events', owner_id, {'calendar_id': calendar_id})
        if not items:
            return 0

        table = self._table('events')
        deleted = 0
        for i in range(0, len(items), self.BATCH_SIZE):
            batch = items[i:i + self.BATCH_SIZE]
            try:
                with table.batch_writer() as writer:
                    for item in batch:
                        writer.delete_item(
                            Key={'calendar_id': item['calendar_id'], 'uid': item['uid']}
                        )
                        deleted += 1
            except (ClientError, BotoCoreError) as e:
                logger.error(f"Error deleting events of calendar {calendar_id}: {e}")
                raise PersistenceError(f"Failed to delete events: {e}") from e

        logger.info(f"Deleted {deleted} events of calendar {calendar_id}")
        return deleted

    def _owner_key(self, kind: str, owner_id: str, item_id: str) -> Dict[str, str]:
        hash_key, range_key = KEY_SCHEMA[kind]
        if hash_key != 'owner_id':
            raise ValueError(f"{kind} items are not addressed by owner and id")
        return {hash_key: owner_id, range_key: item_id}

    def update_field(
        self,
        kind: str,
        owner_id: str,
        item_id: str,
        field: str,
        value: Any
    ) -> None:
        key = self._owner_key(kind, owner_id, item_id)
        try:
            self._table(kind).update_item(
                Key=key,
                UpdateExpression='SET #field = :value',
                ConditionExpression=Attr('owner_id').exists(),
                ExpressionAttributeNames={'#field': field},
                ExpressionAttributeValues={':value': value},
            )
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') == 'ConditionalCheckFailedException':
                raise PersistenceError(f"{kind} item {item_id} not found") from e
            logger.error(f"Error updating {field} on {kind} {item_id}: {e}")
            raise PersistenceError(f"Failed to update {kind}: {e}") from e
        except BotoCoreError as e:
            raise PersistenceError(f"Failed to update {kind}: {e}") from e

    def delete_item(self, kind: str, owner_id: str, item_id: str) -> None:
        key = self._owner_key(kind, owner_id, item_id)
        try:
            self._table(kind).delete_item(Key=key)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error deleting {kind} {item_id}: {e}")
            raise PersistenceError(f"Failed to delete {kind}: {e}") from e

    def get_token_owner(self, token: str) -> Optional[Dict[str, Any]]:
        try:
            response = self.tokens_table.get_item(Key={'token': token})
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error looking up access token: {e}")
            raise PersistenceError(f"Failed to look up token: {e}") from e
        return response.get('Item')
