"""AWS Lambda handlers for external calendar sync and the outbound ICS feed."""
import base64
import binascii
import json
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from core.auth import TokenAuthenticator, extract_bearer_token
from core.exceptions import AuthError, ValidationError
from fetcher.feed_fetcher import DEFAULT_USER_AGENT, FeedFetcher
from publisher.feed_publisher import DOWNLOAD_FILENAME, FeedPublisher
from storage.dynamodb_store import DynamoDBStore
from sync.orchestrator import SyncOrchestrator


CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Headers': 'authorization, content-type',
    'Access-Control-Allow-Methods': 'GET, POST, OPTIONS',
}

# Attributes present on every LogRecord; anything else came in via extra=
_RESERVED_LOG_ATTRS = set(vars(logging.LogRecord('', 0, '', 0, '', None, None))) | {
    'message', 'asctime'
}


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON, including fields passed via ``extra``."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        for key, value in vars(record).items():
            if key not in _RESERVED_LOG_ATTRS and key not in log_data:
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


@dataclass
class Settings:
    """Runtime configuration read from environment variables."""
    calendars_table: str = 'external-calendars'
    events_table: str = 'external-calendar-events'
    classes_table: str = 'classes'
    sessions_table: str = 'sessions'
    deadlines_table: str = 'deadlines'
    tokens_table: str = 'access-tokens'
    log_level: str = 'INFO'
    timeout_seconds: int = 30
    user_agent: str = DEFAULT_USER_AGENT
    feed_name: str = 'Student Planner - My Classes'
    region_name: Optional[str] = None


def load_settings() -> Settings:
    """Read configuration from environment variables."""
    return Settings(
        calendars_table=os.environ.get('CALENDARS_TABLE', 'external-calendars'),
        events_table=os.environ.get('EVENTS_TABLE', 'external-calendar-events'),
        classes_table=os.environ.get('CLASSES_TABLE', 'classes'),
        sessions_table=os.environ.get('SESSIONS_TABLE', 'sessions'),
        deadlines_table=os.environ.get('DEADLINES_TABLE', 'deadlines'),
        tokens_table=os.environ.get('TOKENS_TABLE', 'access-tokens'),
        log_level=os.environ.get('LOG_LEVEL', 'INFO'),
        timeout_seconds=int(os.environ.get('TIMEOUT_SECONDS', '30')),
        user_agent=os.environ.get('USER_AGENT', DEFAULT_USER_AGENT),
        feed_name=os.environ.get('FEED_NAME', 'Student Planner - My Classes'),
        region_name=os.environ.get('AWS_REGION'),
    )


def build_store(settings: Settings) -> DynamoDBStore:
    return DynamoDBStore(
        table_names={
            'calendars': settings.calendars_table,
            'events': settings.events_table,
            'classes': settings.classes_table,
            'sessions': settings.sessions_table,
            'deadlines': settings.deadlines_table,
        },
        tokens_table=settings.tokens_table,
        region_name=settings.region_name,
    )


def _json_response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'statusCode': status_code,
        'headers': {**CORS_HEADERS, 'Content-Type': 'application/json'},
        'body': json.dumps(body),
    }


def _http_method(event: Dict[str, Any]) -> str:
    method = event.get('httpMethod')
    if not method:
        method = event.get('requestContext', {}).get('http', {}).get('method', '')
    return method.upper()


def _parse_body(event: Dict[str, Any]) -> Dict[str, Any]:
    body = event.get('body') or '{}'
    try:
        if event.get('isBase64Encoded'):
            body = base64.b64decode(body, validate=True).decode('utf-8')
        payload = json.loads(body)
    except (TypeError, ValueError, binascii.Error, UnicodeDecodeError) as e:
        raise ValidationError(f"Invalid request body: {e}") from e
    if not isinstance(payload, dict):
        raise ValidationError('Request body must be a JSON object')
    return payload


def _require(payload: Dict[str, Any], field: str) -> Any:
    value = payload.get(field)
    if value in (None, ''):
        raise ValidationError(f"Missing required field: {field}")
    return value


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    API Gateway entry point routing by HTTP method.

    POST runs calendar sync actions, GET serves the outbound ICS feed.
    """
    method = _http_method(event)
    if method == 'POST':
        return sync_handler(event, context)
    if method == 'GET':
        return feed_handler(event, context)
    if method == 'OPTIONS':
        return {'statusCode': 204, 'headers': CORS_HEADERS, 'body': ''}
    return _json_response(405, {'error': 'Method not allowed'})


def sync_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Handle sync trigger requests.

    Body: ``{"action": "sync", "calendarId"?: str}``. Also accepts the
    ``add``, ``remove`` and ``toggle`` calendar actions.

    Returns:
        API Gateway proxy response; 200 with the SyncReport for ``sync``
    """
    settings = load_settings()
    setup_logging(settings.log_level)
    logger = logging.getLogger(__name__)

    start_time = time.time()

    try:
        store = build_store(settings)
        owner_id = TokenAuthenticator(store).authenticate(
            extract_bearer_token(event.get('headers'))
        )
        payload = _parse_body(event)
        action = payload.get('action')

        orchestrator = SyncOrchestrator(
            store=store,
            fetcher=FeedFetcher(timeout=settings.timeout_seconds, user_agent=settings.user_agent),
        )
        logger.info(
            "Sync request received",
            extra={'owner_id': owner_id, 'action': action}
        )

        if action == 'sync':
            report = orchestrator.sync(owner_id, payload.get('calendarId'))
            logger.info(
                "Sync request completed",
                extra={
                    'duration_seconds': round(time.time() - start_time, 2),
                    'calendars': len(report.results),
                    'failed': len(report.failed),
                    'events': report.total_events,
                }
            )
            return _json_response(200, report.to_dict())

        if action == 'add':
            calendar, report = orchestrator.add_calendar(
                owner_id,
                name=_require(payload, 'name'),
                feed_url=_require(payload, 'url'),
                provider=payload.get('provider', 'other'),
                color=payload.get('color'),
            )
            return _json_response(200, {'calendar': calendar.to_dict(), **report.to_dict()})

        if action == 'remove':
            removed = orchestrator.remove_calendar(owner_id, _require(payload, 'calendarId'))
            return _json_response(200, {'removed': removed})

        if action == 'toggle':
            enabled = payload.get('enabled')
            if not isinstance(enabled, bool):
                raise ValidationError('Field "enabled" must be a boolean')
            calendar = orchestrator.set_enabled(owner_id, _require(payload, 'calendarId'), enabled)
            if calendar is None:
                return _json_response(404, {'error': 'Calendar not found'})
            return _json_response(200, {'calendar': calendar.to_dict()})

        return _json_response(400, {'error': 'Invalid action'})

    except AuthError as e:
        logger.warning(f"Unauthorized sync request: {e}")
        return _json_response(401, {'error': 'Unauthorized'})

    except ValidationError as e:
        logger.warning(f"Invalid sync request: {e}")
        return _json_response(400, {'error': str(e)})

    except Exception as e:
        logger.error(
            f"Sync request failed: {str(e)}",
            extra={
                'duration_seconds': round(time.time() - start_time, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )
        return _json_response(500, {'error': 'Internal server error'})


def feed_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Serve the outbound ICS feed.

    The token comes from ``Authorization: Bearer`` or, for calendar client
    subscriptions that cannot send headers, the ``token`` query parameter.
    ``format=json`` returns counts only; ``download=1`` adds an attachment
    Content-Disposition.
    """
    settings = load_settings()
    setup_logging(settings.log_level)
    logger = logging.getLogger(__name__)

    params = event.get('queryStringParameters') or {}
    token = params.get('token') or extract_bearer_token(event.get('headers'))

    try:
        store = build_store(settings)
        owner_id = TokenAuthenticator(store).authenticate(token)
    except AuthError as e:
        logger.warning(f"Unauthorized feed request: {e}")
        return _json_response(401, {'error': 'Unauthorized'})
    except Exception as e:
        logger.error(f"Feed authentication failed: {str(e)}", exc_info=True)
        return _json_response(500, {'error': 'Failed to generate calendar feed'})

    try:
        document = FeedPublisher(store, calendar_name=settings.feed_name).build_feed(owner_id)
    except Exception as e:
        logger.error(
            f"ICS generation failed: {str(e)}",
            extra={'owner_id': owner_id, 'error_type': type(e).__name__},
            exc_info=True
        )
        return _json_response(500, {'error': 'Failed to generate calendar feed'})

    if params.get('format') == 'json':
        return _json_response(200, document.stats())

    headers = {**CORS_HEADERS, 'Content-Type': 'text/calendar; charset=utf-8'}
    if str(params.get('download', '')).lower() in ('1', 'true', 'yes'):
        headers['Content-Disposition'] = f'attachment; filename="{DOWNLOAD_FILENAME}"'

    return {
        'statusCode': 200,
        'headers': headers,
        'body': document.body,
    }
