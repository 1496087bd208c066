"""Bearer token authentication for the sync and feed endpoints."""
import logging
import time
from typing import Callable, Mapping, Optional

from core.exceptions import AuthError
from storage.base import BaseStore

logger = logging.getLogger(__name__)


def extract_bearer_token(headers: Optional[Mapping[str, str]]) -> Optional[str]:
    """Return the token from an ``Authorization: Bearer`` header, if any."""
    for name, value in (headers or {}).items():
        if name.lower() != 'authorization' or not value:
            continue
        scheme, _, token = value.strip().partition(' ')
        if scheme.lower() == 'bearer' and token.strip():
            return token.strip()
    return None


class TokenAuthenticator:
    """Resolves access tokens to owner ids through the store's token table."""

    def __init__(self, store: BaseStore, clock: Optional[Callable[[], float]] = None):
        self.store = store
        self.clock = clock or time.time

    def authenticate(self, token: Optional[str]) -> str:
        """
        Resolve a token to its owner id.

        Raises:
            AuthError: If the token is missing, unknown or expired
        """
        if not token:
            raise AuthError('Missing access token')

        record = self.store.get_token_owner(token)
        if not record or not record.get('owner_id'):
            logger.warning("Rejected unknown access token")
            raise AuthError('Invalid access token')

        expires_at = record.get('expires_at')
        if expires_at is not None and int(expires_at) <= self.clock():
            logger.warning(f"Rejected expired access token for owner {record['owner_id']}")
            raise AuthError('Access token expired')

        return record['owner_id']
