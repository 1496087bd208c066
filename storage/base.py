"""CRUD collaborator contract used by the sync and feed components."""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


class BaseStore(ABC):
    """Abstract store holding calendars, events, schedules and access tokens.

    Item kinds are ``calendars``, ``events``, ``classes``, ``sessions`` and
    ``deadlines``. Every read is filtered by owner id.
    """

    KINDS = ('calendars', 'events', 'classes', 'sessions', 'deadlines')

    @abstractmethod
    def list_items(
        self,
        kind: str,
        owner_id: str,
        parent_filter: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """List an owner's items, optionally filtered by attribute equality.

        Args:
            kind: Item kind
            owner_id: Owner whose items are listed
            parent_filter: Attribute -> value equality filters
                (e.g. ``{'calendar_id': ...}``)
        """

    @abstractmethod
    def upsert(self, kind: str, items: List[Dict[str, Any]]) -> None:
        """Insert or replace items by primary key."""

    @abstractmethod
    def delete_where(self, calendar_id: str, owner_id: str) -> int:
        """Delete all events of one calendar for one owner; returns count."""

    @abstractmethod
    def update_field(
        self,
        kind: str,
        owner_id: str,
        item_id: str,
        field: str,
        value: Any
    ) -> None:
        """Set a single attribute on one item."""

    @abstractmethod
    def delete_item(self, kind: str, owner_id: str, item_id: str) -> None:
        """Delete one owner-scoped item by id."""

    @abstractmethod
    def get_token_owner(self, token: str) -> Optional[Dict[str, Any]]:
        """Look up an access token record (``owner_id``, optional ``expires_at``)."""
