"""
Append-only security event ledger.

Writes are unconditional. Reads are filtered by the permissions the caller
holds:

    Audit.RoleChanges       -> every event
    Audit.ViewAuthEvents    -> login and logout events only
    neither                 -> nothing

Results are always newest first.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, List

from loguru import logger
from .database import RoleClaimStore
from .models import SecurityEvent
from .permissions import Permission, permission_value


class EventType(str, Enum):
    """
    Well-known event types. Callers may also record their own strings.
    """
    LOGIN_SUCCESS = "LoginSuccess"
    LOGOUT = "Logout"
    ROLE_ASSIGNED = "RoleAssigned"


# Event type prefixes visible to holders of Audit.ViewAuthEvents
AUTH_EVENT_PREFIXES = ("Login", "Logout")


def format_details(**pairs) -> str:
    """
    Render keyword arguments as space-separated key=value pairs.

    Examples:
        >>> format_details(provider="Okta")
        'provider=Okta'
        >>> format_details(**{"from": "BasicUser", "to": "SecurityAuditor"})
        'from=BasicUser to=SecurityAuditor'
    """
    return " ".join(f"{key}={value}" for key, value in pairs.items())


class AuditLedger:
    """
    Security event log.

    Records events exactly as given and serves them back filtered by the
    caller's permissions. Events are never updated or deleted.
    """

    def __init__(self, store: RoleClaimStore):
        self.store = store

    async def record(
        self,
        event_type: str,
        author_user_id: str,
        affected_user_id: str,
        details: str = "",
    ) -> SecurityEvent:
        """
        Append a security event.

        Args:
            event_type: Event tag (EventType member or free-form string)
            author_user_id: Who caused the event
            affected_user_id: Who the event concerns
            details: Free text, conventionally key=value pairs

        Returns:
            The stored SecurityEvent

        Raises:
            StoreUnavailableError: If the store can't persist the event
        """
        event = SecurityEvent(
            event_id=str(uuid.uuid4()),
            event_type=event_type.value if isinstance(event_type, EventType) else event_type,
            author_user_id=author_user_id,
            affected_user_id=affected_user_id,
            occurred_utc=datetime.now(timezone.utc),
            details=details,
        )

        stored = await self.store.insert_event(event)
        logger.debug(
            f"SecurityEvent created: {stored.event_type} by {author_user_id} "
            f"affecting {affected_user_id}"
        )
        return stored

    async def query_for_caller(self, caller_permissions: Iterable[str]) -> List[SecurityEvent]:
        """
        Get the events a caller may see.

        Args:
            caller_permissions: Permission names held by the caller

        Returns:
            List of SecurityEvent, newest first
        """
        granted = {permission_value(p) for p in caller_permissions}

        if Permission.ROLE_CHANGES.value in granted:
            return await self.store.query_events()

        if Permission.VIEW_AUTH_EVENTS.value in granted:
            return await self.store.query_events(type_prefixes=AUTH_EVENT_PREFIXES)

        logger.debug("Caller holds no audit permission, returning no events")
        return []
