"""
Role/claim store and its SQLite implementation.

RoleClaimStore is the persistence contract the engines depend on.
UserDatabase implements it on SQLite: thread-safe, one connection and one
commit per operation, blocking work pushed to a worker thread so every
store call can be awaited (and cancelled) from asyncio code.
"""

import asyncio
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

from loguru import logger
from .errors import StoreUnavailableError, UserAlreadyExistsError
from .models import Claim, Role, SecurityEvent, User


class RoleClaimStore(ABC):
    """
    Persistence contract for users, roles, claims and security events.

    Implementations enforce referential integrity, role-name uniqueness,
    claim (type, value) uniqueness and (provider, external_id) uniqueness.
    Infrastructure failures surface as StoreUnavailableError.
    """

    # Users

    @abstractmethod
    async def get_user_by_id(self, user_id: str) -> Optional[User]: ...

    @abstractmethod
    async def get_user_by_external_id(self, provider: str, external_id: str) -> Optional[User]: ...

    @abstractmethod
    async def create_user(self, user: User) -> User:
        """Insert a user. Raises UserAlreadyExistsError on a duplicate identity."""

    @abstractmethod
    async def update_user_role(self, user_id: str, role_id: str) -> bool: ...

    @abstractmethod
    async def list_users(self) -> List[User]: ...

    # Roles and claims

    @abstractmethod
    async def get_role_by_id(self, role_id: str) -> Optional[Role]: ...

    @abstractmethod
    async def get_role_by_name(self, name: str) -> Optional[Role]: ...

    @abstractmethod
    async def get_user_role(self, user_id: str) -> Optional[Role]: ...

    @abstractmethod
    async def get_role_claims(self, role_id: str) -> List[Claim]: ...

    @abstractmethod
    async def list_roles(self) -> List[Role]: ...

    @abstractmethod
    async def create_role(self, role: Role) -> Role: ...

    @abstractmethod
    async def add_claim_to_role(self, role_id: str, claim: Claim) -> bool: ...

    # Security events

    @abstractmethod
    async def insert_event(self, event: SecurityEvent) -> SecurityEvent: ...

    @abstractmethod
    async def query_events(
        self, type_prefixes: Optional[Sequence[str]] = None
    ) -> List[SecurityEvent]:
        """
        Events newest first. With type_prefixes, only events whose type
        starts with one of them. Ties on time go to the later insert.
        """


def _to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


class UserDatabase(RoleClaimStore):
    """
    Thread-safe SQLite role/claim store.

    Manages users, roles, claims and security events.
    All operations are protected by threading.RLock for thread safety.
    """

    def __init__(self, db_path: Path):
        """
        Initialize database.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self._lock = threading.RLock()
        self._init_db()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection with foreign keys on; map driver errors."""
        try:
            conn = sqlite3.connect(str(self.db_path))
        except sqlite3.Error as e:
            logger.error(f"Cannot open user database {self.db_path}: {e}")
            raise StoreUnavailableError(str(e)) from e

        try:
            conn.execute("PRAGMA foreign_keys = ON")
            yield conn
            conn.commit()
        except sqlite3.IntegrityError:
            conn.rollback()
            raise
        except sqlite3.Error as e:
            conn.rollback()
            logger.error(f"User database error: {e}")
            raise StoreUnavailableError(str(e)) from e
        finally:
            conn.close()

    def _init_db(self):
        """Create tables if they don't exist."""
        with self._lock, self._connect() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS roles (
                    role_id TEXT PRIMARY KEY,
                    name TEXT UNIQUE NOT NULL,
                    description TEXT
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS claims (
                    claim_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    type TEXT NOT NULL,
                    value TEXT NOT NULL,
                    UNIQUE (type, value)
                )
            """)

            # Role claims (many-to-many)
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS role_claims (
                    role_id TEXT NOT NULL,
                    claim_id INTEGER NOT NULL,
                    PRIMARY KEY (role_id, claim_id),
                    FOREIGN KEY (role_id) REFERENCES roles(role_id),
                    FOREIGN KEY (claim_id) REFERENCES claims(claim_id)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    user_id TEXT PRIMARY KEY,
                    provider TEXT NOT NULL,
                    external_id TEXT NOT NULL,
                    email TEXT NOT NULL,
                    role_id TEXT,
                    created_at TEXT NOT NULL,
                    UNIQUE (provider, external_id),
                    FOREIGN KEY (role_id) REFERENCES roles(role_id)
                )
            """)

            # Append-only: seq gives a stable tiebreak for equal timestamps
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS security_events (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    event_id TEXT UNIQUE NOT NULL,
                    event_type TEXT NOT NULL,
                    author_user_id TEXT NOT NULL,
                    affected_user_id TEXT NOT NULL,
                    occurred_utc TEXT NOT NULL,
                    details TEXT NOT NULL
                )
            """)

            cursor.execute("CREATE INDEX IF NOT EXISTS idx_events_occurred ON security_events(occurred_utc)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_users_role ON users(role_id)")

        logger.info(f"User database initialized: {self.db_path}")

    async def _run(self, func, *args):
        return await asyncio.to_thread(func, *args)

    # ========================================================================
    # User Operations
    # ========================================================================

    @staticmethod
    def _row_to_user(row) -> User:
        return User(
            user_id=row[0],
            provider=row[1],
            external_id=row[2],
            email=row[3],
            role_id=row[4],
            created_at=datetime.fromisoformat(row[5]),
        )

    def _get_user_by_id(self, user_id: str) -> Optional[User]:
        with self._lock, self._connect() as conn:
            row = conn.execute(
                "SELECT user_id, provider, external_id, email, role_id, created_at "
                "FROM users WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        return self._row_to_user(row) if row else None

    async def get_user_by_id(self, user_id: str) -> Optional[User]:
        """
        Get user by ID.

        Args:
            user_id: User ID to search for

        Returns:
            User object if found, None otherwise
        """
        return await self._run(self._get_user_by_id, user_id)

    def _get_user_by_external_id(self, provider: str, external_id: str) -> Optional[User]:
        with self._lock, self._connect() as conn:
            row = conn.execute(
                "SELECT user_id, provider, external_id, email, role_id, created_at "
                "FROM users WHERE provider = ? AND external_id = ?",
                (provider, external_id),
            ).fetchone()
        return self._row_to_user(row) if row else None

    async def get_user_by_external_id(self, provider: str, external_id: str) -> Optional[User]:
        """
        Get user by external identity.

        Args:
            provider: Identity provider name
            external_id: Provider subject id

        Returns:
            User object if found, None otherwise
        """
        return await self._run(self._get_user_by_external_id, provider, external_id)

    def _create_user(self, user: User) -> User:
        with self._lock:
            try:
                with self._connect() as conn:
                    conn.execute("""
                        INSERT INTO users (user_id, provider, external_id, email, role_id, created_at)
                        VALUES (?, ?, ?, ?, ?, ?)
                    """, (
                        user.user_id,
                        user.provider,
                        user.external_id,
                        user.email,
                        user.role_id,
                        _to_iso(user.created_at),
                    ))
            except sqlite3.IntegrityError as e:
                if "UNIQUE" in str(e):
                    raise UserAlreadyExistsError(user.provider, user.external_id) from e
                logger.error(f"Integrity error creating user {user.user_id}: {e}")
                raise StoreUnavailableError(str(e)) from e

        logger.info(f"User created: {user.email} ({user.user_id}) via {user.provider}")
        return user

    async def create_user(self, user: User) -> User:
        """
        Create new user.

        Args:
            user: Fully populated User

        Returns:
            The stored User

        Raises:
            UserAlreadyExistsError: If (provider, external_id) already exists
        """
        return await self._run(self._create_user, user)

    def _update_user_role(self, user_id: str, role_id: str) -> bool:
        with self._lock:
            try:
                with self._connect() as conn:
                    cursor = conn.execute(
                        "UPDATE users SET role_id = ? WHERE user_id = ?",
                        (role_id, user_id),
                    )
                    success = cursor.rowcount > 0
            except sqlite3.IntegrityError as e:
                raise StoreUnavailableError(str(e)) from e
        return success

    async def update_user_role(self, user_id: str, role_id: str) -> bool:
        """
        Point a user at a different role.

        Returns:
            True if a row was updated
        """
        return await self._run(self._update_user_role, user_id, role_id)

    def _list_users(self) -> List[User]:
        with self._lock, self._connect() as conn:
            rows = conn.execute(
                "SELECT user_id, provider, external_id, email, role_id, created_at "
                "FROM users ORDER BY email"
            ).fetchall()
        return [self._row_to_user(row) for row in rows]

    async def list_users(self) -> List[User]:
        """Get all users, ordered by email."""
        return await self._run(self._list_users)

    # ========================================================================
    # Role / Claim Operations
    # ========================================================================

    def _get_role(self, column: str, value: str) -> Optional[Role]:
        with self._lock, self._connect() as conn:
            row = conn.execute(
                f"SELECT role_id, name, description FROM roles WHERE {column} = ?",
                (value,),
            ).fetchone()
        return Role(role_id=row[0], name=row[1], description=row[2]) if row else None

    async def get_role_by_id(self, role_id: str) -> Optional[Role]:
        return await self._run(self._get_role, "role_id", role_id)

    async def get_role_by_name(self, name: str) -> Optional[Role]:
        return await self._run(self._get_role, "name", name)

    def _get_user_role(self, user_id: str) -> Optional[Role]:
        with self._lock, self._connect() as conn:
            row = conn.execute("""
                SELECT r.role_id, r.name, r.description
                FROM roles r
                JOIN users u ON u.role_id = r.role_id
                WHERE u.user_id = ?
            """, (user_id,)).fetchone()
        return Role(role_id=row[0], name=row[1], description=row[2]) if row else None

    async def get_user_role(self, user_id: str) -> Optional[Role]:
        """
        Get the role currently assigned to a user.

        Returns:
            Role, or None if the user doesn't exist or has no role
        """
        return await self._run(self._get_user_role, user_id)

    def _get_role_claims(self, role_id: str) -> List[Claim]:
        with self._lock, self._connect() as conn:
            rows = conn.execute("""
                SELECT c.type, c.value
                FROM claims c
                JOIN role_claims rc ON rc.claim_id = c.claim_id
                WHERE rc.role_id = ?
                ORDER BY c.claim_id
            """, (role_id,)).fetchall()
        return [Claim(type=row[0], value=row[1]) for row in rows]

    async def get_role_claims(self, role_id: str) -> List[Claim]:
        """
        Get all claims attached to a role.

        Args:
            role_id: Role ID

        Returns:
            List of claims (e.g., [Claim("permissions", "Audit.ViewAuthEvents")])
        """
        return await self._run(self._get_role_claims, role_id)

    def _list_roles(self) -> List[Role]:
        with self._lock, self._connect() as conn:
            rows = conn.execute("SELECT role_id, name, description FROM roles ORDER BY name").fetchall()
        return [Role(role_id=row[0], name=row[1], description=row[2]) for row in rows]

    async def list_roles(self) -> List[Role]:
        """Get all roles, ordered by name."""
        return await self._run(self._list_roles)

    def _create_role(self, role: Role) -> Role:
        with self._lock:
            try:
                with self._connect() as conn:
                    conn.execute(
                        "INSERT INTO roles (role_id, name, description) VALUES (?, ?, ?)",
                        (role.role_id, role.name, role.description),
                    )
            except sqlite3.IntegrityError as e:
                raise StoreUnavailableError(f"Cannot create role {role.name}: {e}") from e

        logger.info(f"Role created: {role.name} ({role.role_id})")
        return role

    async def create_role(self, role: Role) -> Role:
        return await self._run(self._create_role, role)

    def _add_claim_to_role(self, role_id: str, claim: Claim) -> bool:
        with self._lock:
            try:
                with self._connect() as conn:
                    conn.execute(
                        "INSERT OR IGNORE INTO claims (type, value) VALUES (?, ?)",
                        (claim.type, claim.value),
                    )
                    claim_id = conn.execute(
                        "SELECT claim_id FROM claims WHERE type = ? AND value = ?",
                        (claim.type, claim.value),
                    ).fetchone()[0]
                    cursor = conn.execute(
                        "INSERT OR IGNORE INTO role_claims (role_id, claim_id) VALUES (?, ?)",
                        (role_id, claim_id),
                    )
                    added = cursor.rowcount > 0
            except sqlite3.IntegrityError as e:
                raise StoreUnavailableError(f"Cannot attach {claim.value} to role {role_id}: {e}") from e
        return added

    async def add_claim_to_role(self, role_id: str, claim: Claim) -> bool:
        """
        Attach a claim to a role, creating the claim if needed.

        Returns:
            True if the link is new, False if it already existed
        """
        return await self._run(self._add_claim_to_role, role_id, claim)

    # ========================================================================
    # Security Event Operations
    # ========================================================================

    def _insert_event(self, event: SecurityEvent) -> SecurityEvent:
        with self._lock:
            try:
                with self._connect() as conn:
                    conn.execute("""
                        INSERT INTO security_events
                            (event_id, event_type, author_user_id, affected_user_id, occurred_utc, details)
                        VALUES (?, ?, ?, ?, ?, ?)
                    """, (
                        event.event_id,
                        event.event_type,
                        event.author_user_id,
                        event.affected_user_id,
                        _to_iso(event.occurred_utc),
                        event.details,
                    ))
            except sqlite3.IntegrityError as e:
                raise StoreUnavailableError(f"Cannot record event {event.event_id}: {e}") from e
        return event

    async def insert_event(self, event: SecurityEvent) -> SecurityEvent:
        """Append a security event."""
        return await self._run(self._insert_event, event)

    def _query_events(self, type_prefixes: Optional[Sequence[str]]) -> List[SecurityEvent]:
        sql = (
            "SELECT event_id, event_type, author_user_id, affected_user_id, occurred_utc, details "
            "FROM security_events"
        )
        params: list = []
        if type_prefixes is not None:
            if not type_prefixes:
                return []
            clauses = []
            for prefix in type_prefixes:
                clauses.append("substr(event_type, 1, ?) = ?")
                params.extend([len(prefix), prefix])
            sql += " WHERE " + " OR ".join(clauses)
        sql += " ORDER BY occurred_utc DESC, seq DESC"

        with self._lock, self._connect() as conn:
            rows = conn.execute(sql, params).fetchall()

        return [
            SecurityEvent(
                event_id=row[0],
                event_type=row[1],
                author_user_id=row[2],
                affected_user_id=row[3],
                occurred_utc=datetime.fromisoformat(row[4]),
                details=row[5],
            )
            for row in rows
        ]

    async def query_events(
        self, type_prefixes: Optional[Sequence[str]] = None
    ) -> List[SecurityEvent]:
        """
        Get security events, newest first.

        Args:
            type_prefixes: If given, keep only event types starting with one of these

        Returns:
            List of SecurityEvent
        """
        return await self._run(self._query_events, type_prefixes)
