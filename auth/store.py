"""
auth/store.py -- SQLAlchemy Core persistence layer for identity records.

Pattern: Repository + Data Mapper (same as vault/store.py).
UserStore is the repository; _row_to_user is the mapper.
Route and service code never touches SQL directly.

Memberships:
  A user's OU and division references live in two child tables, each with a
  UNIQUE (user_id, ref) constraint. Granting is an insert-ignore (atomic set
  union) and revoking is a single DELETE ... IN (atomic set difference). Two
  admins editing the same user concurrently therefore never lose each
  other's changes -- there is no read-modify-write of a membership list.

  The referenced OU/division ids are not foreign keys: the hierarchy lives in
  the vault database. Existence is checked by the services before writing.

Security:
  All queries use bound parameters. No f-strings in SQL.

DB path: auth/credvault_auth.db (sibling to vault/credvault_vault.db).

Layer rule: no imports from api/ or vault/.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Connection, Engine

from auth.models import Role, User
from core.config import get_settings
from core.ids import new_id

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(24), primary_key=True),
    Column("username", String(30), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("role", String(20), nullable=False, server_default=Role.NORMAL.value),
    Column("token_version", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
)

_user_ous = Table(
    "user_ous",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(24), nullable=False, index=True),
    Column("ou_id", String(24), nullable=False),
    UniqueConstraint("user_id", "ou_id", name="uq_user_ou"),
)

_user_divisions = Table(
    "user_divisions",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(24), nullable=False, index=True),
    Column("division_id", String(24), nullable=False),
    UniqueConstraint("user_id", "division_id", name="uq_user_division"),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _insert_ignore(conn: Connection, table: Table, rows: list[dict]) -> None:
    """Insert rows, skipping any that violate a UNIQUE constraint.

    This is the store-level set union: the database decides atomically
    whether a membership already exists.
    """
    if not rows:
        return
    if conn.dialect.name == "sqlite":
        stmt = sqlite_insert(table).on_conflict_do_nothing()
    elif conn.dialect.name == "postgresql":
        stmt = pg_insert(table).on_conflict_do_nothing()
    else:
        stmt = table.insert().prefix_with("IGNORE")
    conn.execute(stmt, rows)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities and their OU/division memberships.

    Usage:
        store = UserStore()
        uid = store.create_user(User(username="admin", role=Role.ADMIN, hashed_password=hash_password("secret")))
        store.update_memberships(uid, add_divisions=[division_id])
        user = store.get_by_id(uid)
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().auth_database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def has_users(self) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return (result or 0) > 0

    def create_user(self, user: User) -> str:
        """Insert a new user with its initial memberships and return its id.

        User row and membership rows are written in one transaction.
        Raises sqlalchemy.exc.IntegrityError if the username already exists;
        callers translate that into a Conflict.
        """
        user_id = user.id or new_id()
        with self.engine.begin() as conn:
            conn.execute(
                _users.insert().values(
                    id=user_id,
                    username=user.username,
                    hashed_password=user.hashed_password,
                    role=Role.parse(user.role).value,
                    token_version=user.token_version,
                    created_at=_now_iso(),
                )
            )
            _insert_ignore(conn, _user_ous, [{"user_id": user_id, "ou_id": o} for o in user.ous])
            _insert_ignore(conn, _user_divisions, [{"user_id": user_id, "division_id": d} for d in user.divisions])
        return user_id

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
            if row is None:
                return None
            ous, divisions = self._memberships(conn, [row.id])
        return _row_to_user(row, ous.get(row.id, []), divisions.get(row.id, []))

    def get_by_id(self, user_id: str) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
            if row is None:
                return None
            ous, divisions = self._memberships(conn, [row.id])
        return _row_to_user(row, ous.get(row.id, []), divisions.get(row.id, []))

    def list_users(self) -> list[User]:
        """Return all users ordered by username. Admin-only operation."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.username)).fetchall()
            ous, divisions = self._memberships(conn, [r.id for r in rows])
        return [_row_to_user(r, ous.get(r.id, []), divisions.get(r.id, [])) for r in rows]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def update_memberships(
        self,
        user_id: str,
        add_ous: Iterable[str] = (),
        add_divisions: Iterable[str] = (),
        remove_ous: Iterable[str] = (),
        remove_divisions: Iterable[str] = (),
    ) -> bool:
        """Grant and revoke OU/division memberships in a single transaction.

        Adds run before removals, so an id present in both lists ends up
        removed. Adding an existing membership and removing an absent one are
        both no-ops. The user's token_version is bumped.

        Returns True if the user exists, False otherwise (nothing is written).
        """
        add_ous, add_divisions = list(add_ous), list(add_divisions)
        remove_ous, remove_divisions = list(remove_ous), list(remove_divisions)
        with self.engine.begin() as conn:
            bumped = conn.execute(
                _users.update().where(_users.c.id == user_id).values(token_version=_users.c.token_version + 1)
            )
            if bumped.rowcount == 0:
                return False
            _insert_ignore(conn, _user_ous, [{"user_id": user_id, "ou_id": o} for o in add_ous])
            _insert_ignore(conn, _user_divisions, [{"user_id": user_id, "division_id": d} for d in add_divisions])
            if remove_ous:
                conn.execute(
                    _user_ous.delete().where((_user_ous.c.user_id == user_id) & (_user_ous.c.ou_id.in_(remove_ous)))
                )
            if remove_divisions:
                conn.execute(
                    _user_divisions.delete().where(
                        (_user_divisions.c.user_id == user_id) & (_user_divisions.c.division_id.in_(remove_divisions))
                    )
                )
        return True

    def set_role(self, user_id: str, role: Role) -> bool:
        """Change a user's role and bump its token_version.

        Returns True if a row was updated, False if user_id was not found.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(role=Role.parse(role).value, token_version=_users.c.token_version + 1)
            )
        return result.rowcount > 0

    def update_password(self, user_id: str, hashed_password: str) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(hashed_password=hashed_password))
        return result.rowcount > 0

    def clear(self) -> None:
        """Delete every user and membership. Used by the reset/seed CLI."""
        with self.engine.begin() as conn:
            conn.execute(_user_divisions.delete())
            conn.execute(_user_ous.delete())
            conn.execute(_users.delete())

    def close(self) -> None:
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @staticmethod
    def _memberships(conn: Connection, user_ids: list[str]) -> tuple[dict[str, list[str]], dict[str, list[str]]]:
        """Return ({user_id: [ou_id]}, {user_id: [division_id]}) in grant order."""
        ous: dict[str, list[str]] = {}
        divisions: dict[str, list[str]] = {}
        if not user_ids:
            return ous, divisions
        for row in conn.execute(
            select(_user_ous.c.user_id, _user_ous.c.ou_id)
            .where(_user_ous.c.user_id.in_(user_ids))
            .order_by(_user_ous.c.id)
        ):
            ous.setdefault(row.user_id, []).append(row.ou_id)
        for row in conn.execute(
            select(_user_divisions.c.user_id, _user_divisions.c.division_id)
            .where(_user_divisions.c.user_id.in_(user_ids))
            .order_by(_user_divisions.c.id)
        ):
            divisions.setdefault(row.user_id, []).append(row.division_id)
        return ous, divisions


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row, ous: list[str], divisions: list[str]) -> User:
    return User(
        id=row.id,
        username=row.username,
        hashed_password=row.hashed_password,
        role=Role.parse(row.role),
        ous=list(ous),
        divisions=list(divisions),
        token_version=row.token_version,
        created_at=row.created_at,
    )
