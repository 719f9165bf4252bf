"""
vault/store.py -- SQLAlchemy-backed persistence for the hierarchy and the vault.

Uses SQLAlchemy Core (not ORM) so the domain dataclasses in vault/models.py
remain the authoritative domain representation. Swapping SQLite for
PostgreSQL is a connection string change, not a rewrite.

Pattern: Repository + Data Mapper. VaultStore is the repository (one clean
interface per entity). The _row_to_* functions are the mappers. Route
handlers and services never touch SQL directly.

Unique keys enforced by the schema:
  org_units.name                 -- OU names are unique overall
  divisions (name, ou_id)        -- a division name repeats across OUs, not within one

Credential secrets are encrypted with SecretCipher before they are written;
the secret column never holds plaintext.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = VaultStore()
    ou_id = store.create_ou(OrganizationalUnit(name="News Management"))
    div_id = store.create_division(Division(name="Finance", ou_id=ou_id))
    cred_id = store.create_credential(Credential(title="CMS", username="u", password="p", url="https://x", division_id=div_id))
    store.close()
"""

from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy import (
    Column,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine

from core.config import get_settings
from core.ids import new_id
from vault.crypto import SecretCipher
from vault.models import Credential, Division, OrganizationalUnit

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_org_units = Table(
    "org_units",
    metadata,
    Column("id", String(24), primary_key=True),
    Column("name", String(255), nullable=False, unique=True),
    Column("description", Text),
)

_divisions = Table(
    "divisions",
    metadata,
    Column("id", String(24), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("ou_id", String(24), nullable=False, index=True),
    Column("description", Text),
    UniqueConstraint("name", "ou_id", name="uq_division_name_ou"),
)

_credentials = Table(
    "credentials",
    metadata,
    Column("id", String(24), primary_key=True),
    Column("title", String(255), nullable=False),
    Column("username", String(255), nullable=False),
    Column("secret", Text, nullable=False),  # Fernet token, never plaintext
    Column("url", String(2048), nullable=False),
    Column("division_id", String(24), nullable=False, index=True),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety (per connection)."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class VaultStore:
    def __init__(self, db_url: Optional[str] = None, cipher: Optional[SecretCipher] = None) -> None:
        db_url = db_url or get_settings().vault_database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # FastAPI runs sync handlers in a thread pool; the pooled
            # connection may be used from a different thread than created it.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)
        self._cipher = cipher or SecretCipher()

    # ------------------------------------------------------------------
    # Organizational units
    # ------------------------------------------------------------------

    def create_ou(self, ou: OrganizationalUnit) -> str:
        """Insert an OU and return its id. IntegrityError on a duplicate name."""
        ou_id = ou.id or new_id()
        with self.engine.connect() as conn:
            conn.execute(_org_units.insert().values(id=ou_id, name=ou.name, description=ou.description))
            conn.commit()
        return ou_id

    def get_ou(self, ou_id: str) -> Optional[OrganizationalUnit]:
        with self.engine.connect() as conn:
            row = conn.execute(_org_units.select().where(_org_units.c.id == ou_id)).fetchone()
        return _row_to_ou(row) if row is not None else None

    def list_ous(self) -> list[OrganizationalUnit]:
        """Return all OUs ordered by name."""
        with self.engine.connect() as conn:
            rows = conn.execute(_org_units.select().order_by(_org_units.c.name)).fetchall()
        return [_row_to_ou(r) for r in rows]

    # ------------------------------------------------------------------
    # Divisions
    # ------------------------------------------------------------------

    def create_division(self, division: Division) -> str:
        """Insert a division under its OU and return its id.

        Raises sqlalchemy.exc.IntegrityError if the OU already has a division
        with the same name. The OU itself must exist; callers check first.
        """
        division_id = division.id or new_id()
        with self.engine.connect() as conn:
            conn.execute(
                _divisions.insert().values(
                    id=division_id,
                    name=division.name,
                    ou_id=division.ou_id,
                    description=division.description,
                )
            )
            conn.commit()
        return division_id

    def get_division(self, division_id: str) -> Optional[Division]:
        with self.engine.connect() as conn:
            row = conn.execute(_divisions.select().where(_divisions.c.id == division_id)).fetchone()
        return _row_to_division(row) if row is not None else None

    def get_divisions(self, division_ids: Iterable[str]) -> dict[str, Division]:
        """Bulk lookup. Returns {id: Division} for the ids that exist."""
        ids = list(division_ids)
        if not ids:
            return {}
        with self.engine.connect() as conn:
            rows = conn.execute(_divisions.select().where(_divisions.c.id.in_(ids))).fetchall()
        return {r.id: _row_to_division(r) for r in rows}

    def get_ous(self, ou_ids: Iterable[str]) -> dict[str, OrganizationalUnit]:
        """Bulk lookup. Returns {id: OrganizationalUnit} for the ids that exist."""
        ids = list(ou_ids)
        if not ids:
            return {}
        with self.engine.connect() as conn:
            rows = conn.execute(_org_units.select().where(_org_units.c.id.in_(ids))).fetchall()
        return {r.id: _row_to_ou(r) for r in rows}

    def list_divisions(self, ou_id: Optional[str] = None) -> list[Division]:
        """Return divisions ordered by name, optionally restricted to one OU."""
        query = _divisions.select()
        if ou_id is not None:
            query = query.where(_divisions.c.ou_id == ou_id)
        with self.engine.connect() as conn:
            rows = conn.execute(query.order_by(_divisions.c.name, _divisions.c.id)).fetchall()
        return [_row_to_division(r) for r in rows]

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def create_credential(self, credential: Credential) -> str:
        """Encrypt the secret and insert the credential. Returns its id."""
        credential_id = credential.id or new_id()
        now = _now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _credentials.insert().values(
                    id=credential_id,
                    title=credential.title,
                    username=credential.username,
                    secret=self._cipher.encrypt(credential.password),
                    url=credential.url,
                    division_id=credential.division_id,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        return credential_id

    def get_credential(self, credential_id: str) -> Optional[Credential]:
        """Fetch one credential with its decrypted secret. None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_credentials.select().where(_credentials.c.id == credential_id)).fetchone()
        return self._row_to_credential(row, include_secret=True) if row is not None else None

    def list_credentials(self, division_id: str, include_secrets: bool = False) -> list[Credential]:
        """Return a division's credentials ordered by title.

        Secrets are only decrypted when include_secrets is True; otherwise the
        returned password fields are empty strings.
        """
        with self.engine.connect() as conn:
            rows = conn.execute(
                _credentials.select()
                .where(_credentials.c.division_id == division_id)
                .order_by(_credentials.c.title, _credentials.c.id)
            ).fetchall()
        return [self._row_to_credential(r, include_secret=include_secrets) for r in rows]

    def update_credential(self, credential_id: str, title: str, username: str, password: str, url: str) -> bool:
        """Replace all four scalar fields in one UPDATE statement.

        The owning division never changes. Returns True if a row was updated,
        False if credential_id was not found.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _credentials.update()
                .where(_credentials.c.id == credential_id)
                .values(
                    title=title,
                    username=username,
                    secret=self._cipher.encrypt(password),
                    url=url,
                    updated_at=_now_iso(),
                )
            )
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def clear(self) -> None:
        """Delete every credential, division and OU. Used by the reset/seed CLI."""
        with self.engine.begin() as conn:
            conn.execute(_credentials.delete())
            conn.execute(_divisions.delete())
            conn.execute(_org_units.delete())

    def close(self) -> None:
        self.engine.dispose()

    def _row_to_credential(self, row, include_secret: bool) -> Credential:
        return Credential(
            id=row.id,
            title=row.title,
            username=row.username,
            password=self._cipher.decrypt(row.secret) if include_secret else "",
            url=row.url,
            division_id=row.division_id,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_ou(row) -> OrganizationalUnit:
    return OrganizationalUnit(id=row.id, name=row.name, description=row.description)


def _row_to_division(row) -> Division:
    return Division(id=row.id, name=row.name, ou_id=row.ou_id, description=row.description)
