"""
Database abstraction for Postgres and an in-memory test implementation.

Records are JSON documents scoped to one collection; the collection is
bound when the client is constructed.
"""

from __future__ import annotations

import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional, Protocol

from sqlalchemy import JSON, Column, Float, Integer, String, create_engine, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from catalog.errors import StoreError, StoreErrorKind

# Postgres serialization failure and deadlock.
CONFLICT_SQLSTATES = {"40001", "40P01"}


class DbClient(Protocol):
    """Interface for database access."""

    collection: str

    def upsert_user(
        self,
        sub: str,
        *,
        email: Optional[str],
        name: Optional[str],
        picture: Optional[str],
    ) -> "UserRecord":
        ...

    def get_user(self, sub: str) -> Optional["UserRecord"]:
        ...

    def create_record(self, data: dict) -> dict:
        ...

    def list_records(self, limit: int = 100) -> list[dict]:
        ...

    def search_records(self, terms: str, limit: int = 10) -> list[dict]:
        ...

    def find_record(self, record_id: str) -> Optional[dict]:
        ...

    def update_record(self, record_id: str, data: dict) -> dict:
        ...

    def delete_record(self, record_id: str) -> dict:
        ...


@dataclass
class UserRecord:
    sub: str
    email: Optional[str] = None
    name: Optional[str] = None
    picture: Optional[str] = None
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "sub": self.sub,
            "email": self.email,
            "name": self.name,
            "picture": self.picture,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


def _not_found(record_id: str) -> StoreError:
    return StoreError(StoreErrorKind.NOT_FOUND, f"Record {record_id} not found")


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self, collection: str = "cats"):
        self.collection = collection
        self.users: Dict[str, UserRecord] = {}
        self.records: Dict[str, dict] = {}

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.users.clear()
        self.records.clear()

    def upsert_user(
        self,
        sub: str,
        *,
        email: Optional[str],
        name: Optional[str],
        picture: Optional[str],
    ) -> UserRecord:
        user = self.users.get(sub)
        if user is None:
            user = UserRecord(sub=sub, email=email, name=name, picture=picture)
            self.users[sub] = user
        else:
            user.email = email
            user.name = name
            user.picture = picture
            user.updated_at = time.time()
        return UserRecord(**user.as_dict())

    def get_user(self, sub: str) -> Optional[UserRecord]:
        user = self.users.get(sub)
        return UserRecord(**user.as_dict()) if user else None

    def create_record(self, data: dict) -> dict:
        record_id = uuid.uuid4().hex
        record = {"id": record_id, **data}
        self.records[record_id] = record
        return dict(record)

    def list_records(self, limit: int = 100) -> list[dict]:
        return [dict(record) for record in list(self.records.values())[:limit]]

    def search_records(self, terms: str, limit: int = 10) -> list[dict]:
        needle = terms.lower()
        matches = [
            record
            for record in self.records.values()
            if isinstance(record.get("name"), str)
            and needle in record["name"].lower()
        ]
        matches.sort(key=lambda record: record["name"])
        return [dict(record) for record in matches[:limit]]

    def find_record(self, record_id: str) -> Optional[dict]:
        record = self.records.get(record_id)
        return dict(record) if record else None

    def update_record(self, record_id: str, data: dict) -> dict:
        record = self.records.get(record_id)
        if record is None:
            raise _not_found(record_id)
        record.update(data)
        return dict(record)

    def delete_record(self, record_id: str) -> dict:
        record = self.records.pop(record_id, None)
        if record is None:
            raise _not_found(record_id)
        return record


def _sqlstate(exc: DBAPIError) -> Optional[str]:
    orig = exc.orig
    # psycopg2 exposes pgcode, psycopg 3 exposes sqlstate
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


@contextmanager
def _store_errors(action: str) -> Iterator[None]:
    """Translate SQLAlchemy failures into StoreError."""
    try:
        yield
    except StoreError:
        raise
    except StaleDataError as exc:
        raise StoreError(StoreErrorKind.CONFLICT, f"{action}: {exc}") from exc
    except DBAPIError as exc:
        if _sqlstate(exc) in CONFLICT_SQLSTATES:
            kind = StoreErrorKind.CONFLICT
        elif isinstance(exc, OperationalError) or exc.connection_invalidated:
            kind = StoreErrorKind.UNAVAILABLE
        else:
            kind = StoreErrorKind.OTHER
        raise StoreError(kind, f"{action}: {exc.orig}") from exc
    except SQLAlchemyError as exc:
        raise StoreError(StoreErrorKind.OTHER, f"{action}: {exc}") from exc


def _split_fields(data: dict) -> tuple[dict, dict]:
    """Separate column-backed fields from free-form document fields."""
    columns: dict[str, Any] = {}
    extra: dict[str, Any] = {}
    for key, value in data.items():
        if key == "name":
            columns["name"] = value
        elif key == "imageUrl":
            columns["image_url"] = value
        else:
            extra[key] = value
    return columns, extra


class SqlDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).

    Record rows carry a version counter, so a row changed by another writer
    between load and flush raises a CONFLICT store error.
    """

    def __init__(self, database_url: str, collection: str = "cats"):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlDbClient")
        self.collection = collection
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def _to_user_record(self, row: "UserRow") -> UserRecord:
        return UserRecord(
            sub=row.sub,
            email=row.email,
            name=row.name,
            picture=row.picture,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _to_record(self, row: "RecordRow") -> dict:
        record = {"id": row.id, "name": row.name, "imageUrl": row.image_url}
        record.update(row.data or {})
        return record

    def _get_row(self, session: Session, record_id: str) -> Optional["RecordRow"]:
        row = session.get(RecordRow, record_id)
        if row is None or row.collection != self.collection:
            return None
        return row

    def _insert(self):
        dialect = self.engine.dialect.name
        if dialect == "postgresql":
            return postgresql.insert
        if dialect == "sqlite":
            return sqlite.insert
        raise StoreError(
            StoreErrorKind.OTHER, f"User upsert is not supported on {dialect}"
        )

    def upsert_user(
        self,
        sub: str,
        *,
        email: Optional[str],
        name: Optional[str],
        picture: Optional[str],
    ) -> UserRecord:
        now = time.time()
        insert = self._insert()
        stmt = insert(UserRow).values(
            sub=sub,
            email=email,
            name=name,
            picture=picture,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[UserRow.sub],
            set_={
                "email": stmt.excluded.email,
                "name": stmt.excluded.name,
                "picture": stmt.excluded.picture,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        with _store_errors("upsert user"), self.Session() as session:
            session.execute(stmt)
            session.commit()
            row = session.get(UserRow, sub, populate_existing=True)
            return self._to_user_record(row)

    def get_user(self, sub: str) -> Optional[UserRecord]:
        with _store_errors("get user"), self.Session() as session:
            row = session.get(UserRow, sub)
            return self._to_user_record(row) if row else None

    def create_record(self, data: dict) -> dict:
        columns, extra = _split_fields(data)
        with _store_errors("create record"), self.Session() as session:
            row = RecordRow(
                id=uuid.uuid4().hex,
                collection=self.collection,
                data=extra,
                **columns,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return self._to_record(row)

    def list_records(self, limit: int = 100) -> list[dict]:
        with _store_errors("list records"), self.Session() as session:
            stmt = (
                select(RecordRow)
                .where(RecordRow.collection == self.collection)
                .limit(limit)
            )
            rows = session.execute(stmt).scalars().all()
            return [self._to_record(row) for row in rows]

    def search_records(self, terms: str, limit: int = 10) -> list[dict]:
        escaped = (
            terms.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        )
        with _store_errors("search records"), self.Session() as session:
            stmt = (
                select(RecordRow)
                .where(
                    RecordRow.collection == self.collection,
                    RecordRow.name.ilike(f"%{escaped}%", escape="\\"),
                )
                .order_by(RecordRow.name.asc())
                .limit(limit)
            )
            rows = session.execute(stmt).scalars().all()
            return [self._to_record(row) for row in rows]

    def find_record(self, record_id: str) -> Optional[dict]:
        with _store_errors("find record"), self.Session() as session:
            row = self._get_row(session, record_id)
            return self._to_record(row) if row else None

    def update_record(self, record_id: str, data: dict) -> dict:
        columns, extra = _split_fields(data)
        with _store_errors("update record"), self.Session() as session:
            row = self._get_row(session, record_id)
            if row is None:
                raise _not_found(record_id)
            for key, value in columns.items():
                setattr(row, key, value)
            if extra:
                # Assign a new dict so the JSON column is flagged dirty.
                row.data = {**(row.data or {}), **extra}
            session.commit()
            return self._to_record(row)

    def delete_record(self, record_id: str) -> dict:
        with _store_errors("delete record"), self.Session() as session:
            row = self._get_row(session, record_id)
            if row is None:
                raise _not_found(record_id)
            snapshot = self._to_record(row)
            session.delete(row)
            session.commit()
            return snapshot


Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    sub = Column(String, primary_key=True)
    email = Column(String, nullable=True)
    name = Column(String, nullable=True)
    picture = Column(String, nullable=True)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class RecordRow(Base):
    __tablename__ = "records"

    id = Column(String, primary_key=True)
    collection = Column(String, nullable=False, index=True)
    name = Column(String, nullable=True, index=True)
    image_url = Column(String, nullable=True)
    data = Column(JSON, nullable=False, default=dict)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
