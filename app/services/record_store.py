"""Record store client — select/insert/update/delete over named tables.

Every call is an independent unit of work and reports failure through
``StoreResult.error`` instead of raising, matching the hosted REST backend the
provisioning workflow was written against. There is no transaction spanning
two calls.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

import httpx
from postgrest.exceptions import APIError
from sqlalchemy import Table, delete, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app import models  # noqa: F401
from app.db import Base

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoreError:
    message: str
    code: str | None = None

    @property
    def is_conflict(self) -> bool:
        return self.code in {"conflict", "23505"}


@dataclass
class StoreResult:
    data: Any = None
    error: StoreError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def rows(self) -> list[dict]:
        if isinstance(self.data, list):
            return self.data
        return [] if self.data is None else [self.data]


@dataclass(frozen=True)
class Query:
    columns: tuple[str, ...] = ()
    filters: Mapping[str, Any] = field(default_factory=dict)
    order_by: str | None = None
    descending: bool = False
    limit: int | None = None
    offset: int | None = None


class RecordStore(Protocol):
    def select(self, table: str, query: Query | None = None) -> StoreResult: ...

    def insert(self, table: str, row: Mapping[str, Any]) -> StoreResult: ...

    def update(self, table: str, patch: Mapping[str, Any], filters: Mapping[str, Any]) -> StoreResult: ...

    def delete(self, table: str, filters: Mapping[str, Any]) -> StoreResult: ...


class SqlRecordStore:
    """Record store over the service's own database via SQLAlchemy Core."""

    def __init__(self, db: Session):
        self.db = db

    def _table(self, name: str) -> Table:
        table = Base.metadata.tables.get(name)
        if table is None:
            raise KeyError(f"Unknown table {name!r}")
        return table

    @staticmethod
    def _where(table: Table, stmt: Any, filters: Mapping[str, Any]) -> Any:
        for column, value in filters.items():
            col = table.c[column]
            stmt = stmt.where(col.is_(None) if value is None else col == value)
        return stmt

    def _fail(self, table: str, op: str, exc: Exception) -> StoreResult:
        self.db.rollback()
        code = "conflict" if isinstance(exc, IntegrityError) else type(exc).__name__
        message = str(getattr(exc, "orig", None) or exc)
        logger.warning("Record store %s on %s failed: %s", op, table, message)
        return StoreResult(error=StoreError(message=message, code=code))

    def select(self, table: str, query: Query | None = None) -> StoreResult:
        query = query or Query()
        try:
            tbl = self._table(table)
            cols = [tbl.c[name] for name in query.columns] if query.columns else list(tbl.c)
            stmt = self._where(tbl, select(*cols), query.filters)
            if query.order_by:
                order_col = tbl.c[query.order_by]
                stmt = stmt.order_by(order_col.desc() if query.descending else order_col.asc())
            if query.limit is not None:
                stmt = stmt.limit(query.limit)
            if query.offset:
                stmt = stmt.offset(query.offset)
            rows = [dict(row) for row in self.db.execute(stmt).mappings().all()]
            return StoreResult(data=rows)
        except (KeyError, SQLAlchemyError) as exc:
            return self._fail(table, "select", exc)

    def insert(self, table: str, row: Mapping[str, Any]) -> StoreResult:
        try:
            tbl = self._table(table)
            result = self.db.execute(insert(tbl).values(**dict(row)))
            pk_values = result.inserted_primary_key
            self.db.commit()
            pk_cols = list(tbl.primary_key.columns)
            stmt = select(tbl)
            for col, value in zip(pk_cols, pk_values, strict=True):
                stmt = stmt.where(col == value)
            created = self.db.execute(stmt).mappings().first()
            return StoreResult(data=dict(created) if created else dict(row))
        except (KeyError, SQLAlchemyError) as exc:
            return self._fail(table, "insert", exc)

    def update(self, table: str, patch: Mapping[str, Any], filters: Mapping[str, Any]) -> StoreResult:
        if not filters:
            return StoreResult(error=StoreError("Refusing to update without filters", code="unfiltered"))
        try:
            tbl = self._table(table)
            pk_cols = list(tbl.primary_key.columns)
            matched = self.db.execute(self._where(tbl, select(*pk_cols), filters)).all()
            if not matched:
                return StoreResult(data=None)
            self.db.execute(self._where(tbl, update(tbl), filters).values(**dict(patch)))
            self.db.commit()
            first_pk = matched[0]
            stmt = select(tbl)
            for col, value in zip(pk_cols, first_pk, strict=True):
                stmt = stmt.where(col == value)
            updated = self.db.execute(stmt).mappings().first()
            return StoreResult(data=dict(updated) if updated else None)
        except (KeyError, SQLAlchemyError) as exc:
            return self._fail(table, "update", exc)

    def delete(self, table: str, filters: Mapping[str, Any]) -> StoreResult:
        if not filters:
            return StoreResult(error=StoreError("Refusing to delete without filters", code="unfiltered"))
        try:
            tbl = self._table(table)
            self.db.execute(self._where(tbl, delete(tbl), filters))
            self.db.commit()
            return StoreResult(data=None)
        except (KeyError, SQLAlchemyError) as exc:
            return self._fail(table, "delete", exc)


def _jsonable(row: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value.isoformat() if isinstance(value, datetime) else value for key, value in row.items()}


class SupabaseRecordStore:
    """Record store over the hosted PostgREST API via the supabase client."""

    def __init__(self, client: Any):
        self.client = client

    @staticmethod
    def _filtered(builder: Any, filters: Mapping[str, Any]) -> Any:
        for column, value in filters.items():
            builder = builder.is_(column, "null") if value is None else builder.eq(column, value)
        return builder

    @staticmethod
    def _fail(table: str, op: str, exc: Exception) -> StoreResult:
        if isinstance(exc, APIError):
            message = exc.message or str(exc)
            code = exc.code
        else:
            message = str(exc)
            code = type(exc).__name__
        logger.warning("Supabase %s on %s failed: %s", op, table, message)
        return StoreResult(error=StoreError(message=message, code=code))

    def select(self, table: str, query: Query | None = None) -> StoreResult:
        query = query or Query()
        try:
            builder = self.client.table(table).select(",".join(query.columns) if query.columns else "*")
            builder = self._filtered(builder, query.filters)
            if query.order_by:
                builder = builder.order(query.order_by, desc=query.descending)
            if query.limit is not None:
                start = query.offset or 0
                builder = builder.range(start, start + query.limit - 1)
            elif query.offset:
                builder = builder.offset(query.offset)
            response = builder.execute()
            return StoreResult(data=list(response.data or []))
        except (APIError, httpx.HTTPError) as exc:
            return self._fail(table, "select", exc)

    def insert(self, table: str, row: Mapping[str, Any]) -> StoreResult:
        try:
            response = self.client.table(table).insert(_jsonable(row)).execute()
            data = response.data or []
            return StoreResult(data=data[0] if data else dict(row))
        except (APIError, httpx.HTTPError) as exc:
            return self._fail(table, "insert", exc)

    def update(self, table: str, patch: Mapping[str, Any], filters: Mapping[str, Any]) -> StoreResult:
        if not filters:
            return StoreResult(error=StoreError("Refusing to update without filters", code="unfiltered"))
        try:
            builder = self._filtered(self.client.table(table).update(_jsonable(patch)), filters)
            data = builder.execute().data or []
            return StoreResult(data=data[0] if data else None)
        except (APIError, httpx.HTTPError) as exc:
            return self._fail(table, "update", exc)

    def delete(self, table: str, filters: Mapping[str, Any]) -> StoreResult:
        if not filters:
            return StoreResult(error=StoreError("Refusing to delete without filters", code="unfiltered"))
        try:
            self._filtered(self.client.table(table).delete(), filters).execute()
            return StoreResult(data=None)
        except (APIError, httpx.HTTPError) as exc:
            return self._fail(table, "delete", exc)
