from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from copy import deepcopy
from typing import Any

from sqlalchemy import Table, create_engine, delete, insert, select, update
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from . import errors
from . import tables
from .auth_utils import hash_password, verify_password
from .config import settings
from .log import get_logger
from .schemas import (
    FixedExpenseCreate,
    FixedExpenseUpdate,
    IncomeCreate,
    IncomeUpdate,
    SavingsGoalCreate,
    SavingsGoalUpdate,
    VariableExpenseCreate,
    VariableExpenseUpdate,
)
from .services.sync import SyncResult, clone_fields, derive_fixed_fields
from .store import InMemoryStore

logger = get_logger(__name__)

SYNC_ATTEMPTS = 2


def _changes(payload: Any) -> dict[str, Any]:
    return payload.model_dump(exclude_unset=True, exclude_none=True)


def _public_user(row: dict[str, Any]) -> dict[str, Any]:
    return {"id": row["id"], "username": row["username"]}


class Persistence:
    def list_incomes(self) -> list[dict[str, Any]]:
        raise NotImplementedError

    def create_income(self, payload: IncomeCreate) -> dict[str, Any]:
        raise NotImplementedError

    def update_income(self, income_id: int, payload: IncomeUpdate) -> dict[str, Any]:
        raise NotImplementedError

    def delete_income(self, income_id: int) -> None:
        raise NotImplementedError

    def list_fixed_expenses(self) -> list[dict[str, Any]]:
        raise NotImplementedError

    def create_fixed_expense(self, payload: FixedExpenseCreate) -> dict[str, Any]:
        raise NotImplementedError

    def update_fixed_expense(self, expense_id: int, payload: FixedExpenseUpdate) -> dict[str, Any]:
        raise NotImplementedError

    def delete_fixed_expense(self, expense_id: int) -> None:
        raise NotImplementedError

    def clone_fixed_expenses(self, from_month: str, to_month: str) -> int:
        raise NotImplementedError

    def list_variable_expenses(self) -> list[dict[str, Any]]:
        raise NotImplementedError

    def create_variable_expense(self, payload: VariableExpenseCreate) -> dict[str, Any]:
        raise NotImplementedError

    def update_variable_expense(self, expense_id: int, payload: VariableExpenseUpdate) -> dict[str, Any]:
        raise NotImplementedError

    def delete_variable_expense(self, expense_id: int) -> None:
        raise NotImplementedError

    def sync_variable_to_fixed(self, variable_id: int) -> SyncResult:
        raise NotImplementedError

    def list_savings_goals(self) -> list[dict[str, Any]]:
        raise NotImplementedError

    def create_savings_goal(self, payload: SavingsGoalCreate) -> dict[str, Any]:
        raise NotImplementedError

    def update_savings_goal(self, goal_id: int, payload: SavingsGoalUpdate) -> dict[str, Any]:
        raise NotImplementedError

    def get_setting(self, key: str) -> dict[str, Any] | None:
        raise NotImplementedError

    def upsert_setting(self, key: str, value: Any) -> dict[str, Any]:
        raise NotImplementedError

    def register_user(self, username: str, password: str) -> dict[str, Any]:
        raise NotImplementedError

    def authenticate_user(self, username: str, password: str) -> dict[str, Any] | None:
        raise NotImplementedError

    def get_user_by_id(self, user_id: int) -> dict[str, Any] | None:
        raise NotImplementedError


class InMemoryPersistence(Persistence):
    """Process-local backend.

    Every mutation runs under the store lock and builds the new values before
    touching any table, so a failing call leaves nothing half-written.
    """

    def __init__(self, store: InMemoryStore | None = None) -> None:
        self.store = store or InMemoryStore()

    @staticmethod
    def _copy(row: dict[str, Any]) -> dict[str, Any]:
        return deepcopy(row)

    def _get(self, table: dict[int, dict[str, Any]], entity_id: int, label: str) -> dict[str, Any]:
        row = table.get(entity_id)
        if row is None:
            raise errors.NotFound(f"{label} not found: {entity_id}")
        return row

    def _insert(self, table_name: str, row: dict[str, Any]) -> dict[str, Any]:
        table: dict[int, dict[str, Any]] = getattr(self.store, table_name)
        with self.store.lock:
            entity_id = self.store.next_id(table_name)
            stored = {"id": entity_id, **row}
            table[entity_id] = stored
            return self._copy(stored)

    def _patch(self, table_name: str, entity_id: int, changes: dict[str, Any], label: str) -> dict[str, Any]:
        table: dict[int, dict[str, Any]] = getattr(self.store, table_name)
        with self.store.lock:
            row = self._get(table, entity_id, label)
            row.update(deepcopy(changes))
            return self._copy(row)

    def list_incomes(self) -> list[dict[str, Any]]:
        with self.store.lock:
            return [self._copy(row) for row in self.store.incomes.values()]

    def create_income(self, payload: IncomeCreate) -> dict[str, Any]:
        return self._insert("incomes", payload.model_dump())

    def update_income(self, income_id: int, payload: IncomeUpdate) -> dict[str, Any]:
        return self._patch("incomes", income_id, _changes(payload), "income")

    def delete_income(self, income_id: int) -> None:
        with self.store.lock:
            self._get(self.store.incomes, income_id, "income")
            del self.store.incomes[income_id]

    def list_fixed_expenses(self) -> list[dict[str, Any]]:
        with self.store.lock:
            return [self._copy(row) for row in self.store.fixed_expenses.values()]

    def create_fixed_expense(self, payload: FixedExpenseCreate) -> dict[str, Any]:
        return self._insert("fixed_expenses", {**payload.model_dump(), "origin_id": None})

    def update_fixed_expense(self, expense_id: int, payload: FixedExpenseUpdate) -> dict[str, Any]:
        return self._patch("fixed_expenses", expense_id, _changes(payload), "fixed expense")

    def delete_fixed_expense(self, expense_id: int) -> None:
        with self.store.lock:
            row = self._get(self.store.fixed_expenses, expense_id, "fixed expense")
            origin = self.store.variable_expenses.get(row["origin_id"]) if row["origin_id"] is not None else None
            del self.store.fixed_expenses[expense_id]
            if origin is not None:
                origin["is_synced"] = False

    def clone_fixed_expenses(self, from_month: str, to_month: str) -> int:
        with self.store.lock:
            sources = [row for row in self.store.fixed_expenses.values() if row["month"] == from_month]
            for row in sources:
                self._insert("fixed_expenses", clone_fields(row, to_month))
            return len(sources)

    def list_variable_expenses(self) -> list[dict[str, Any]]:
        with self.store.lock:
            return [self._copy(row) for row in self.store.variable_expenses.values()]

    def create_variable_expense(self, payload: VariableExpenseCreate) -> dict[str, Any]:
        return self._insert("variable_expenses", {**payload.model_dump(), "is_synced": False})

    def update_variable_expense(self, expense_id: int, payload: VariableExpenseUpdate) -> dict[str, Any]:
        return self._patch("variable_expenses", expense_id, _changes(payload), "variable expense")

    def delete_variable_expense(self, expense_id: int) -> None:
        with self.store.lock:
            self._get(self.store.variable_expenses, expense_id, "variable expense")
            for row in self.store.fixed_expenses.values():
                if row["origin_id"] == expense_id:
                    row["origin_id"] = None
            del self.store.variable_expenses[expense_id]

    def sync_variable_to_fixed(self, variable_id: int) -> SyncResult:
        with self.store.lock:
            variable = self._get(self.store.variable_expenses, variable_id, "variable expense")
            fields = derive_fixed_fields(variable)
            linked = next(
                (row for row in self.store.fixed_expenses.values() if row["origin_id"] == variable_id),
                None,
            )
            if linked is not None:
                linked.update(fields)
                fixed, created = self._copy(linked), False
            else:
                fixed, created = self._insert("fixed_expenses", {**fields, "origin_id": variable_id}), True
            variable["is_synced"] = True
            return SyncResult(fixed_expense=fixed, created=created)

    def list_savings_goals(self) -> list[dict[str, Any]]:
        with self.store.lock:
            return [self._copy(row) for row in self.store.savings_goals.values()]

    def create_savings_goal(self, payload: SavingsGoalCreate) -> dict[str, Any]:
        with self.store.lock:
            if any(row["month"] == payload.month for row in self.store.savings_goals.values()):
                raise errors.ValidationError(f"savings goal already exists for month: {payload.month}", field="month")
            return self._insert("savings_goals", payload.model_dump())

    def update_savings_goal(self, goal_id: int, payload: SavingsGoalUpdate) -> dict[str, Any]:
        return self._patch("savings_goals", goal_id, _changes(payload), "savings goal")

    def get_setting(self, key: str) -> dict[str, Any] | None:
        with self.store.lock:
            row = self.store.settings.get(key)
            return self._copy(row) if row is not None else None

    def upsert_setting(self, key: str, value: Any) -> dict[str, Any]:
        with self.store.lock:
            row = self.store.settings.get(key)
            if row is None:
                row = {"id": self.store.next_id("settings"), "key": key, "value": None}
                self.store.settings[key] = row
            row["value"] = deepcopy(value)
            return self._copy(row)

    def register_user(self, username: str, password: str) -> dict[str, Any]:
        with self.store.lock:
            for row in self.store.users.values():
                if row["username"] == username:
                    raise errors.Conflict("username already taken", field="username")
            row = self._insert("users", {"username": username, "password_hash": hash_password(password)})
            return _public_user(row)

    def authenticate_user(self, username: str, password: str) -> dict[str, Any] | None:
        with self.store.lock:
            for row in self.store.users.values():
                if row["username"] == username:
                    return _public_user(row) if verify_password(password, row["password_hash"]) else None
        return None

    def get_user_by_id(self, user_id: int) -> dict[str, Any] | None:
        with self.store.lock:
            row = self.store.users.get(user_id)
            return _public_user(row) if row is not None else None


def normalize_database_url(url: str) -> str:
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+psycopg://", 1)
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


class SqlPersistence(Persistence):
    def __init__(self, database_url: str) -> None:
        url = normalize_database_url(database_url)
        connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
        self.engine: Engine = create_engine(url, future=True, pool_pre_ping=True, connect_args=connect_args)
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        with self._transaction() as conn:
            tables.metadata.create_all(conn)

    @contextmanager
    def _transaction(self, conflict_message: str | None = None) -> Iterator[Connection]:
        try:
            with self.engine.begin() as conn:
                yield conn
        except IntegrityError as exc:
            logger.warning("storage_conflict", error=exc.__class__.__name__)
            raise errors.Conflict(conflict_message or "conflicting write") from exc
        except SQLAlchemyError as exc:
            logger.error("storage_error", error=exc.__class__.__name__, detail=str(exc))
            raise errors.InternalError(f"database error: {exc.__class__.__name__}") from exc

    @staticmethod
    def _rows(conn: Connection, statement: Any) -> list[dict[str, Any]]:
        return [dict(row._mapping) for row in conn.execute(statement).fetchall()]

    def _fetch(self, conn: Connection, table: Table, entity_id: int) -> dict[str, Any] | None:
        rows = self._rows(conn, select(table).where(table.c.id == entity_id))
        return rows[0] if rows else None

    def _list(self, table: Table) -> list[dict[str, Any]]:
        with self._transaction() as conn:
            return self._rows(conn, select(table).order_by(table.c.id))

    def _insert(self, table: Table, values: dict[str, Any], conflict_message: str | None = None) -> dict[str, Any]:
        with self._transaction(conflict_message) as conn:
            result = conn.execute(insert(table).values(**values))
            return self._fetch(conn, table, result.inserted_primary_key[0])

    def _patch(self, table: Table, entity_id: int, changes: dict[str, Any], label: str) -> dict[str, Any]:
        with self._transaction() as conn:
            if changes:
                conn.execute(update(table).where(table.c.id == entity_id).values(**changes))
            row = self._fetch(conn, table, entity_id)
            if row is None:
                raise errors.NotFound(f"{label} not found: {entity_id}")
            return row

    def _delete(self, table: Table, entity_id: int, label: str) -> None:
        with self._transaction() as conn:
            result = conn.execute(delete(table).where(table.c.id == entity_id))
            if result.rowcount == 0:
                raise errors.NotFound(f"{label} not found: {entity_id}")

    def list_incomes(self) -> list[dict[str, Any]]:
        return self._list(tables.incomes)

    def create_income(self, payload: IncomeCreate) -> dict[str, Any]:
        return self._insert(tables.incomes, payload.model_dump())

    def update_income(self, income_id: int, payload: IncomeUpdate) -> dict[str, Any]:
        return self._patch(tables.incomes, income_id, _changes(payload), "income")

    def delete_income(self, income_id: int) -> None:
        self._delete(tables.incomes, income_id, "income")

    def list_fixed_expenses(self) -> list[dict[str, Any]]:
        return self._list(tables.fixed_expenses)

    def create_fixed_expense(self, payload: FixedExpenseCreate) -> dict[str, Any]:
        return self._insert(tables.fixed_expenses, {**payload.model_dump(), "origin_id": None})

    def update_fixed_expense(self, expense_id: int, payload: FixedExpenseUpdate) -> dict[str, Any]:
        return self._patch(tables.fixed_expenses, expense_id, _changes(payload), "fixed expense")

    def delete_fixed_expense(self, expense_id: int) -> None:
        fixed = tables.fixed_expenses
        with self._transaction() as conn:
            row = self._fetch(conn, fixed, expense_id)
            if row is None:
                raise errors.NotFound(f"fixed expense not found: {expense_id}")
            conn.execute(delete(fixed).where(fixed.c.id == expense_id))
            if row["origin_id"] is not None:
                conn.execute(
                    update(tables.variable_expenses)
                    .where(tables.variable_expenses.c.id == row["origin_id"])
                    .values(is_synced=False)
                )

    def clone_fixed_expenses(self, from_month: str, to_month: str) -> int:
        fixed = tables.fixed_expenses
        with self._transaction() as conn:
            sources = self._rows(conn, select(fixed).where(fixed.c.month == from_month).order_by(fixed.c.id))
            if not sources:
                return 0
            conn.execute(insert(fixed), [clone_fields(row, to_month) for row in sources])
            return len(sources)

    def list_variable_expenses(self) -> list[dict[str, Any]]:
        return self._list(tables.variable_expenses)

    def create_variable_expense(self, payload: VariableExpenseCreate) -> dict[str, Any]:
        return self._insert(tables.variable_expenses, {**payload.model_dump(), "is_synced": False})

    def update_variable_expense(self, expense_id: int, payload: VariableExpenseUpdate) -> dict[str, Any]:
        return self._patch(tables.variable_expenses, expense_id, _changes(payload), "variable expense")

    def delete_variable_expense(self, expense_id: int) -> None:
        variable = tables.variable_expenses
        with self._transaction() as conn:
            conn.execute(
                update(tables.fixed_expenses)
                .where(tables.fixed_expenses.c.origin_id == expense_id)
                .values(origin_id=None)
            )
            result = conn.execute(delete(variable).where(variable.c.id == expense_id))
            if result.rowcount == 0:
                raise errors.NotFound(f"variable expense not found: {expense_id}")

    def sync_variable_to_fixed(self, variable_id: int) -> SyncResult:
        # A concurrent sync that inserts the linked row first makes our insert
        # hit the origin_id unique constraint; the retry then takes the update path.
        for attempt in range(1, SYNC_ATTEMPTS + 1):
            try:
                return self._sync_once(variable_id)
            except errors.Conflict as exc:
                if attempt == SYNC_ATTEMPTS:
                    raise errors.InternalError(f"sync of variable expense {variable_id} kept conflicting") from exc
                logger.info("sync_retry", variable_id=variable_id, attempt=attempt)
        raise errors.InternalError(f"sync of variable expense {variable_id} did not run")

    def _sync_once(self, variable_id: int) -> SyncResult:
        fixed = tables.fixed_expenses
        variable = tables.variable_expenses
        with self._transaction() as conn:
            source = self._fetch(conn, variable, variable_id)
            if source is None:
                raise errors.NotFound(f"variable expense not found: {variable_id}")
            fields = derive_fixed_fields(source)
            linked = self._rows(conn, select(fixed.c.id).where(fixed.c.origin_id == variable_id))
            if linked:
                fixed_id = linked[0]["id"]
                conn.execute(update(fixed).where(fixed.c.id == fixed_id).values(**fields))
                created = False
            else:
                result = conn.execute(insert(fixed).values(**fields, origin_id=variable_id))
                fixed_id = result.inserted_primary_key[0]
                created = True
            conn.execute(update(variable).where(variable.c.id == variable_id).values(is_synced=True))
            return SyncResult(fixed_expense=self._fetch(conn, fixed, fixed_id), created=created)

    def list_savings_goals(self) -> list[dict[str, Any]]:
        return self._list(tables.savings_goals)

    def create_savings_goal(self, payload: SavingsGoalCreate) -> dict[str, Any]:
        goals = tables.savings_goals
        message = f"savings goal already exists for month: {payload.month}"
        with self._transaction() as conn:
            if self._rows(conn, select(goals.c.id).where(goals.c.month == payload.month)):
                raise errors.ValidationError(message, field="month")
        return self._insert(goals, payload.model_dump(), conflict_message=message)

    def update_savings_goal(self, goal_id: int, payload: SavingsGoalUpdate) -> dict[str, Any]:
        return self._patch(tables.savings_goals, goal_id, _changes(payload), "savings goal")

    def get_setting(self, key: str) -> dict[str, Any] | None:
        table = tables.settings
        with self._transaction() as conn:
            rows = self._rows(conn, select(table).where(table.c.key == key))
        return rows[0] if rows else None

    def upsert_setting(self, key: str, value: Any) -> dict[str, Any]:
        table = tables.settings
        with self._transaction(conflict_message=f"setting {key} was written concurrently") as conn:
            existing = self._rows(conn, select(table.c.id).where(table.c.key == key))
            if existing:
                conn.execute(update(table).where(table.c.key == key).values(value=value))
            else:
                conn.execute(insert(table).values(key=key, value=value))
            return self._rows(conn, select(table).where(table.c.key == key))[0]

    def register_user(self, username: str, password: str) -> dict[str, Any]:
        users = tables.users
        with self._transaction() as conn:
            taken = self._rows(conn, select(users.c.id).where(users.c.username == username))
            if taken:
                raise errors.Conflict("username already taken", field="username")
        row = self._insert(
            users,
            {"username": username, "password_hash": hash_password(password)},
            conflict_message="username already taken",
        )
        return _public_user(row)

    def authenticate_user(self, username: str, password: str) -> dict[str, Any] | None:
        users = tables.users
        with self._transaction() as conn:
            rows = self._rows(conn, select(users).where(users.c.username == username))
        if not rows or not verify_password(password, rows[0]["password_hash"]):
            return None
        return _public_user(rows[0])

    def get_user_by_id(self, user_id: int) -> dict[str, Any] | None:
        with self._transaction() as conn:
            row = self._fetch(conn, tables.users, user_id)
        return _public_user(row) if row is not None else None


def get_persistence(backend: str | None = None, database_url: str | None = None) -> Persistence:
    backend = (backend or settings.storage_backend).lower()
    if backend in {"sql", "sqlite", "postgres"}:
        return SqlPersistence(database_url or settings.database_url)
    return InMemoryPersistence()
