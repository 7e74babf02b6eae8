"""
Uniform open/prepare/exec/query surface over the database backends under test.

Copyright (c) 2025, Jim Schilling

Please keep this header when you use this code.

This module is licensed under the MIT License.
"""
import logging
import sqlite3
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Connection, CursorResult
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from sqlite_driver_bench.cases import StorageMode
from sqlite_driver_bench.errors import (
    BackendOpenError,
    DbOperationError,
    UnknownBackendError,
)
from sqlite_driver_bench.sql_helper import count_placeholders, parse_sql_statements

SQLALCHEMY_BACKEND = "sqlalchemy"
SQLITE3_BACKEND = "sqlite3"

_ERROR_OPEN_FAILED = "Open of {} backend on {!r} failed: {}"
_ERROR_EXECUTE_FAILED = "Execute failed: {}"
_ERROR_PREPARE_FAILED = "Prepare failed: {}"
_ERROR_QUERY_FAILED = "Query failed: {}"
_ERROR_FETCH_FAILED = "Fetch failed: {}"
_ERROR_CLOSED = "{} is closed"


class Rows(ABC):
    """Forward-only cursor over a query result."""

    @abstractmethod
    def fetchone(self) -> tuple | None:
        """Next row, or None once the result is exhausted."""

    @abstractmethod
    def close(self) -> None:
        pass


class PreparedStatement(ABC):
    """Reusable parameterized statement bound to one open backend."""

    def __init__(self, sql: str) -> None:
        self.sql = sql
        self.closed = False

    @abstractmethod
    def exec(self, *args: Any) -> None:
        pass

    def close(self) -> None:
        self.closed = True


class Backend(ABC):
    """
    An open connection to one backend on one storage target.

    Subclasses set ``backend_id``, ``memory_target`` and
    ``supports_memory_audit`` and implement the ``_open``/``_exec_one``/
    ``_prepare``/``query``/``_close`` primitives. ``exec`` accepts scripts
    of several statements and runs them in order.
    """

    backend_id: str = ""
    memory_target: str = ""
    supports_memory_audit: bool = False

    def __init__(self, target: str) -> None:
        self.target = target
        self.closed = False
        try:
            self._open(target)
        except (sqlite3.Error, SQLAlchemyError, OSError) as e:
            raise BackendOpenError(_ERROR_OPEN_FAILED.format(self.backend_id, target, e)) from e

    @classmethod
    def file_target(cls, path: str) -> str:
        return path

    @classmethod
    def target_for(cls, mode: StorageMode, path: str | None = None) -> str:
        """
        Target string for a storage mode. In-memory markers differ between
        backends, so each class supplies its own.

        Raises:
            ValueError: If an on-disk target is requested without a path
        """
        if mode is StorageMode.IN_MEMORY:
            return cls.memory_target
        if not path:
            raise ValueError(f"{cls.backend_id} on-disk target requires a path")
        return cls.file_target(path)

    def exec(self, sql: str, *args: Any) -> None:
        """
        Execute a statement, or each statement of a script, discarding results.

        Raises:
            DbOperationError: If the backend rejects any statement
        """
        self._check_open()
        statements = parse_sql_statements(sql)
        if args and len(statements) > 1:
            raise DbOperationError(
                _ERROR_EXECUTE_FAILED.format("parameters given for a multi-statement script")
            )
        for stmt in statements:
            self._exec_one(stmt, args)

    def prepare(self, sql: str) -> PreparedStatement:
        """
        Prepare a single parameterized statement for repeated execution.

        The statement is compiled once with ``explain`` so that a bad table
        or column name fails here instead of on first use.

        Raises:
            DbOperationError: If the text is not exactly one statement, or the
                database rejects it
        """
        self._check_open()
        statements = parse_sql_statements(sql)
        if len(statements) != 1:
            raise DbOperationError(_ERROR_PREPARE_FAILED.format(f"not a single statement: {sql!r}"))
        placeholders = (None,) * count_placeholders(statements[0])
        try:
            self.query(f"explain {statements[0]}", *placeholders).close()
        except DbOperationError as e:
            raise DbOperationError(_ERROR_PREPARE_FAILED.format(e.__cause__ or e)) from e
        return self._prepare(sql)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            self._close()
        except (sqlite3.Error, SQLAlchemyError) as e:
            raise DbOperationError(f"Close failed: {e}") from e

    def _check_open(self) -> None:
        if self.closed:
            raise DbOperationError(_ERROR_CLOSED.format(f"{self.backend_id} backend"))

    def __enter__(self) -> "Backend":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @abstractmethod
    def _open(self, target: str) -> None:
        pass

    @abstractmethod
    def _exec_one(self, sql: str, args: tuple) -> None:
        pass

    @abstractmethod
    def _prepare(self, sql: str) -> PreparedStatement:
        pass

    @abstractmethod
    def query(self, sql: str, *args: Any) -> Rows:
        pass

    @abstractmethod
    def _close(self) -> None:
        pass


_REGISTRY: dict[str, type[Backend]] = {}


def register_backend(backend_id: str) -> Callable[[type[Backend]], type[Backend]]:
    """
    Class decorator registering a backend under ``backend_id``.

    Raises:
        ValueError: If the identifier is empty or already registered
    """

    def decorator(cls: type[Backend]) -> type[Backend]:
        if not backend_id:
            raise ValueError("Backend identifier must not be empty")
        if backend_id in _REGISTRY and _REGISTRY[backend_id] is not cls:
            raise ValueError(f"Backend {backend_id!r} is already registered")
        cls.backend_id = backend_id
        _REGISTRY[backend_id] = cls
        return cls

    return decorator


def unregister_backend(backend_id: str) -> None:
    _REGISTRY.pop(backend_id, None)


def available_backends() -> list[str]:
    return list(_REGISTRY)


def get_backend(backend_id: str) -> type[Backend]:
    """
    Raises:
        UnknownBackendError: If nothing is registered under ``backend_id``
    """
    try:
        return _REGISTRY[backend_id]
    except KeyError:
        raise UnknownBackendError(backend_id, available_backends()) from None


def open_backend(backend_id: str, target: str) -> Backend:
    """
    Open a registered backend on a target string.

    Raises:
        UnknownBackendError: If the backend is not registered
        BackendOpenError: If the backend cannot open the target
    """
    backend = get_backend(backend_id)(target)
    logging.debug(f"Opened {backend_id} backend on {target!r}")
    return backend


class _SqlAlchemyRows(Rows):
    def __init__(self, result: CursorResult) -> None:
        self._result = result

    def fetchone(self) -> tuple | None:
        try:
            row = self._result.fetchone()
        except SQLAlchemyError as e:
            raise DbOperationError(_ERROR_FETCH_FAILED.format(e)) from e
        return None if row is None else tuple(row)

    def close(self) -> None:
        self._result.close()


class _SqlAlchemyStatement(PreparedStatement):
    def __init__(self, conn: Connection, sql: str) -> None:
        super().__init__(sql)
        self._conn = conn

    def exec(self, *args: Any) -> None:
        if self.closed:
            raise DbOperationError(_ERROR_CLOSED.format("Prepared statement"))
        try:
            self._conn.exec_driver_sql(self.sql, args)
        except SQLAlchemyError as e:
            raise DbOperationError(_ERROR_EXECUTE_FAILED.format(e)) from e


@register_backend(SQLALCHEMY_BACKEND)
class SqlAlchemyBackend(Backend):
    """
    Managed backend: SQLAlchemy Core over the pysqlite dialect.

    A StaticPool keeps a single connection, so an in-memory database lives
    as long as the backend. AUTOCOMMIT isolation hands transaction control
    to the literal ``begin``/``commit`` statements of the workload.
    """

    memory_target = "sqlite://"
    supports_memory_audit = True

    @classmethod
    def file_target(cls, path: str) -> str:
        return f"sqlite:///{path}"

    def _open(self, target: str) -> None:
        self.engine = create_engine(
            target,
            poolclass=StaticPool,
            isolation_level="AUTOCOMMIT",
            connect_args={"check_same_thread": False},
        )
        try:
            self.conn = self.engine.connect()
        except SQLAlchemyError:
            self.engine.dispose()
            raise

    def _exec_one(self, sql: str, args: tuple) -> None:
        try:
            self.conn.exec_driver_sql(sql, args)
        except SQLAlchemyError as e:
            raise DbOperationError(_ERROR_EXECUTE_FAILED.format(e)) from e

    def _prepare(self, sql: str) -> PreparedStatement:
        return _SqlAlchemyStatement(self.conn, sql)

    def query(self, sql: str, *args: Any) -> Rows:
        self._check_open()
        try:
            return _SqlAlchemyRows(self.conn.exec_driver_sql(sql, args))
        except SQLAlchemyError as e:
            raise DbOperationError(_ERROR_QUERY_FAILED.format(e)) from e

    def _close(self) -> None:
        try:
            self.conn.close()
        finally:
            self.engine.dispose()


class _Sqlite3Rows(Rows):
    def __init__(self, cursor: sqlite3.Cursor) -> None:
        self._cursor = cursor

    def fetchone(self) -> tuple | None:
        try:
            return self._cursor.fetchone()
        except sqlite3.Error as e:
            raise DbOperationError(_ERROR_FETCH_FAILED.format(e)) from e

    def close(self) -> None:
        self._cursor.close()


class _Sqlite3Statement(PreparedStatement):
    def __init__(self, connection: sqlite3.Connection, sql: str) -> None:
        super().__init__(sql)
        self._cursor = connection.cursor()

    def exec(self, *args: Any) -> None:
        if self.closed:
            raise DbOperationError(_ERROR_CLOSED.format("Prepared statement"))
        try:
            self._cursor.execute(self.sql, args)
        except sqlite3.Error as e:
            raise DbOperationError(_ERROR_EXECUTE_FAILED.format(e)) from e

    def close(self) -> None:
        if not self.closed:
            self._cursor.close()
        super().close()


@register_backend(SQLITE3_BACKEND)
class Sqlite3Backend(Backend):
    """
    Native backend: the CPython ``sqlite3`` extension module. Its
    allocations happen inside the C library, out of reach of tracemalloc.
    """

    memory_target = ":memory:"
    supports_memory_audit = False

    def _open(self, target: str) -> None:
        self.connection = sqlite3.connect(target, isolation_level=None, check_same_thread=False)

    def _exec_one(self, sql: str, args: tuple) -> None:
        try:
            self.connection.execute(sql, args)
        except sqlite3.Error as e:
            raise DbOperationError(_ERROR_EXECUTE_FAILED.format(e)) from e

    def _prepare(self, sql: str) -> PreparedStatement:
        try:
            return _Sqlite3Statement(self.connection, sql)
        except sqlite3.Error as e:
            raise DbOperationError(_ERROR_PREPARE_FAILED.format(e)) from e

    def query(self, sql: str, *args: Any) -> Rows:
        self._check_open()
        try:
            return _Sqlite3Rows(self.connection.execute(sql, args))
        except sqlite3.Error as e:
            raise DbOperationError(_ERROR_QUERY_FAILED.format(e)) from e

    def _close(self) -> None:
        self.connection.close()
