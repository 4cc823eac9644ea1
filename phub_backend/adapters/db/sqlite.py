"""
SQLite database connection manager.

Implementation notes:
- Backed by `aiosqlite`; every public method is async and runs on the caller's loop.
- Connections are pooled; a transaction pins one connection to the running context
  through a context variable, so any `aexecute` issued from the same task (or a task
  spawned from it) joins the transaction.
- Writes outside a transaction are serialized with an asyncio lock; `BEGIN IMMEDIATE`
  takes the same lock for the whole transaction.

Critical guarantee:
- The adapter never raises to callers; it returns `Result(...)`. `atransaction`
  re-raises exceptions thrown by the caller's block after rolling back.
"""

from __future__ import annotations

import asyncio
import contextvars
import random
import sqlite3
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Optional

import aiosqlite

from ...config import DB_MAX_CONNECTIONS, DB_TIMEOUT
from ...shared import ErrorCode, Result, get_logger
from .transaction_manager import (
    begin_stmt_for_mode,
    build_in_query,
    chunked,
    cursor_write_result,
    is_locked_error,
    is_write_sql,
    rows_to_dicts,
    tx_token,
)

logger = get_logger(__name__)

SQLITE_BUSY_TIMEOUT_MS = max(1000, int(float(DB_TIMEOUT) * 1000))
# Negative cache_size is in KiB. -16000 ~= 16 MiB cache.
SQLITE_CACHE_SIZE_KIB = -16000

_TX_TOKEN: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("phub_db_tx_token", default=None)


class Sqlite:
    """
    Connection pool manager for SQLite (aiosqlite-backed).
    """

    def __init__(self, db_path: str, max_connections: Optional[int] = None, timeout: float = DB_TIMEOUT):
        self.db_path = Path(db_path)
        self._max_conn_limit = max(1, int(max_connections if max_connections is not None else DB_MAX_CONNECTIONS))
        self._timeout = float(timeout)
        self._idle: list[aiosqlite.Connection] = []
        self._active: set[aiosqlite.Connection] = set()
        self._sem: Optional[asyncio.Semaphore] = None
        self._write_lock: Optional[asyncio.Lock] = None
        self._tx_conns: dict[str, aiosqlite.Connection] = {}
        self._lock_retry_attempts = 6
        self._lock_retry_base_seconds = 0.05
        self._lock_retry_max_seconds = 0.75
        self._closed = False

        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Connection pool
    # ------------------------------------------------------------------

    def _primitives(self) -> tuple[asyncio.Semaphore, asyncio.Lock]:
        # Created lazily so they bind to the loop that first uses the adapter.
        if self._sem is None:
            self._sem = asyncio.Semaphore(self._max_conn_limit)
        if self._write_lock is None:
            self._write_lock = asyncio.Lock()
        return self._sem, self._write_lock

    async def _apply_connection_pragmas(self, conn: aiosqlite.Connection) -> None:
        await conn.execute("PRAGMA journal_mode=WAL")
        await conn.execute("PRAGMA synchronous=NORMAL")
        await conn.execute(f"PRAGMA cache_size={SQLITE_CACHE_SIZE_KIB}")
        await conn.execute("PRAGMA temp_store=MEMORY")
        await conn.execute(f"PRAGMA busy_timeout = {SQLITE_BUSY_TIMEOUT_MS}")
        await conn.execute("PRAGMA foreign_keys=ON")

    async def _create_connection(self) -> aiosqlite.Connection:
        # Autocommit mode; transactions are managed explicitly with BEGIN/COMMIT.
        conn = await aiosqlite.connect(str(self.db_path), timeout=self._timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        await self._apply_connection_pragmas(conn)
        return conn

    async def _acquire_connection(self) -> aiosqlite.Connection:
        if self._closed:
            raise RuntimeError("Database is closed")
        sem, _ = self._primitives()
        await sem.acquire()
        try:
            conn = self._idle.pop() if self._idle else await self._create_connection()
        except BaseException:
            sem.release()
            raise
        self._active.add(conn)
        return conn

    async def _release_connection(self, conn: aiosqlite.Connection) -> None:
        sem, _ = self._primitives()
        try:
            self._active.discard(conn)
            if self._closed:
                await conn.close()
            else:
                self._idle.append(conn)
        finally:
            sem.release()

    async def _sleep_backoff(self, attempt: int) -> None:
        delay = min(self._lock_retry_max_seconds, self._lock_retry_base_seconds * (2 ** attempt))
        await asyncio.sleep(delay * (0.5 + random.random() / 2))

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _execute_with_cursor_result(
        self,
        conn: aiosqlite.Connection,
        query: str,
        params: Optional[tuple],
        *,
        fetch: bool,
    ) -> Result[Any]:
        cursor = await conn.execute(query, params or ())
        try:
            if fetch:
                rows = await cursor.fetchall()
                return Result.Ok(rows_to_dicts(rows))
            return cursor_write_result(cursor, query)
        finally:
            await cursor.close()

    async def _execute_on_conn(
        self,
        conn: aiosqlite.Connection,
        query: str,
        params: Optional[tuple],
        fetch: bool,
    ) -> Result[Any]:
        try:
            for attempt in range(self._lock_retry_attempts + 1):
                try:
                    return await self._execute_with_cursor_result(conn, query, params, fetch=fetch)
                except sqlite3.OperationalError as exc:
                    if is_locked_error(exc) and attempt < self._lock_retry_attempts:
                        await self._sleep_backoff(attempt)
                        continue
                    raise
            return Result.Err(ErrorCode.DB_ERROR, "Query failed after retries")
        except sqlite3.IntegrityError as exc:
            logger.warning("Integrity error: %s", exc)
            return Result.Err(ErrorCode.DB_ERROR, f"Integrity error: {exc}")
        except sqlite3.OperationalError as exc:
            logger.error("Operational error: %s", exc)
            return Result.Err(ErrorCode.DB_ERROR, f"Operational error: {exc}")
        except sqlite3.DatabaseError as exc:
            logger.error("Database error: %s", exc)
            return Result.Err(ErrorCode.DB_ERROR, str(exc))

    async def aexecute(self, query: str, params: Optional[tuple] = None, fetch: bool = False) -> Result[Any]:
        """Execute one statement; joins the current transaction when there is one."""
        token = tx_token(_TX_TOKEN)
        if token:
            conn = self._tx_conns.get(token)
            if conn is None:
                return Result.Err(ErrorCode.DB_ERROR, "Transaction connection missing")
            return await self._execute_on_conn(conn, query, params, fetch)

        try:
            conn = await self._acquire_connection()
        except Exception as exc:
            return Result.Err(ErrorCode.DB_ERROR, f"Failed to acquire connection: {exc}")
        try:
            if is_write_sql(query):
                _, lock = self._primitives()
                async with lock:
                    return await self._execute_on_conn(conn, query, params, fetch)
            return await self._execute_on_conn(conn, query, params, fetch)
        finally:
            await self._release_connection(conn)

    async def aquery(self, sql: str, params: Optional[tuple] = None) -> Result[list[dict[str, Any]]]:
        """Execute a SELECT query and return rows as dicts."""
        return await self.aexecute(sql, params, fetch=True)

    async def aquery_in(
        self,
        base_query: str,
        column: str,
        values: list[Any],
        extra_params: tuple = (),
    ) -> Result[list[dict[str, Any]]]:
        """Run a `{IN_CLAUSE}` SELECT template over `values`, chunked to stay under SQLite's parameter cap."""
        if not values:
            return Result.Ok([])
        rows: list[dict[str, Any]] = []
        for chunk in chunked(list(values)):
            ok, query = build_in_query(base_query, column, len(chunk))
            if not ok:
                return Result.Err(ErrorCode.INVALID_INPUT, query)
            res = await self.aquery(query, tuple(chunk) + tuple(extra_params))
            if not res.ok:
                return res
            rows.extend(res.data or [])
        return Result.Ok(rows)

    async def aexecute_in(self, base_query: str, column: str, values: list[Any]) -> Result[int]:
        """Run a `{IN_CLAUSE}` write template; returns the total affected row count."""
        total = 0
        for chunk in chunked(list(values)):
            ok, query = build_in_query(base_query, column, len(chunk))
            if not ok:
                return Result.Err(ErrorCode.INVALID_INPUT, query)
            res = await self.aexecute(query, tuple(chunk))
            if not res.ok:
                return Result.Err(res.code, res.error or "Write failed")
            total += int(res.meta.get("rowcount") or 0)
        return Result.Ok(total)

    async def aexecutemany(self, query: str, params_list: list[tuple]) -> Result[int]:
        if not params_list:
            return Result.Ok(0)
        count = 0
        for params in params_list:
            res = await self.aexecute(query, params)
            if not res.ok:
                return Result.Err(res.code, res.error or "executemany failed")
            count += 1
        return Result.Ok(count)

    async def aexecutescript(self, script: str) -> Result[bool]:
        try:
            conn = await self._acquire_connection()
        except Exception as exc:
            return Result.Err(ErrorCode.DB_ERROR, f"Failed to acquire connection: {exc}")
        try:
            _, lock = self._primitives()
            async with lock:
                await conn.executescript(script)
            return Result.Ok(True)
        except sqlite3.DatabaseError as exc:
            logger.error("Script execution failed: %s", exc)
            return Result.Err(ErrorCode.DB_ERROR, str(exc))
        finally:
            await self._release_connection(conn)

    async def ahas_table(self, table_name: str) -> bool:
        res = await self.aquery(
            "SELECT name FROM sqlite_master WHERE type='table' AND name = ?",
            (table_name,),
        )
        return bool(res.ok and res.data)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def _begin_tx(self, mode: str) -> Result[str]:
        _, lock = self._primitives()
        await lock.acquire()
        try:
            conn = await self._acquire_connection()
        except Exception as exc:
            lock.release()
            return Result.Err(ErrorCode.DB_ERROR, f"Failed to acquire connection: {exc}")
        token = f"tx_{uuid.uuid4().hex}"
        begin_stmt = begin_stmt_for_mode(mode)
        for attempt in range(self._lock_retry_attempts + 1):
            try:
                await conn.execute(begin_stmt)
                self._tx_conns[token] = conn
                return Result.Ok(token)
            except sqlite3.OperationalError as exc:
                if is_locked_error(exc) and attempt < self._lock_retry_attempts:
                    await self._sleep_backoff(attempt)
                    continue
                await self._release_connection(conn)
                lock.release()
                return Result.Err(ErrorCode.DB_ERROR, str(exc))
        await self._release_connection(conn)
        lock.release()
        return Result.Err(ErrorCode.DB_ERROR, "Could not begin transaction")

    async def _end_tx(self, token: str, *, commit: bool) -> Result[bool]:
        _, lock = self._primitives()
        conn = self._tx_conns.pop(token, None)
        if conn is None:
            return Result.Err(ErrorCode.DB_ERROR, "Transaction connection missing")
        try:
            if commit:
                await conn.commit()
            else:
                await conn.rollback()
            return Result.Ok(True)
        except sqlite3.DatabaseError as exc:
            # Never hand a connection with an open transaction back to the pool.
            try:
                await conn.rollback()
            except sqlite3.DatabaseError:
                logger.debug("Rollback after failed commit also failed", exc_info=True)
            return Result.Err(ErrorCode.DB_ERROR, str(exc))
        finally:
            await self._release_connection(conn)
            lock.release()

    @asynccontextmanager
    async def atransaction(self, mode: str = "immediate") -> AsyncIterator[Result[bool]]:
        """
        Async context manager for a DB transaction.

        Yields a `Result` describing the transaction state; it is flipped to an error
        when BEGIN or COMMIT fails. An exception raised inside the block rolls the
        transaction back and propagates. A nested call joins the outer transaction.
        """
        if tx_token(_TX_TOKEN):
            yield Result.Ok(True, joined=True)
            return

        tx_state: Result[bool] = Result.Ok(True)
        begin_res = await self._begin_tx(mode)
        if not begin_res.ok or not begin_res.data:
            yield Result.Err(ErrorCode.DB_ERROR, str(begin_res.error or "Failed to begin transaction"))
            return

        token = str(begin_res.data)
        token_handle = _TX_TOKEN.set(token)
        try:
            try:
                yield tx_state
            except BaseException:
                rollback_res = await self._end_tx(token, commit=False)
                if not rollback_res.ok:
                    logger.error("Rollback failed: %s", rollback_res.error)
                raise
            commit_res = await self._end_tx(token, commit=True)
            if not commit_res.ok:
                tx_state.ok = False
                tx_state.code = ErrorCode.DB_ERROR.value
                tx_state.error = str(commit_res.error or "Commit failed")
        finally:
            _TX_TOKEN.reset(token_handle)

    def in_transaction(self) -> bool:
        return bool(tx_token(_TX_TOKEN))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        self._closed = True
        for token in list(self._tx_conns.keys()):
            conn = self._tx_conns.pop(token, None)
            if conn is not None:
                try:
                    await conn.rollback()
                    await conn.close()
                except sqlite3.DatabaseError:
                    logger.debug("Closing transaction connection failed", exc_info=True)
        while self._idle:
            conn = self._idle.pop()
            try:
                await conn.close()
            except sqlite3.DatabaseError:
                logger.debug("Closing pooled connection failed", exc_info=True)
