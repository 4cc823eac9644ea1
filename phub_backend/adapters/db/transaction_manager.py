"""
Transaction and SQL utility helpers used by the SQLite adapter.
"""
import re
from typing import Any

from ...shared import Result

_IN_PLACEHOLDER = "{IN_CLAUSE}"
_COLUMN_NAME_PATTERN = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*(\.[a-zA-Z_][a-zA-Z0-9_]*)?$")


def tx_token(ctx_var: Any) -> str | None:
    ctx_tok = ctx_var.get()
    return str(ctx_tok) if ctx_tok else None


def rows_to_dicts(rows: Any) -> list[dict[str, Any]]:
    if not rows:
        return []
    return [dict(r) for r in rows]


def is_write_sql(query: str) -> bool:
    q = str(query or "").lstrip()
    if not q:
        return False
    head = q.split(None, 1)[0].upper()
    # CTEs are treated as reads; the catalog never writes through WITH.
    if head in ("SELECT", "PRAGMA", "WITH", "EXPLAIN"):
        return False
    return True


def begin_stmt_for_mode(mode: str) -> str:
    mode_l = str(mode or "").strip().lower()
    if mode_l in ("immediate", "write"):
        return "BEGIN IMMEDIATE"
    if mode_l in ("exclusive",):
        return "BEGIN EXCLUSIVE"
    return "BEGIN"


def cursor_write_result(cursor: Any, query: str = "") -> Result[Any]:
    """INSERT/REPLACE yield the new rowid; other writes yield the affected row count."""
    last_id = getattr(cursor, "lastrowid", None)
    rowcount = getattr(cursor, "rowcount", None)
    head = str(query or "").lstrip().split(None, 1)[0].upper() if str(query or "").strip() else ""
    if last_id and head in ("INSERT", "REPLACE"):
        return Result.Ok(last_id, rowcount=rowcount)
    return Result.Ok(rowcount if rowcount is not None else 0, rowcount=rowcount)


def is_locked_error(exc: Exception) -> bool:
    msg = str(exc).lower()
    return "database is locked" in msg or "database table is locked" in msg or "busy" in msg


def build_in_query(base_query: str, column: str, value_count: int) -> tuple[bool, str]:
    """
    Expand the single `{IN_CLAUSE}` marker of a SELECT/DELETE/UPDATE template.

    Returns:
        (ok, query_or_error)
    """
    if value_count <= 0:
        return False, "IN clause needs at least one value"
    if base_query.count(_IN_PLACEHOLDER) != 1:
        return False, "base_query must contain exactly one {IN_CLAUSE}"
    if not _COLUMN_NAME_PATTERN.match(column or ""):
        return False, f"Invalid column name: {column!r}"
    placeholders = ",".join(["?"] * int(value_count))
    return True, base_query.replace(_IN_PLACEHOLDER, f"{column} IN ({placeholders})")


def chunked(values: list[Any], size: int = 500) -> list[list[Any]]:
    """SQLite caps bound parameters per statement; split long IN lists."""
    size = max(1, int(size))
    return [values[i:i + size] for i in range(0, len(values), size)]
