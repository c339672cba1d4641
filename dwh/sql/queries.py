from __future__ import annotations

"""Centralized SQL templates and helpers.

All dynamic identifiers are validated via `ensure_allowed_identifier` or
`validate_identifier` to mitigate injection risks.
"""

from typing import Optional

from dwh.utils.sql import ensure_allowed_identifier, validate_identifier


def _ident(name: str, allowlist: Optional[set[str]]) -> str:
    if allowlist:
        return ensure_allowed_identifier(name, allowlist)
    validate_identifier(name)
    return str(name).strip()


def _is_mssql(dialect: str | None) -> bool:
    dname = (dialect or "").lower()
    return dname.startswith("mssql") or dname == "pyodbc"


def select_all(view_or_table: str, *, allowlist: Optional[set[str]] = None) -> str:
    return f"SELECT * FROM {_ident(view_or_table, allowlist)}"


def truncate_table(table: str, dialect: str, *, allowlist: Optional[set[str]] = None) -> str:
    ident = _ident(table, allowlist)
    if _is_mssql(dialect):
        return f"TRUNCATE TABLE {ident}"
    # SQLite has no TRUNCATE; an unqualified DELETE takes the truncate fast path
    return f"DELETE FROM {ident}"


def drop_view(view: str, *, allowlist: Optional[set[str]] = None) -> str:
    return f"DROP VIEW IF EXISTS {_ident(view, allowlist)}"


def count_rows(table: str, *, allowlist: Optional[set[str]] = None) -> str:
    return f"SELECT COUNT(*) AS row_count FROM {_ident(table, allowlist)}"
