"""Full-reload machinery shared by the raw and standardized layer loaders.

A reload is a fixed, linear sequence of steps, one per table:
``truncate(table) -> insert(derived rows)``.  The first failing step stops the
batch and is reported as a :class:`LoadError`; later tables are not touched.

By default each table commits on its own, so tables loaded before a failure
keep their new contents.  With ``atomic=True`` the whole batch shares one
transaction and a failure leaves every table as it was before the run.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import pandas as pd
from sqlalchemy import Table, select, text
from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from dwh.sql.queries import truncate_table
from dwh.utils.logger import get_logger

logger = get_logger(__name__)

Records = List[Dict[str, Any]]
# A step producer reads whatever it needs through the open connection and
# returns (rows_read, rows_to_write).
Producer = Callable[[Any], Tuple[int, Records]]


@dataclass
class LoadStep:
    target: Table
    produce: Producer


@dataclass
class StepResult:
    table: str
    rows_read: int
    rows_written: int
    duration_seconds: float


@dataclass
class LoadError:
    message: str
    code: str
    severity: str
    table: Optional[str] = None

    @classmethod
    def from_exception(cls, exc: BaseException, table: Optional[str] = None) -> "LoadError":
        orig = getattr(exc, "orig", None)
        code = None
        if orig is not None:
            code = getattr(orig, "sqlite_errorname", None)
            if code is None and getattr(orig, "args", None):
                first = orig.args[0]
                # pyodbc puts the SQLSTATE first
                if isinstance(first, str) and len(first) <= 8:
                    code = first
        if code is None:
            code = getattr(exc, "code", None) or type(exc).__name__
        severity = "ERROR" if isinstance(exc, (DBAPIError, SQLAlchemyError)) else "CRITICAL"
        message = str(orig) if orig is not None else str(exc)
        return cls(message=message, code=str(code), severity=severity, table=table)


@dataclass
class LoadReport:
    layer: str
    status: str = "running"
    steps: List[StepResult] = field(default_factory=list)
    error: Optional[LoadError] = None
    started_at: datetime = field(default_factory=datetime.now)
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"

    def to_frame(self) -> pd.DataFrame:
        if not self.steps:
            return pd.DataFrame(columns=["table", "rows_read", "rows_written", "duration_seconds"])
        return pd.DataFrame([s.__dict__ for s in self.steps])

    def duration_log(self) -> List[str]:
        lines = [f"Loading {self.layer} layer: {self.status}"]
        for step in self.steps:
            lines.append(
                f">> {step.table}: {step.rows_written} rows written "
                f"({step.rows_read} read) in {step.duration_seconds:.3f} seconds"
            )
        if self.error is not None:
            lines.append(f"Error Message: {self.error.message}")
            lines.append(f"Error Code: {self.error.code}")
            lines.append(f"Error Severity: {self.error.severity}")
        lines.append(f"Total Load Duration: {self.duration_seconds:.3f} seconds")
        return lines


def read_records(conn, table: Table) -> Records:
    """Read every row of ``table`` as plain dicts (SQLAlchemy type processing applied)."""
    return [dict(row._mapping) for row in conn.execute(select(table))]


def truncate_and_insert(conn, table: Table, records: Records) -> int:
    dialect = conn.dialect.name
    logger.info(">> Truncating Table: %s", table.fullname)
    conn.execute(text(truncate_table(table.fullname, dialect)))
    logger.info(">> Inserting Data Into: %s", table.fullname)
    if records:
        conn.execute(table.insert(), records)
    return len(records)


def _run_step(conn, step: LoadStep) -> StepResult:
    t0 = time.perf_counter()
    rows_read, records = step.produce(conn)
    written = truncate_and_insert(conn, step.target, records)
    elapsed = time.perf_counter() - t0
    logger.info(">> Load Duration: %.3f seconds", elapsed)
    return StepResult(table=step.target.fullname, rows_read=rows_read, rows_written=written, duration_seconds=elapsed)


def run_reload(
    engine,
    layer: str,
    steps: Sequence[LoadStep],
    *,
    atomic: bool = False,
    log: Optional[Callable[[Dict[str, object]], None]] = None,
) -> LoadReport:
    """Run ``steps`` in order as one full-reload batch and report what happened."""
    report = LoadReport(layer=layer)
    batch_start = time.perf_counter()
    logger.info("================================================")
    logger.info("Loading %s Layer", layer.title())
    logger.info("================================================")

    def _emit(event: Dict[str, object]) -> None:
        if log is not None:
            log(event)

    current: Optional[LoadStep] = None
    try:
        if atomic:
            with engine.begin() as conn:
                for step in steps:
                    current = step
                    result = _run_step(conn, step)
                    report.steps.append(result)
                    _emit({"level": "INFO", "event": "table_loaded", **result.__dict__})
        else:
            for step in steps:
                current = step
                with engine.begin() as conn:
                    result = _run_step(conn, step)
                report.steps.append(result)
                _emit({"level": "INFO", "event": "table_loaded", **result.__dict__})
    except Exception as exc:
        report.error = LoadError.from_exception(exc, table=current.target.fullname if current else None)
        report.status = "failed"
        report.duration_seconds = time.perf_counter() - batch_start
        logger.error("==========================================")
        logger.error("ERROR OCCURRED DURING LOADING %s LAYER", layer.upper())
        logger.error("Error Message: %s", report.error.message)
        logger.error("Error Code: %s", report.error.code)
        logger.error("Error Severity: %s", report.error.severity)
        logger.error("==========================================")
        _emit({"level": "ERROR", "event": "load_failed", **report.error.__dict__})
        if atomic:
            # The shared transaction was rolled back; nothing from this batch persisted.
            report.steps.clear()
        return report

    report.status = "succeeded"
    report.duration_seconds = time.perf_counter() - batch_start
    logger.info("==========================================")
    logger.info("Loading %s Layer is Completed", layer.title())
    logger.info("   - Total Load Duration: %.3f seconds", report.duration_seconds)
    logger.info("==========================================")
    return report
