"""Raw (bronze) layer loader: land the CRM/ERP CSV extracts as-is.

Values are only coerced to the raw column types (integers, dates); text keeps
its whitespace and casing so the standardized layer sees exactly what the
source systems delivered.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

import pandas as pd
from sqlalchemy import Date, DateTime, Integer

from dwh.etl.contracts import RawContractError, check_required_columns, check_unknown_columns
from dwh.etl.loader import LoadReport, LoadStep, Records, run_reload
from dwh.etl.parse import parse_date, parse_datetime, parse_int
from dwh.etl.tables import BRONZE_COLUMNS, ENTITIES, TableRegistry
from dwh.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_ENCODINGS = ("utf-8", "latin-1", "cp1252", "iso-8859-1")


def robust_read_csv(path: Path, encodings: Sequence[str] = DEFAULT_ENCODINGS) -> pd.DataFrame:
    """Read a CSV as text columns, trying each encoding in turn; empty cells become NaN."""
    last_err: Exception | None = None
    for enc in encodings:
        try:
            return pd.read_csv(path, encoding=enc, dtype=str, keep_default_na=False, na_values=[""])
        except UnicodeDecodeError as e:
            last_err = e
            continue
    raise ValueError(f"Could not read CSV {path}: {last_err}")


def _coercer(type_) -> Callable[[Any], Any]:
    if isinstance(type_, Integer):
        return parse_int
    if isinstance(type_, DateTime):
        return parse_datetime
    if isinstance(type_, Date):
        return parse_date
    return lambda v: v


def coerce_raw_frame(df: pd.DataFrame, entity: str) -> Records:
    """Map CSV headers onto the raw column set and coerce values to the raw types.

    Header matching is case-insensitive and ignores surrounding whitespace.
    Raises RawContractError when a raw column is missing from the extract.
    """
    columns = BRONZE_COLUMNS[entity]
    required = [name for name, _ in columns]
    violations = check_required_columns(df, entity, required)
    if violations:
        raise RawContractError(violations)
    for extra in check_unknown_columns(df, entity, required):
        logger.warning("Ignoring column: %s", extra.details)

    by_norm = {str(c).strip().lower(): c for c in df.columns}
    coercers = {name: _coercer(type_) for name, type_ in columns}
    frame = df[[by_norm[name] for name in required]].copy()
    frame.columns = required
    frame = frame.astype(object).where(frame.notna(), None)

    records: Records = []
    for row in frame.itertuples(index=False, name=None):
        records.append({name: (None if value is None else coercers[name](value)) for name, value in zip(required, row)})
    return records


def read_source_files(raw_dir: Path, source_files: Mapping[str, str], encodings: Sequence[str] = DEFAULT_ENCODINGS) -> Dict[str, Records]:
    """Read and type every configured extract before any table is touched."""
    raw_dir = Path(raw_dir)
    out: Dict[str, Records] = {}
    for entity in ENTITIES:
        rel = source_files.get(entity)
        if not rel:
            raise ValueError(f"No source file configured for {entity}")
        path = raw_dir / rel
        if not path.exists():
            raise FileNotFoundError(f"Source extract not found for {entity}: {path}")
        df = robust_read_csv(path, encodings)
        out[entity] = coerce_raw_frame(df, entity)
        logger.info("Read %d rows for %s from %s", len(out[entity]), entity, path)
    return out


def load_bronze(
    engine,
    registry: Optional[TableRegistry] = None,
    *,
    raw_dir: Path,
    source_files: Mapping[str, str],
    encodings: Sequence[str] = DEFAULT_ENCODINGS,
    atomic: bool = False,
    log: Optional[Callable[[Dict[str, object]], None]] = None,
) -> LoadReport:
    """Truncate and reload every raw table from its CSV extract."""
    registry = registry or TableRegistry.for_engine(engine)
    extracts = read_source_files(raw_dir, source_files, encodings)

    steps: List[LoadStep] = []
    for entity in ENTITIES:
        records = extracts[entity]
        steps.append(
            LoadStep(
                target=registry.table("bronze", entity),
                produce=lambda conn, records=records: (len(records), records),
            )
        )
    return run_reload(engine, "bronze", steps, atomic=atomic, log=log)
