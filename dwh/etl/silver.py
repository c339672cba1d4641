"""Standardized (silver) layer loader.

Re-derives all six standardized tables from the raw layer on every run:
read the full raw snapshot, apply the entity's cleansing rule, truncate the
standardized table, insert.  Every written row is stamped with the batch's
``dwh_create_date``.
"""

from __future__ import annotations

import datetime as dt
from typing import Callable, Dict, Iterable, Optional

from dwh.etl.cleaners import clean_entity, records_to_frame
from dwh.etl.loader import LoadReport, LoadStep, read_records, run_reload
from dwh.etl.tables import ENTITIES, TableRegistry
from dwh.utils.logger import get_logger

logger = get_logger(__name__)


def _silver_step(registry: TableRegistry, entity: str, batch_ts: dt.datetime, as_of: Optional[dt.date]) -> LoadStep:
    source = registry.table("bronze", entity)
    target = registry.table("silver", entity)

    def produce(conn):
        raw = read_records(conn, source)
        cleaned = clean_entity(entity, records_to_frame(raw, entity), as_of=as_of)
        records = [{**row, "dwh_create_date": batch_ts} for row in cleaned.to_dicts()]
        return len(raw), records

    return LoadStep(target=target, produce=produce)


def load_silver(
    engine,
    registry: Optional[TableRegistry] = None,
    *,
    atomic: bool = False,
    as_of: Optional[dt.date] = None,
    entities: Iterable[str] = ENTITIES,
    log: Optional[Callable[[Dict[str, object]], None]] = None,
) -> LoadReport:
    """Truncate and reload the standardized tables from the raw layer.

    Args:
        engine: SQLAlchemy engine of the warehouse.
        registry: Table registry; derived from the engine dialect when omitted.
        atomic: Load all tables in one transaction instead of one per table.
        as_of: "Today" for the future-birthdate rule (defaults to the current date).
        entities: Subset/ordering of tables to reload.
        log: Optional run-context event sink.

    Returns:
        LoadReport with per-table row counts and durations, or the first error.
    """
    registry = registry or TableRegistry.for_engine(engine)
    entities = list(entities)
    unknown = [e for e in entities if e not in ENTITIES]
    if unknown:
        raise ValueError(f"Unknown entities: {unknown}")
    batch_ts = dt.datetime.now().replace(microsecond=0)
    steps = [_silver_step(registry, entity, batch_ts, as_of) for entity in entities]
    return run_reload(engine, "silver", steps, atomic=atomic, log=log)
