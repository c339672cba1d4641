import datetime as dt

import pandas as pd
import pytest
from sqlalchemy import func, select

from dwh.etl import silver as silver_mod
from dwh.etl.silver import load_silver
from dwh.etl.tables import ENTITIES

AS_OF = dt.date(2025, 1, 1)


def _count(engine, table):
    with engine.connect() as conn:
        return conn.execute(select(func.count()).select_from(table)).scalar()


def _snapshot(engine, registry, entity):
    table = registry.table("silver", entity)
    with engine.connect() as conn:
        df = pd.read_sql(select(table), conn)
    return df.drop(columns=["dwh_create_date"]).sort_values(list(df.columns[:2])).reset_index(drop=True)


def test_load_silver_end_to_end(seeded):
    engine, registry = seeded
    report = load_silver(engine, registry, as_of=AS_OF)

    assert report.succeeded
    assert report.error is None
    assert [s.table for s in report.steps] == [f"silver_{e}" for e in ENTITIES]
    counts = {s.table: (s.rows_read, s.rows_written) for s in report.steps}
    assert counts["silver_crm_cust_info"] == (6, 4)
    assert counts["silver_crm_prd_info"] == (5, 5)
    assert all(s.duration_seconds >= 0 for s in report.steps)

    cust = registry.table("silver", "crm_cust_info")
    with engine.connect() as conn:
        rows = conn.execute(select(cust).order_by(cust.c.cst_id)).mappings().all()
    assert [r["cst_id"] for r in rows] == [1, 2, 3, 7]
    assert rows[3]["cst_create_date"] == dt.date(2024, 6, 1)
    stamps = {r["dwh_create_date"] for r in rows}
    assert len(stamps) == 1 and None not in stamps


def test_load_silver_is_idempotent(seeded):
    engine, registry = seeded
    assert load_silver(engine, registry, as_of=AS_OF).succeeded
    first = {e: _snapshot(engine, registry, e) for e in ENTITIES}
    assert load_silver(engine, registry, as_of=AS_OF).succeeded
    for entity in ENTITIES:
        pd.testing.assert_frame_equal(first[entity], _snapshot(engine, registry, entity))


def test_load_silver_stops_at_first_failure(seeded):
    engine, registry = seeded
    registry.table("silver", "crm_sales_details").drop(engine)

    report = load_silver(engine, registry, as_of=AS_OF)

    assert report.status == "failed"
    assert not report.succeeded
    assert report.error is not None
    assert report.error.table == "silver_crm_sales_details"
    assert report.error.severity == "ERROR"
    assert report.error.message
    assert report.error.code
    # tables before the failure committed; tables after it were never touched
    assert [s.table for s in report.steps] == ["silver_crm_cust_info", "silver_crm_prd_info"]
    assert _count(engine, registry.table("silver", "crm_cust_info")) == 4
    assert _count(engine, registry.table("silver", "erp_loc_a101")) == 0
    lines = report.duration_log()
    assert any(line.startswith("Error Message:") for line in lines)
    assert lines[-1].startswith("Total Load Duration:")


def test_atomic_batch_keeps_previous_snapshot(seeded, seed_bronze, bronze_rows):
    engine, registry = seeded
    assert load_silver(engine, registry, as_of=AS_OF).succeeded

    seed_bronze({"crm_cust_info": bronze_rows["crm_cust_info"][:1]})
    registry.table("silver", "crm_sales_details").drop(engine)

    report = load_silver(engine, registry, atomic=True, as_of=AS_OF)

    assert report.status == "failed"
    assert report.steps == []
    assert _count(engine, registry.table("silver", "crm_cust_info")) == 4


def test_per_table_commit_keeps_tables_loaded_before_failure(seeded, seed_bronze, bronze_rows):
    engine, registry = seeded
    assert load_silver(engine, registry, as_of=AS_OF).succeeded

    seed_bronze({"crm_cust_info": bronze_rows["crm_cust_info"][:1]})
    registry.table("silver", "crm_sales_details").drop(engine)

    report = load_silver(engine, registry, atomic=False, as_of=AS_OF)

    assert report.status == "failed"
    assert _count(engine, registry.table("silver", "crm_cust_info")) == 1


def test_cleansing_error_is_reported_not_raised(seeded, monkeypatch):
    engine, registry = seeded
    real = silver_mod.clean_entity

    def failing(entity, raw, *, as_of=None):
        if entity == "crm_prd_info":
            raise RuntimeError("conversion failed")
        return real(entity, raw, as_of=as_of)

    monkeypatch.setattr(silver_mod, "clean_entity", failing)
    events = []
    report = load_silver(engine, registry, as_of=AS_OF, log=events.append)

    assert report.status == "failed"
    assert report.error.message == "conversion failed"
    assert report.error.code == "RuntimeError"
    assert report.error.severity == "CRITICAL"
    assert [e["event"] for e in events] == ["table_loaded", "load_failed"]


def test_empty_raw_tables_load_empty(engine, registry):
    report = load_silver(engine, registry, as_of=AS_OF)
    assert report.succeeded
    assert all(s.rows_written == 0 for s in report.steps)


def test_unknown_entity_rejected(engine, registry):
    with pytest.raises(ValueError):
        load_silver(engine, registry, entities=["crm_cust_info", "erp_unknown"])
