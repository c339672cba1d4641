import datetime as dt

import pytest
from sqlalchemy import create_engine

from dwh.etl.tables import TableRegistry


AS_OF = dt.date(2025, 1, 1)


def _cust(cst_id, key, first, last, marital, gndr, created):
    return {
        "cst_id": cst_id,
        "cst_key": key,
        "cst_firstname": first,
        "cst_lastname": last,
        "cst_marital_status": marital,
        "cst_gndr": gndr,
        "cst_create_date": created,
    }


def _prd(prd_id, key, name, cost, line, start):
    return {
        "prd_id": prd_id,
        "prd_key": key,
        "prd_nm": name,
        "prd_cost": cost,
        "prd_line": line,
        "prd_start_dt": start,
        "prd_end_dt": None,
    }


def _sale(order, prd_key, cust_id, order_dt, ship_dt, due_dt, sales, qty, price):
    return {
        "sls_ord_num": order,
        "sls_prd_key": prd_key,
        "sls_cust_id": cust_id,
        "sls_order_dt": order_dt,
        "sls_ship_dt": ship_dt,
        "sls_due_dt": due_dt,
        "sls_sales": sales,
        "sls_quantity": qty,
        "sls_price": price,
    }


def sample_bronze_rows():
    return {
        "crm_cust_info": [
            _cust(1, "AW00000001", " Jon ", "Yang ", "m", "M", dt.date(2025, 10, 6)),
            _cust(2, "AW00000002", "Eugene", "Huang", "S", " f", dt.date(2025, 10, 6)),
            _cust(3, "AW00000003", "Ruben", "Torres", None, None, dt.date(2025, 10, 6)),
            _cust(7, "AW00000007", "Old", "Row", "S", "M", dt.date(2024, 1, 1)),
            _cust(7, "AW00000007", "New", "Row", "M", "M", dt.date(2024, 6, 1)),
            _cust(None, "AW_NO_ID", "No", "Id", "S", "F", dt.date(2024, 6, 1)),
        ],
        "crm_prd_info": [
            _prd(210, "CO-RF-FR-R92B-58", "HL Road Frame - Black- 58", None, "R ", dt.datetime(2003, 7, 1)),
            _prd(211, "CO-RF-FR-R92R-58", "HL Road Frame - Red- 58", None, "R ", dt.datetime(2003, 7, 1)),
            _prd(212, "AC-HE-HL-U509-R", "Sport-100 Helmet- Red", 12, "S ", dt.datetime(2011, 7, 1)),
            _prd(213, "AC-HE-HL-U509-R", "Sport-100 Helmet- Red", 14, "S ", dt.datetime(2012, 7, 1)),
            _prd(214, "AC-HE-HL-U509-R", "Sport-100 Helmet- Red", 13, "S ", dt.datetime(2013, 7, 1)),
        ],
        "crm_sales_details": [
            _sale("SO43697", "FR-R92R-58", 1, 20101229, 20110105, 20110110, 3578, 1, 3578),
            _sale("SO43698", "HL-U509-R", 2, 20101229, 20110105, 20110110, None, 2, 35),
            _sale("SO43699", "HL-U509-R", 7, 0, 20110105, 20110110, 50, 2, None),
            _sale("SO43700", "UNKNOWN-KEY", 999, 201306, 20130615, 20130620, 10, 1, -10),
        ],
        "erp_cust_az12": [
            {"cid": "NASAW00000001", "bdate": dt.date(1971, 10, 6), "gen": "Male"},
            {"cid": "AW00000002", "bdate": dt.date(1976, 5, 10), "gen": " F"},
            {"cid": "AW00000003", "bdate": dt.date(1971, 2, 9), "gen": "M"},
            {"cid": "NASAW00000007", "bdate": dt.date(2999, 1, 1), "gen": ""},
        ],
        "erp_loc_a101": [
            {"cid": "AW-00000001", "cntry": "Australia"},
            {"cid": "AW-00000002", "cntry": "US"},
            {"cid": "AW-00000003", "cntry": "DE "},
            {"cid": "AW-00000007", "cntry": ""},
        ],
        "erp_px_cat_g1v2": [
            {"id": "CO_RF", "cat": "Components", "subcat": "Road Frames", "maintenance": "No"},
            {"id": "AC_HE", "cat": "Accessories", "subcat": "Helmets", "maintenance": "Yes"},
        ],
    }


@pytest.fixture
def bronze_rows():
    return sample_bronze_rows()


@pytest.fixture
def engine(tmp_path):
    eng = create_engine(f"sqlite:///{tmp_path / 'warehouse.db'}")
    yield eng
    eng.dispose()


@pytest.fixture
def registry(engine):
    reg = TableRegistry.for_engine(engine)
    reg.create_tables(engine, ["bronze", "silver"])
    return reg


@pytest.fixture
def seed_bronze(engine, registry):
    """Return a callable that replaces the raw tables' contents with the given rows."""

    def _seed(rows):
        with engine.begin() as conn:
            for entity, records in rows.items():
                table = registry.table("bronze", entity)
                conn.execute(table.delete())
                if records:
                    conn.execute(table.insert(), records)

    return _seed


@pytest.fixture
def seeded(engine, registry, seed_bronze, bronze_rows):
    seed_bronze(bronze_rows)
    return engine, registry
