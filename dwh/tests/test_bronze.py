import datetime as dt

import pandas as pd
import pytest
from sqlalchemy import select

from dwh.etl.bronze import coerce_raw_frame, load_bronze, read_source_files, robust_read_csv
from dwh.etl.contracts import RawContractError
from dwh.utils.config import DEFAULT_SOURCE_FILES


CSV_FILES = {
    "source_crm/cust_info.csv": (
        "cst_id,cst_key,cst_firstname,cst_lastname,cst_marital_status,cst_gndr,cst_create_date\n"
        "11000,AW00011000, Jon,Yang ,M,M,2025-10-06\n"
        "11001,AW00011001,Eugene,Huang,S,M,2025-10-06\n"
        ",AW00011002,,,,,\n"
    ),
    "source_crm/prd_info.csv": (
        "prd_id,prd_key,prd_nm,prd_cost,prd_line,prd_start_dt,prd_end_dt\n"
        "210,CO-RF-FR-R92B-58,HL Road Frame - Black- 58,,R ,2003-07-01,\n"
        "212,AC-HE-HL-U509-R,Sport-100 Helmet- Red,12,S ,2011-07-01,2007-12-28\n"
    ),
    "source_crm/sales_details.csv": (
        "sls_ord_num,sls_prd_key,sls_cust_id,sls_order_dt,sls_ship_dt,sls_due_dt,sls_sales,sls_quantity,sls_price\n"
        "SO43697,BK-R93R-62,21768,20101229,20110105,20110110,3578,1,3578\n"
        "SO43698,BK-M82S-44,28389,0,20110105,20110110,abc,1,\n"
    ),
    "source_erp/CUST_AZ12.csv": "CID,BDATE,GEN\nNASAW00011000,1971-10-06,Male\nAW00011001,1976-05-10, F\n",
    "source_erp/LOC_A101.csv": "CID,CNTRY\nAW-00011000,Australia\nAW-00011001,\n",
    "source_erp/PX_CAT_G1V2.csv": "ID,CAT,SUBCAT,MAINTENANCE\nAC_BR,Accessories,Bike Racks,Yes\n",
}


@pytest.fixture
def raw_dir(tmp_path):
    root = tmp_path / "raw"
    for rel, body in CSV_FILES.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(body, encoding="utf-8")
    return root


def _rows(engine, table):
    with engine.connect() as conn:
        return [dict(r) for r in conn.execute(select(table)).mappings()]


def test_load_bronze_lands_extracts_as_is(engine, registry, raw_dir):
    report = load_bronze(engine, registry, raw_dir=raw_dir, source_files=DEFAULT_SOURCE_FILES)

    assert report.succeeded
    assert [s.rows_written for s in report.steps] == [3, 2, 2, 2, 2, 1]

    cust = _rows(engine, registry.table("bronze", "crm_cust_info"))
    assert cust[0]["cst_firstname"] == " Jon"
    assert cust[0]["cst_lastname"] == "Yang "
    assert cust[0]["cst_create_date"] == dt.date(2025, 10, 6)
    assert cust[2]["cst_id"] is None
    assert cust[2]["cst_firstname"] is None

    prd = _rows(engine, registry.table("bronze", "crm_prd_info"))
    assert prd[0]["prd_cost"] is None
    assert prd[0]["prd_line"] == "R "
    assert prd[0]["prd_start_dt"] == dt.datetime(2003, 7, 1)

    sales = _rows(engine, registry.table("bronze", "crm_sales_details"))
    assert sales[1]["sls_order_dt"] == 0
    assert sales[1]["sls_sales"] is None
    assert sales[1]["sls_price"] is None

    demo = _rows(engine, registry.table("bronze", "erp_cust_az12"))
    assert demo[1]["gen"] == " F"


def test_load_bronze_truncates_before_insert(engine, registry, raw_dir):
    load_bronze(engine, registry, raw_dir=raw_dir, source_files=DEFAULT_SOURCE_FILES)
    report = load_bronze(engine, registry, raw_dir=raw_dir, source_files=DEFAULT_SOURCE_FILES)
    assert report.succeeded
    assert len(_rows(engine, registry.table("bronze", "crm_cust_info"))) == 3


def test_missing_column_raises_before_any_table_is_touched(engine, registry, raw_dir, seed_bronze, bronze_rows):
    seed_bronze(bronze_rows)
    (raw_dir / "source_erp/LOC_A101.csv").write_text("CID\nAW-00011000\n", encoding="utf-8")

    with pytest.raises(RawContractError) as excinfo:
        load_bronze(engine, registry, raw_dir=raw_dir, source_files=DEFAULT_SOURCE_FILES)

    assert [v.column_name for v in excinfo.value.violations] == ["cntry"]
    assert len(_rows(engine, registry.table("bronze", "crm_cust_info"))) == len(bronze_rows["crm_cust_info"])


def test_missing_file_raises(raw_dir):
    (raw_dir / "source_crm/prd_info.csv").unlink()
    with pytest.raises(FileNotFoundError):
        read_source_files(raw_dir, DEFAULT_SOURCE_FILES)


def test_robust_read_csv_falls_back_on_encoding(tmp_path):
    path = tmp_path / "latin.csv"
    path.write_bytes("id,cat\nX1,Caf\xe9\n".encode("latin-1"))
    df = robust_read_csv(path)
    assert df.loc[0, "cat"] == "Café"


def test_coerce_raw_frame_matches_headers_case_insensitively():
    df = pd.DataFrame({" Id ": ["AC_BR"], "CAT": ["Accessories"], "SubCat": ["Bike Racks"], "maintenance": [None]})
    records = coerce_raw_frame(df, "erp_px_cat_g1v2")
    assert records == [{"id": "AC_BR", "cat": "Accessories", "subcat": "Bike Racks", "maintenance": None}]
