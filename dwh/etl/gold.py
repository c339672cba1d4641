"""Star-schema projection (gold layer) over the standardized tables.

The gold layer stores nothing but views: ``dim_customers``, ``dim_products`` and
``fact_sales`` are recomputed on every query.  Surrogate keys come in two
flavours:

* ``positional``: ``ROW_NUMBER()`` over the dimension's natural ordering.  Keys
  are unique within one query but shift whenever standardized rows are added,
  removed or reordered.
* ``stable``: keys are read from append-only key maps maintained by
  :func:`dwh.etl.keys.sync_key_maps`; a business key keeps its surrogate key
  across reloads and new business keys get new numbers.
"""

from __future__ import annotations

from typing import Dict, Optional

import pandas as pd
from sqlalchemy import text

from dwh.etl.keys import sync_key_maps
from dwh.etl.tables import TableRegistry, VIEWS
from dwh.sql.queries import drop_view, select_all
from dwh.utils.logger import get_logger

logger = get_logger(__name__)

SURROGATE_KEY_MODES = ("positional", "stable")

_DATE_COLUMNS: Dict[str, list[str]] = {
    "dim_customers": ["birthdate", "create_date"],
    "dim_products": ["start_date"],
    "fact_sales": ["order_date", "shipping_date", "due_date"],
}


def _check_mode(surrogate_keys: str) -> None:
    if surrogate_keys not in SURROGATE_KEY_MODES:
        raise ValueError(f"surrogate_keys must be one of {SURROGATE_KEY_MODES}, got {surrogate_keys!r}")


def dim_customers_sql(registry: TableRegistry, surrogate_keys: str = "positional") -> str:
    _check_mode(surrogate_keys)
    ci = registry.qualified("silver", "crm_cust_info")
    ca = registry.qualified("silver", "erp_cust_az12")
    la = registry.qualified("silver", "erp_loc_a101")
    if surrogate_keys == "stable":
        key_expr = "km.customer_key"
        key_join = f"\nLEFT JOIN {registry.qualified('gold', 'customer_key_map')} AS km\n    ON ci.cst_id = km.customer_id"
    else:
        key_expr = "ROW_NUMBER() OVER (ORDER BY ci.cst_id)"
        key_join = ""
    return f"""
SELECT
    {key_expr} AS customer_key,
    ci.cst_id AS customer_id,
    ci.cst_key AS customer_number,
    ci.cst_firstname AS first_name,
    ci.cst_lastname AS last_name,
    la.cntry AS country,
    ci.cst_marital_status AS marital_status,
    CASE
        WHEN ci.cst_gndr <> 'n/a' THEN ci.cst_gndr
        ELSE COALESCE(ca.gen, 'n/a')
    END AS gender,
    ca.bdate AS birthdate,
    ci.cst_create_date AS create_date
FROM {ci} AS ci
LEFT JOIN {ca} AS ca
    ON ci.cst_key = ca.cid
LEFT JOIN {la} AS la
    ON ci.cst_key = la.cid{key_join}
""".strip()


def dim_products_sql(registry: TableRegistry, surrogate_keys: str = "positional") -> str:
    _check_mode(surrogate_keys)
    pn = registry.qualified("silver", "crm_prd_info")
    pc = registry.qualified("silver", "erp_px_cat_g1v2")
    if surrogate_keys == "stable":
        key_expr = "km.product_key"
        key_join = f"\nLEFT JOIN {registry.qualified('gold', 'product_key_map')} AS km\n    ON pn.prd_key = km.product_number"
    else:
        key_expr = "ROW_NUMBER() OVER (ORDER BY pn.prd_start_dt, pn.prd_key)"
        key_join = ""
    return f"""
SELECT
    {key_expr} AS product_key,
    pn.prd_id AS product_id,
    pn.prd_key AS product_number,
    pn.prd_nm AS product_name,
    pn.cat_id AS category_id,
    pc.cat AS category,
    pc.subcat AS subcategory,
    pc.maintenance AS maintenance,
    pn.prd_cost AS cost,
    pn.prd_line AS product_line,
    pn.prd_start_dt AS start_date
FROM {pn} AS pn
LEFT JOIN {pc} AS pc
    ON pn.cat_id = pc.id{key_join}
WHERE pn.prd_end_dt IS NULL
""".strip()


def fact_sales_sql(registry: TableRegistry) -> str:
    sd = registry.qualified("silver", "crm_sales_details")
    pr = registry.qualified("gold", "dim_products")
    cu = registry.qualified("gold", "dim_customers")
    return f"""
SELECT
    sd.sls_ord_num AS order_number,
    pr.product_key AS product_key,
    cu.customer_key AS customer_key,
    sd.sls_order_dt AS order_date,
    sd.sls_ship_dt AS shipping_date,
    sd.sls_due_dt AS due_date,
    sd.sls_sales AS sales_amount,
    sd.sls_quantity AS quantity,
    sd.sls_price AS price
FROM {sd} AS sd
LEFT JOIN {pr} AS pr
    ON sd.sls_prd_key = pr.product_number
LEFT JOIN {cu} AS cu
    ON sd.sls_cust_id = cu.customer_id
""".strip()


def view_definitions(registry: TableRegistry, surrogate_keys: str = "positional") -> Dict[str, str]:
    return {
        "dim_customers": dim_customers_sql(registry, surrogate_keys),
        "dim_products": dim_products_sql(registry, surrogate_keys),
        "fact_sales": fact_sales_sql(registry),
    }


def create_gold_views(engine, registry: Optional[TableRegistry] = None, surrogate_keys: str = "positional") -> Dict[str, str]:
    """(Re)create the three star-schema views; returns view name -> qualified name.

    In ``stable`` mode the key maps are created if needed and synced first.
    """
    registry = registry or TableRegistry.for_engine(engine)
    _check_mode(surrogate_keys)
    if surrogate_keys == "stable":
        registry.create_tables(engine, ["gold"])
        sync_key_maps(engine, registry)

    allow = registry.allowed_identifiers()
    definitions = view_definitions(registry, surrogate_keys)
    created: Dict[str, str] = {}
    with engine.begin() as conn:
        for view in reversed(VIEWS):
            conn.execute(text(drop_view(registry.qualified("gold", view), allowlist=allow)))
        for view in VIEWS:
            qualified = registry.qualified("gold", view)
            conn.execute(text(f"CREATE VIEW {qualified} AS\n{definitions[view]}"))
            created[view] = qualified
            logger.info("Created view %s (%s keys)", qualified, surrogate_keys)
    return created


def read_view(engine, registry: TableRegistry, view: str) -> pd.DataFrame:
    if view not in VIEWS:
        raise ValueError(f"Unknown gold view {view!r}; expected one of {VIEWS}")
    qualified = registry.qualified("gold", view)
    sql = select_all(qualified, allowlist=registry.allowed_identifiers())
    with engine.connect() as conn:
        return pd.read_sql(text(sql), conn, parse_dates=_DATE_COLUMNS[view])


def read_dim_customers(engine, registry: Optional[TableRegistry] = None) -> pd.DataFrame:
    return read_view(engine, registry or TableRegistry.for_engine(engine), "dim_customers")


def read_dim_products(engine, registry: Optional[TableRegistry] = None) -> pd.DataFrame:
    return read_view(engine, registry or TableRegistry.for_engine(engine), "dim_products")


def read_fact_sales(engine, registry: Optional[TableRegistry] = None) -> pd.DataFrame:
    return read_view(engine, registry or TableRegistry.for_engine(engine), "fact_sales")
