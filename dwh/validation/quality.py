"""Quality check suite over the standardized and star-schema layers.

Each check is a read-only query returning the offending rows; an empty frame
means the check passed.  ``domain`` checks instead return the distinct values
of a standardized column for inspection and never fail a run.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import pandas as pd
from sqlalchemy import text

from dwh.etl.tables import TableRegistry
from dwh.utils.logger import get_logger

logger = get_logger(__name__)

CHECK_KINDS = ("assert", "domain")

CheckFn = Callable[..., pd.DataFrame]


@dataclass(frozen=True)
class QualityCheck:
    name: str
    layer: str
    table: str
    kind: str
    description: str
    func: CheckFn

    def __post_init__(self) -> None:
        if self.kind not in CHECK_KINDS:
            raise ValueError(f"kind must be one of {CHECK_KINDS}, got {self.kind!r}")

    def run(self, engine, registry: TableRegistry, **params) -> pd.DataFrame:
        return self.func(engine, registry, **params)


def _query(engine, sql: str, params: Optional[Dict[str, object]] = None) -> pd.DataFrame:
    with engine.connect() as conn:
        return pd.read_sql(text(sql), conn, params=params or {})


def _t(registry: TableRegistry, layer: str, name: str) -> str:
    return registry.qualified(layer, name)


# ---------------------------------------------------------------- silver: customers
def customer_id_null_or_duplicate(engine, registry: TableRegistry, **_) -> pd.DataFrame:
    return _query(
        engine,
        f"""
        SELECT cst_id, COUNT(*) AS row_count
        FROM {_t(registry, 'silver', 'crm_cust_info')}
        GROUP BY cst_id
        HAVING COUNT(*) > 1 OR cst_id IS NULL
        """,
    )


def customer_key_whitespace(engine, registry: TableRegistry, **_) -> pd.DataFrame:
    return _query(
        engine,
        f"SELECT cst_key FROM {_t(registry, 'silver', 'crm_cust_info')} WHERE cst_key <> TRIM(cst_key)",
    )


def marital_status_domain(engine, registry: TableRegistry, **_) -> pd.DataFrame:
    return _query(
        engine,
        f"SELECT DISTINCT cst_marital_status FROM {_t(registry, 'silver', 'crm_cust_info')} ORDER BY cst_marital_status",
    )


# ----------------------------------------------------------------- silver: products
def product_id_null_or_duplicate(engine, registry: TableRegistry, **_) -> pd.DataFrame:
    return _query(
        engine,
        f"""
        SELECT prd_id, COUNT(*) AS row_count
        FROM {_t(registry, 'silver', 'crm_prd_info')}
        GROUP BY prd_id
        HAVING COUNT(*) > 1 OR prd_id IS NULL
        """,
    )


def product_name_whitespace(engine, registry: TableRegistry, **_) -> pd.DataFrame:
    return _query(
        engine,
        f"SELECT prd_nm FROM {_t(registry, 'silver', 'crm_prd_info')} WHERE prd_nm <> TRIM(prd_nm)",
    )


def product_cost_null_or_negative(engine, registry: TableRegistry, **_) -> pd.DataFrame:
    return _query(
        engine,
        f"SELECT prd_id, prd_key, prd_cost FROM {_t(registry, 'silver', 'crm_prd_info')} WHERE prd_cost < 0 OR prd_cost IS NULL",
    )


def product_line_domain(engine, registry: TableRegistry, **_) -> pd.DataFrame:
    return _query(
        engine,
        f"SELECT DISTINCT prd_line FROM {_t(registry, 'silver', 'crm_prd_info')} ORDER BY prd_line",
    )


def product_end_before_start(engine, registry: TableRegistry, **_) -> pd.DataFrame:
    return _query(
        engine,
        f"SELECT * FROM {_t(registry, 'silver', 'crm_prd_info')} WHERE prd_end_dt < prd_start_dt",
    )


# -------------------------------------------------------------------- silver: sales
def raw_due_date_out_of_range(
    engine, registry: TableRegistry, *, raw_date_min: int = 19000101, raw_date_max: int = 20500101, **_
) -> pd.DataFrame:
    # Values inside [min, max] are all eight digits long.
    return _query(
        engine,
        f"""
        SELECT sls_ord_num, sls_due_dt
        FROM {_t(registry, 'bronze', 'crm_sales_details')}
        WHERE sls_due_dt <= 0
           OR sls_due_dt > :raw_date_max
           OR sls_due_dt < :raw_date_min
        """,
        {"raw_date_min": int(raw_date_min), "raw_date_max": int(raw_date_max)},
    )


def sales_order_after_ship_or_due(engine, registry: TableRegistry, **_) -> pd.DataFrame:
    return _query(
        engine,
        f"""
        SELECT *
        FROM {_t(registry, 'silver', 'crm_sales_details')}
        WHERE sls_order_dt > sls_ship_dt
           OR sls_order_dt > sls_due_dt
        """,
    )


def sales_arithmetic(engine, registry: TableRegistry, **_) -> pd.DataFrame:
    return _query(
        engine,
        f"""
        SELECT DISTINCT sls_sales, sls_quantity, sls_price
        FROM {_t(registry, 'silver', 'crm_sales_details')}
        WHERE sls_sales <> sls_quantity * sls_price
           OR sls_sales IS NULL
           OR sls_quantity IS NULL
           OR sls_price IS NULL
           OR sls_sales <= 0
           OR sls_quantity <= 0
           OR sls_price <= 0
        ORDER BY sls_sales, sls_quantity, sls_price
        """,
    )


# -------------------------------------------------------------------- silver: ERP
def birthdate_out_of_range(
    engine,
    registry: TableRegistry,
    *,
    birthdate_min: str = "1924-01-01",
    as_of: Optional[dt.date] = None,
    **_,
) -> pd.DataFrame:
    today = as_of or dt.date.today()
    return _query(
        engine,
        f"""
        SELECT DISTINCT bdate
        FROM {_t(registry, 'silver', 'erp_cust_az12')}
        WHERE bdate < :bdate_min OR bdate > :today
        ORDER BY bdate
        """,
        {"bdate_min": str(birthdate_min), "today": today.isoformat()},
    )


def demographic_gender_domain(engine, registry: TableRegistry, **_) -> pd.DataFrame:
    return _query(engine, f"SELECT DISTINCT gen FROM {_t(registry, 'silver', 'erp_cust_az12')} ORDER BY gen")


def country_domain(engine, registry: TableRegistry, **_) -> pd.DataFrame:
    return _query(engine, f"SELECT DISTINCT cntry FROM {_t(registry, 'silver', 'erp_loc_a101')} ORDER BY cntry")


def category_whitespace(engine, registry: TableRegistry, **_) -> pd.DataFrame:
    return _query(
        engine,
        f"""
        SELECT *
        FROM {_t(registry, 'silver', 'erp_px_cat_g1v2')}
        WHERE cat <> TRIM(cat)
           OR subcat <> TRIM(subcat)
           OR maintenance <> TRIM(maintenance)
        """,
    )


def maintenance_domain(engine, registry: TableRegistry, **_) -> pd.DataFrame:
    return _query(
        engine,
        f"SELECT DISTINCT maintenance FROM {_t(registry, 'silver', 'erp_px_cat_g1v2')} ORDER BY maintenance",
    )


# ---------------------------------------------------------------------------- gold
def customer_key_unique(engine, registry: TableRegistry, **_) -> pd.DataFrame:
    return _query(
        engine,
        f"""
        SELECT customer_key, COUNT(*) AS duplicate_count
        FROM {_t(registry, 'gold', 'dim_customers')}
        GROUP BY customer_key
        HAVING COUNT(*) > 1
        """,
    )


def product_key_unique(engine, registry: TableRegistry, **_) -> pd.DataFrame:
    return _query(
        engine,
        f"""
        SELECT product_key, COUNT(*) AS duplicate_count
        FROM {_t(registry, 'gold', 'dim_products')}
        GROUP BY product_key
        HAVING COUNT(*) > 1
        """,
    )


def fact_referential_integrity(engine, registry: TableRegistry, **_) -> pd.DataFrame:
    return _query(
        engine,
        f"""
        SELECT f.*
        FROM {_t(registry, 'gold', 'fact_sales')} AS f
        LEFT JOIN {_t(registry, 'gold', 'dim_customers')} AS c
            ON c.customer_key = f.customer_key
        LEFT JOIN {_t(registry, 'gold', 'dim_products')} AS p
            ON p.product_key = f.product_key
        WHERE p.product_key IS NULL
           OR c.customer_key IS NULL
        """,
    )


CHECKS: Tuple[QualityCheck, ...] = (
    QualityCheck("customer_id_null_or_duplicate", "silver", "crm_cust_info", "assert",
                 "cst_id is present and unique", customer_id_null_or_duplicate),
    QualityCheck("customer_key_whitespace", "silver", "crm_cust_info", "assert",
                 "cst_key has no leading/trailing spaces", customer_key_whitespace),
    QualityCheck("marital_status_domain", "silver", "crm_cust_info", "domain",
                 "Distinct marital status labels", marital_status_domain),
    QualityCheck("product_id_null_or_duplicate", "silver", "crm_prd_info", "assert",
                 "prd_id is present and unique", product_id_null_or_duplicate),
    QualityCheck("product_name_whitespace", "silver", "crm_prd_info", "assert",
                 "prd_nm has no leading/trailing spaces", product_name_whitespace),
    QualityCheck("product_cost_null_or_negative", "silver", "crm_prd_info", "assert",
                 "prd_cost is present and not negative", product_cost_null_or_negative),
    QualityCheck("product_line_domain", "silver", "crm_prd_info", "domain",
                 "Distinct product line labels", product_line_domain),
    QualityCheck("product_end_before_start", "silver", "crm_prd_info", "assert",
                 "prd_end_dt is not before prd_start_dt", product_end_before_start),
    QualityCheck("raw_due_date_out_of_range", "bronze", "crm_sales_details", "assert",
                 "Raw sls_due_dt is a positive eight-digit date within range", raw_due_date_out_of_range),
    QualityCheck("sales_order_after_ship_or_due", "silver", "crm_sales_details", "assert",
                 "Order date is on or before ship and due dates", sales_order_after_ship_or_due),
    QualityCheck("sales_arithmetic", "silver", "crm_sales_details", "assert",
                 "sales = quantity * price, all present and positive", sales_arithmetic),
    QualityCheck("birthdate_out_of_range", "silver", "erp_cust_az12", "assert",
                 "bdate lies between the minimum birthdate and today", birthdate_out_of_range),
    QualityCheck("demographic_gender_domain", "silver", "erp_cust_az12", "domain",
                 "Distinct demographic gender labels", demographic_gender_domain),
    QualityCheck("country_domain", "silver", "erp_loc_a101", "domain",
                 "Distinct country names", country_domain),
    QualityCheck("category_whitespace", "silver", "erp_px_cat_g1v2", "assert",
                 "Category fields have no leading/trailing spaces", category_whitespace),
    QualityCheck("maintenance_domain", "silver", "erp_px_cat_g1v2", "domain",
                 "Distinct maintenance flags", maintenance_domain),
    QualityCheck("customer_key_unique", "gold", "dim_customers", "assert",
                 "customer_key appears once in dim_customers", customer_key_unique),
    QualityCheck("product_key_unique", "gold", "dim_products", "assert",
                 "product_key appears once in dim_products", product_key_unique),
    QualityCheck("fact_referential_integrity", "gold", "fact_sales", "assert",
                 "Every fact row resolves to a customer and a product", fact_referential_integrity),
)

CHECKS_BY_NAME: Dict[str, QualityCheck] = {c.name: c for c in CHECKS}


def get_checks(names: Optional[Iterable[str]] = None) -> List[QualityCheck]:
    if names is None:
        return list(CHECKS)
    names = list(names)
    unknown = [n for n in names if n not in CHECKS_BY_NAME]
    if unknown:
        raise ValueError(f"Unknown quality checks: {unknown}")
    return [CHECKS_BY_NAME[n] for n in names]


def check_params(quality_cfg=None, as_of: Optional[dt.date] = None) -> Dict[str, object]:
    """Keyword parameters for the checks, taken from the ``quality`` config section."""
    params: Dict[str, object] = {"as_of": as_of}
    if quality_cfg is not None:
        params.update(
            birthdate_min=quality_cfg.birthdate_min,
            raw_date_min=quality_cfg.raw_date_min,
            raw_date_max=quality_cfg.raw_date_max,
        )
    return params


def run_quality_checks(
    engine,
    registry: Optional[TableRegistry] = None,
    names: Optional[Iterable[str]] = None,
    *,
    quality_cfg=None,
    as_of: Optional[dt.date] = None,
) -> Tuple[pd.DataFrame, Dict[str, pd.DataFrame]]:
    """Run the selected checks (all by default).

    Returns:
        (summary, results): summary has one row per check with columns
        ``check, layer, table, kind, rows, passed``; results maps check name to
        the offending rows (or distinct domain values).
    """
    registry = registry or TableRegistry.for_engine(engine)
    params = check_params(quality_cfg, as_of)
    rows: List[Dict[str, object]] = []
    results: Dict[str, pd.DataFrame] = {}
    for check in get_checks(names):
        df = check.run(engine, registry, **params)
        results[check.name] = df
        passed = True if check.kind == "domain" else df.empty
        rows.append(
            {
                "check": check.name,
                "layer": check.layer,
                "table": registry.qualified(check.layer, check.table),
                "kind": check.kind,
                "rows": int(len(df)),
                "passed": bool(passed),
            }
        )
        if not passed:
            logger.warning("Quality check %s failed: %d offending rows", check.name, len(df))
        else:
            logger.info("Quality check %s: %d rows (%s)", check.name, len(df), check.kind)
    summary = pd.DataFrame(rows, columns=["check", "layer", "table", "kind", "rows", "passed"])
    return summary, results


def write_quality_outputs(summary: pd.DataFrame, results: Dict[str, pd.DataFrame], out_dir) -> List[str]:
    """Write the summary and every non-empty result as CSV; returns the written paths."""
    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)
    written = []
    summary_path = out / "quality_summary.csv"
    summary.to_csv(summary_path, index=False)
    written.append(str(summary_path))
    for name, df in results.items():
        if df.empty:
            continue
        path = out / f"quality_{name}.csv"
        df.to_csv(path, index=False)
        written.append(str(path))
    return written
