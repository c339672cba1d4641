"""Row-level cleansing rules that turn raw (bronze) snapshots into standardized (silver) ones.

Every rule is a pure ``polars`` transformation of the full raw snapshot of one
source table: no rule reads previously standardized data, so re-running a rule
on the same input always produces the same output.
"""

from __future__ import annotations

import datetime as dt
from typing import Any, Dict, Iterable, Mapping

import polars as pl


RAW_SCHEMAS: Dict[str, Dict[str, pl.DataType]] = {
    "crm_cust_info": {
        "cst_id": pl.Int64,
        "cst_key": pl.Utf8,
        "cst_firstname": pl.Utf8,
        "cst_lastname": pl.Utf8,
        "cst_marital_status": pl.Utf8,
        "cst_gndr": pl.Utf8,
        "cst_create_date": pl.Date,
    },
    "crm_prd_info": {
        "prd_id": pl.Int64,
        "prd_key": pl.Utf8,
        "prd_nm": pl.Utf8,
        "prd_cost": pl.Int64,
        "prd_line": pl.Utf8,
        "prd_start_dt": pl.Datetime,
        "prd_end_dt": pl.Datetime,
    },
    "crm_sales_details": {
        "sls_ord_num": pl.Utf8,
        "sls_prd_key": pl.Utf8,
        "sls_cust_id": pl.Int64,
        "sls_order_dt": pl.Int64,
        "sls_ship_dt": pl.Int64,
        "sls_due_dt": pl.Int64,
        "sls_sales": pl.Int64,
        "sls_quantity": pl.Int64,
        "sls_price": pl.Int64,
    },
    "erp_cust_az12": {
        "cid": pl.Utf8,
        "bdate": pl.Date,
        "gen": pl.Utf8,
    },
    "erp_loc_a101": {
        "cid": pl.Utf8,
        "cntry": pl.Utf8,
    },
    "erp_px_cat_g1v2": {
        "id": pl.Utf8,
        "cat": pl.Utf8,
        "subcat": pl.Utf8,
        "maintenance": pl.Utf8,
    },
}

MARITAL_STATUS_LABELS: Dict[str, str] = {"S": "Single", "M": "Married"}
GENDER_LABELS: Dict[str, str] = {"F": "Female", "M": "Male"}
DEMOGRAPHIC_GENDER_LABELS: Dict[str, str] = {"F": "Female", "FEMALE": "Female", "M": "Male", "MALE": "Male"}
PRODUCT_LINE_LABELS: Dict[str, str] = {"M": "Mountain", "R": "Road", "S": "Other Sales", "T": "Touring"}
COUNTRY_LABELS: Dict[str, str] = {"DE": "Germany", "US": "United States", "USA": "United States"}

DEMOGRAPHIC_ID_PREFIX = "NAS"
NOT_AVAILABLE = "n/a"


def records_to_frame(records: Iterable[Mapping[str, Any]], entity: str) -> pl.DataFrame:
    """Build a raw snapshot frame with the entity's fixed schema (works for zero rows)."""
    schema = RAW_SCHEMAS[entity]
    rows = [{col: rec.get(col) for col in schema} for rec in records]
    if not rows:
        return pl.DataFrame(schema=schema)
    return pl.DataFrame(rows, schema=schema, strict=False)


def _trimmed(col: str) -> pl.Expr:
    return pl.col(col).str.strip_chars()


def code_label(col: str, mapping: Mapping[str, str], default: str = NOT_AVAILABLE) -> pl.Expr:
    """Map a trimmed, upper-cased code column through ``mapping``; anything else (NULL included) → ``default``."""
    key = pl.col(col).str.strip_chars().str.to_uppercase()
    expr = pl.lit(default, dtype=pl.Utf8)
    for code, label in mapping.items():
        expr = pl.when(key == code).then(pl.lit(label, dtype=pl.Utf8)).otherwise(expr)
    return expr.alias(col)


def int_date(col: str) -> pl.Expr:
    """yyyymmdd integers to dates; 0, non-8-digit and non-calendar values become NULL."""
    raw = pl.col(col)
    text = raw.cast(pl.Utf8)
    return (
        pl.when(raw.is_null() | (raw == 0) | (text.str.len_chars() != 8))
        .then(pl.lit(None, dtype=pl.Date))
        .otherwise(text.str.strptime(pl.Date, "%Y%m%d", strict=False))
        .alias(col)
    )


def clean_customers(raw: pl.DataFrame) -> pl.DataFrame:
    # Latest creation date wins per cst_id; among exact ties the first raw row wins.
    return (
        raw.filter(pl.col("cst_id").is_not_null())
        .with_row_index("_raw_order")
        .sort(
            ["cst_id", "cst_create_date", "_raw_order"],
            descending=[False, True, False],
            nulls_last=True,
        )
        .unique(subset=["cst_id"], keep="first", maintain_order=True)
        .select(
            pl.col("cst_id"),
            pl.col("cst_key"),
            _trimmed("cst_firstname").alias("cst_firstname"),
            _trimmed("cst_lastname").alias("cst_lastname"),
            code_label("cst_marital_status", MARITAL_STATUS_LABELS),
            code_label("cst_gndr", GENDER_LABELS),
            pl.col("cst_create_date"),
        )
    )


def clean_products(raw: pl.DataFrame) -> pl.DataFrame:
    """Split the product key, map product lines and derive effective end dates.

    ``prd_key`` is ``<category 5 chars>-<product key>``: the first five characters
    (with ``-`` replaced by ``_``) become ``cat_id`` and everything from position 7
    becomes the normalized key.  A row's end date is the day before the next later
    start date of the same normalized key; rows sharing a start date close on the
    same day, the latest start stays open (NULL), and rows without a start date get
    no end date.
    """
    frame = raw.with_row_index("_raw_order").with_columns(
        pl.col("prd_key").str.slice(0, 5).str.replace_all("-", "_", literal=True).alias("cat_id"),
        pl.col("prd_key").str.slice(6).alias("_norm_key"),
        pl.col("prd_start_dt").cast(pl.Date).alias("_start"),
    )
    # distinct starts per key; rows with equal starts share one next start
    next_starts = (
        frame.filter(pl.col("_start").is_not_null())
        .select("_norm_key", "_start")
        .unique()
        .sort(["_norm_key", "_start"])
        .with_columns(pl.col("_start").shift(-1).over("_norm_key").alias("_next_start"))
    )
    return (
        frame.join(next_starts, on=["_norm_key", "_start"], how="left")
        .with_columns(
            pl.when(pl.col("_start").is_null())
            .then(pl.lit(None, dtype=pl.Date))
            .otherwise(pl.col("_next_start").dt.offset_by("-1d"))
            .alias("prd_end_dt")
        )
        .sort("_raw_order")
        .select(
            pl.col("prd_id"),
            pl.col("cat_id"),
            pl.col("_norm_key").alias("prd_key"),
            pl.col("prd_nm"),
            pl.col("prd_cost").fill_null(0),
            code_label("prd_line", PRODUCT_LINE_LABELS),
            pl.col("_start").alias("prd_start_dt"),
            pl.col("prd_end_dt"),
        )
    )


def clean_sales(raw: pl.DataFrame) -> pl.DataFrame:
    """Parse the integer dates and repair inconsistent sales/price figures.

    * sales is recomputed as ``quantity * |price|`` when missing, non-positive or
      inconsistent with quantity and price;
    * price is recomputed as ``sales / quantity`` (raw sales, truncated toward
      zero) when missing or non-positive; a zero quantity leaves it NULL.
    """
    sales = pl.col("sls_sales")
    qty = pl.col("sls_quantity")
    price = pl.col("sls_price")
    expected_sales = qty * price.abs()
    nonzero_qty = pl.when(qty != 0).then(qty)
    derived_price = (sales / nonzero_qty).cast(pl.Int64, strict=False)

    return raw.select(
        pl.col("sls_ord_num"),
        pl.col("sls_prd_key"),
        pl.col("sls_cust_id"),
        int_date("sls_order_dt"),
        int_date("sls_ship_dt"),
        int_date("sls_due_dt"),
        pl.when(sales.is_null() | (sales <= 0) | (sales != expected_sales))
        .then(expected_sales)
        .otherwise(sales)
        .alias("sls_sales"),
        qty.alias("sls_quantity"),
        pl.when(price.is_null() | (price <= 0))
        .then(derived_price)
        .otherwise(price)
        .alias("sls_price"),
    )


def clean_demographics(raw: pl.DataFrame, as_of: dt.date | None = None) -> pl.DataFrame:
    today = as_of or dt.date.today()
    cid = pl.col("cid")
    bdate = pl.col("bdate")
    return raw.select(
        pl.when(cid.str.to_uppercase().str.starts_with(DEMOGRAPHIC_ID_PREFIX))
        .then(cid.str.slice(len(DEMOGRAPHIC_ID_PREFIX)))
        .otherwise(cid)
        .alias("cid"),
        pl.when(bdate > pl.lit(today, dtype=pl.Date)).then(pl.lit(None, dtype=pl.Date)).otherwise(bdate).alias("bdate"),
        code_label("gen", DEMOGRAPHIC_GENDER_LABELS),
    )


def clean_locations(raw: pl.DataFrame) -> pl.DataFrame:
    country = _trimmed("cntry")
    code = country.str.to_uppercase()
    expr = pl.when(country.is_null() | (country == "")).then(pl.lit(NOT_AVAILABLE, dtype=pl.Utf8))
    for raw_code, label in COUNTRY_LABELS.items():
        expr = expr.when(code == raw_code).then(pl.lit(label, dtype=pl.Utf8))
    return raw.select(
        pl.col("cid").str.replace_all("-", "", literal=True).alias("cid"),
        expr.otherwise(country).alias("cntry"),
    )


def clean_categories(raw: pl.DataFrame) -> pl.DataFrame:
    return raw.select("id", "cat", "subcat", "maintenance")


def clean_entity(entity: str, raw: pl.DataFrame, *, as_of: dt.date | None = None) -> pl.DataFrame:
    """Apply the cleansing rule registered for ``entity``."""
    if entity == "erp_cust_az12":
        return clean_demographics(raw, as_of=as_of)
    try:
        rule = CLEANERS[entity]
    except KeyError:
        raise ValueError(f"No cleansing rule registered for {entity!r}") from None
    return rule(raw)


CLEANERS = {
    "crm_cust_info": clean_customers,
    "crm_prd_info": clean_products,
    "crm_sales_details": clean_sales,
    "erp_cust_az12": clean_demographics,
    "erp_loc_a101": clean_locations,
    "erp_px_cat_g1v2": clean_categories,
}
