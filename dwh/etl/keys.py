from __future__ import annotations

from typing import Dict, Hashable, Iterable, List

from sqlalchemy import func, select

from dwh.etl.tables import TableRegistry
from dwh.utils.logger import get_logger

logger = get_logger(__name__)


def assign_new_keys(existing: Dict[Hashable, int], ordered_business_keys: Iterable[Hashable]) -> Dict[Hashable, int]:
    """Number unseen business keys after the current maximum, in the given order.

    Keys already in ``existing`` are never renumbered; duplicates and ``None`` are skipped.
    """
    next_key = max(existing.values(), default=0) + 1
    new: Dict[Hashable, int] = {}
    for bk in ordered_business_keys:
        if bk is None or bk in existing or bk in new:
            continue
        new[bk] = next_key
        next_key += 1
    return new


def _sync(conn, key_map, bk_col: str, sk_col: str, ordered_business_keys: List[Hashable]) -> int:
    existing = {row[0]: row[1] for row in conn.execute(select(key_map.c[bk_col], key_map.c[sk_col]))}
    new = assign_new_keys(existing, ordered_business_keys)
    if new:
        conn.execute(key_map.insert(), [{bk_col: bk, sk_col: sk} for bk, sk in new.items()])
    logger.info("%s: %d existing keys, %d new", key_map.fullname, len(existing), len(new))
    return len(new)


def sync_key_maps(engine, registry: TableRegistry) -> Dict[str, int]:
    """Append surrogate keys for customers and current products seen in the standardized layer.

    New customers are numbered in ``cst_id`` order, new products in
    ``(prd_start_dt, prd_key)`` order, matching the positional key ordering.
    """
    customers = registry.table("silver", "crm_cust_info")
    products = registry.table("silver", "crm_prd_info")
    with engine.begin() as conn:
        cust_ids = [
            row[0]
            for row in conn.execute(
                select(customers.c.cst_id).where(customers.c.cst_id.is_not(None)).distinct().order_by(customers.c.cst_id)
            )
        ]
        first_start = func.min(products.c.prd_start_dt).label("first_start")
        prd_keys = [
            row[0]
            for row in conn.execute(
                select(products.c.prd_key, first_start)
                .where(products.c.prd_end_dt.is_(None), products.c.prd_key.is_not(None))
                .group_by(products.c.prd_key)
                .order_by(first_start, products.c.prd_key)
            )
        ]
        added = {
            "customer_key_map": _sync(conn, registry.key_map("customer_key_map"), "customer_id", "customer_key", cust_ids),
            "product_key_map": _sync(conn, registry.key_map("product_key_map"), "product_number", "product_key", prd_keys),
        }
    return added
