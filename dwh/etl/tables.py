"""Registry of every warehouse object, per Medallion layer.

The warehouse keeps three namespaces: ``bronze`` (raw mirrors of the source
extracts), ``silver`` (standardized tables) and ``gold`` (star-schema views plus
optional surrogate key maps).  SQL Server exposes these as real schemas; SQLite
has none, so objects are named ``<layer>_<name>`` instead.  Everything that
needs a table name or a SQLAlchemy ``Table`` asks the registry, so no module
carries ambient schema naming of its own.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import Column, Date, DateTime, Integer, MetaData, String, Table, inspect
from sqlalchemy.schema import CreateSchema

from dwh.utils.logger import get_logger
from dwh.utils.sql import validate_identifier

logger = get_logger(__name__)

LAYERS: Tuple[str, ...] = ("bronze", "silver", "gold")

# Load order of the raw/standardized tables
ENTITIES: Tuple[str, ...] = (
    "crm_cust_info",
    "crm_prd_info",
    "crm_sales_details",
    "erp_cust_az12",
    "erp_loc_a101",
    "erp_px_cat_g1v2",
)

VIEWS: Tuple[str, ...] = ("dim_customers", "dim_products", "fact_sales")
KEY_MAPS: Tuple[str, ...] = ("customer_key_map", "product_key_map")

_TEXT = String(50)

BRONZE_COLUMNS: Dict[str, List[Tuple[str, object]]] = {
    "crm_cust_info": [
        ("cst_id", Integer()),
        ("cst_key", _TEXT),
        ("cst_firstname", _TEXT),
        ("cst_lastname", _TEXT),
        ("cst_marital_status", _TEXT),
        ("cst_gndr", _TEXT),
        ("cst_create_date", Date()),
    ],
    "crm_prd_info": [
        ("prd_id", Integer()),
        ("prd_key", _TEXT),
        ("prd_nm", _TEXT),
        ("prd_cost", Integer()),
        ("prd_line", _TEXT),
        ("prd_start_dt", DateTime()),
        ("prd_end_dt", DateTime()),
    ],
    "crm_sales_details": [
        ("sls_ord_num", _TEXT),
        ("sls_prd_key", _TEXT),
        ("sls_cust_id", Integer()),
        ("sls_order_dt", Integer()),
        ("sls_ship_dt", Integer()),
        ("sls_due_dt", Integer()),
        ("sls_sales", Integer()),
        ("sls_quantity", Integer()),
        ("sls_price", Integer()),
    ],
    "erp_cust_az12": [
        ("cid", _TEXT),
        ("bdate", Date()),
        ("gen", _TEXT),
    ],
    "erp_loc_a101": [
        ("cid", _TEXT),
        ("cntry", _TEXT),
    ],
    "erp_px_cat_g1v2": [
        ("id", _TEXT),
        ("cat", _TEXT),
        ("subcat", _TEXT),
        ("maintenance", _TEXT),
    ],
}

SILVER_COLUMNS: Dict[str, List[Tuple[str, object]]] = {
    "crm_cust_info": BRONZE_COLUMNS["crm_cust_info"] + [("dwh_create_date", DateTime())],
    "crm_prd_info": [
        ("prd_id", Integer()),
        ("cat_id", _TEXT),
        ("prd_key", _TEXT),
        ("prd_nm", _TEXT),
        ("prd_cost", Integer()),
        ("prd_line", _TEXT),
        ("prd_start_dt", Date()),
        ("prd_end_dt", Date()),
        ("dwh_create_date", DateTime()),
    ],
    "crm_sales_details": [
        ("sls_ord_num", _TEXT),
        ("sls_prd_key", _TEXT),
        ("sls_cust_id", Integer()),
        ("sls_order_dt", Date()),
        ("sls_ship_dt", Date()),
        ("sls_due_dt", Date()),
        ("sls_sales", Integer()),
        ("sls_quantity", Integer()),
        ("sls_price", Integer()),
        ("dwh_create_date", DateTime()),
    ],
    "erp_cust_az12": BRONZE_COLUMNS["erp_cust_az12"] + [("dwh_create_date", DateTime())],
    "erp_loc_a101": BRONZE_COLUMNS["erp_loc_a101"] + [("dwh_create_date", DateTime())],
    "erp_px_cat_g1v2": BRONZE_COLUMNS["erp_px_cat_g1v2"] + [("dwh_create_date", DateTime())],
}

_LAYER_COLUMNS = {"bronze": BRONZE_COLUMNS, "silver": SILVER_COLUMNS}


def _key_map_columns(name: str) -> List[Column]:
    if name == "customer_key_map":
        return [
            Column("customer_id", Integer(), primary_key=True, autoincrement=False),
            Column("customer_key", Integer(), nullable=False, unique=True),
        ]
    if name == "product_key_map":
        return [
            Column("product_number", _TEXT, primary_key=True),
            Column("product_key", Integer(), nullable=False, unique=True),
        ]
    raise ValueError(f"Unknown key map: {name!r}")


@dataclass
class TableRegistry:
    """Layer/schema naming plus SQLAlchemy table definitions for the warehouse."""

    schemas: Dict[str, str] = field(default_factory=lambda: {layer: layer for layer in LAYERS})
    use_schemas: bool = False
    metadata: MetaData = field(default_factory=MetaData, repr=False)

    def __post_init__(self) -> None:
        missing = [layer for layer in LAYERS if layer not in self.schemas]
        if missing:
            raise ValueError(f"Schema names missing for layers: {missing}")
        for schema in self.schemas.values():
            validate_identifier(schema)

    @classmethod
    def from_config(cls, cfg, dialect_name: Optional[str] = None) -> "TableRegistry":
        db_cfg = cfg.database
        use_schemas = getattr(db_cfg, "use_schemas", None)
        if use_schemas is None:
            dialect = (dialect_name or "").lower()
            use_schemas = dialect == "mssql" or (not dialect and str(db_cfg.engine).lower() == "mssql")
        return cls(schemas=dict(db_cfg.schemas), use_schemas=bool(use_schemas))

    @classmethod
    def for_engine(cls, engine, cfg=None) -> "TableRegistry":
        dialect = getattr(getattr(engine, "dialect", None), "name", "")
        if cfg is None:
            return cls(use_schemas=dialect == "mssql")
        return cls.from_config(cfg, dialect_name=dialect)

    # ------------------------------------------------------------------ naming
    def _check_layer(self, layer: str) -> None:
        if layer not in LAYERS:
            raise ValueError(f"Unknown layer {layer!r}; expected one of {LAYERS}")

    def physical(self, layer: str, name: str) -> Tuple[Optional[str], str]:
        """Return ``(schema, table_name)`` as the host engine stores the object."""
        self._check_layer(layer)
        validate_identifier(name)
        schema = self.schemas[layer]
        if self.use_schemas:
            return schema, name
        return None, f"{schema}_{name}"

    def qualified(self, layer: str, name: str) -> str:
        schema, table_name = self.physical(layer, name)
        return f"{schema}.{table_name}" if schema else table_name

    def allowed_identifiers(self) -> set[str]:
        names = {self.qualified(layer, e) for layer in ("bronze", "silver") for e in ENTITIES}
        names.update(self.qualified("gold", v) for v in VIEWS + KEY_MAPS)
        return names

    # ---------------------------------------------------------------- tables
    def table(self, layer: str, entity: str) -> Table:
        if layer == "gold":
            return self.key_map(entity)
        self._check_layer(layer)
        if entity not in ENTITIES:
            raise ValueError(f"Unknown entity {entity!r}; expected one of {ENTITIES}")
        schema, table_name = self.physical(layer, entity)
        key = f"{schema}.{table_name}" if schema else table_name
        existing = self.metadata.tables.get(key)
        if existing is not None:
            return existing
        columns = [Column(name, type_) for name, type_ in _LAYER_COLUMNS[layer][entity]]
        return Table(table_name, self.metadata, *columns, schema=schema)

    def key_map(self, name: str) -> Table:
        if name not in KEY_MAPS:
            raise ValueError(f"Unknown key map {name!r}; expected one of {KEY_MAPS}")
        schema, table_name = self.physical("gold", name)
        key = f"{schema}.{table_name}" if schema else table_name
        existing = self.metadata.tables.get(key)
        if existing is not None:
            return existing
        return Table(table_name, self.metadata, *_key_map_columns(name), schema=schema)

    def tables_for(self, layers: Iterable[str]) -> List[Table]:
        out: List[Table] = []
        for layer in layers:
            if layer == "gold":
                out.extend(self.key_map(name) for name in KEY_MAPS)
            else:
                out.extend(self.table(layer, entity) for entity in ENTITIES)
        return out

    # ------------------------------------------------------------------- DDL
    def create_schemas(self, engine, layers: Iterable[str] = LAYERS) -> None:
        if not self.use_schemas:
            return
        existing = set(inspect(engine).get_schema_names())
        with engine.begin() as conn:
            for layer in layers:
                schema = self.schemas[layer]
                if schema not in existing:
                    logger.info("Creating schema: %s", schema)
                    conn.execute(CreateSchema(schema))

    def create_tables(self, engine, layers: Iterable[str] = ("bronze", "silver")) -> None:
        """Create any missing tables for ``layers``; existing tables are left untouched."""
        layers = list(layers)
        self.create_schemas(engine, layers)
        tables = self.tables_for(layers)
        self.metadata.create_all(engine, tables=tables, checkfirst=True)
        logger.info("Ensured %d tables across layers %s", len(tables), layers)

    def drop_tables(self, engine, layers: Iterable[str] = ("bronze", "silver")) -> None:
        tables = self.tables_for(layers)
        self.metadata.drop_all(engine, tables=tables, checkfirst=True)
        logger.info("Dropped %d tables", len(tables))
