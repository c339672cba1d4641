from __future__ import annotations

import os
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from dwh.utils.paths import ROOT_DIR, RAW_DIR, OUTPUTS_DIR, DEFAULT_SQLITE_PATH


_ENGINES = {"sqlite", "mssql", "auto"}
_SURROGATE_KEY_MODES = {"positional", "stable"}
_TRUTHY = {"1", "true", "yes", "on"}

DEFAULT_SOURCE_FILES: Dict[str, str] = {
    "crm_cust_info": "source_crm/cust_info.csv",
    "crm_prd_info": "source_crm/prd_info.csv",
    "crm_sales_details": "source_crm/sales_details.csv",
    "erp_cust_az12": "source_erp/CUST_AZ12.csv",
    "erp_loc_a101": "source_erp/LOC_A101.csv",
    "erp_px_cat_g1v2": "source_erp/PX_CAT_G1V2.csv",
}


@dataclass
class Paths:
    raw: Path
    outputs: Path


@dataclass
class Database:
    engine: str = "sqlite"  # sqlite | mssql | auto
    sqlite_path: Path = DEFAULT_SQLITE_PATH
    # Fail instead of falling back to SQLite when SQL Server credentials are missing
    strict_db: bool = False
    # Physical schemas (SQL Server) vs. "<layer>_<table>" prefixes (SQLite)
    use_schemas: Optional[bool] = None
    schemas: Dict[str, str] = field(
        default_factory=lambda: {"bronze": "bronze", "silver": "silver", "gold": "gold"}
    )


@dataclass
class ETL:
    # Mapping of raw entity -> CSV path relative to paths.raw
    source_files: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_SOURCE_FILES))
    csv_encodings: list[str] = field(default_factory=lambda: ["utf-8", "latin-1", "cp1252", "iso-8859-1"])
    # One transaction for all six standardized tables instead of one per table
    atomic_batch: bool = False


@dataclass
class Gold:
    surrogate_keys: str = "positional"  # positional | stable


@dataclass
class Quality:
    birthdate_min: str = "1924-01-01"
    raw_date_min: int = 19000101
    raw_date_max: int = 20500101
    fail_on_breach: bool = False


@dataclass
class Logging:
    level: str = "INFO"
    jsonl: bool = True


@dataclass
class Config:
    paths: Paths
    database: Database = field(default_factory=Database)
    etl: ETL = field(default_factory=ETL)
    gold: Gold = field(default_factory=Gold)
    quality: Quality = field(default_factory=Quality)
    logging: Logging = field(default_factory=Logging)

    def to_dict(self) -> Dict[str, Any]:
        def _convert(obj: Any) -> Any:
            if isinstance(obj, Path):
                return str(obj)
            if isinstance(obj, dict):
                return {k: _convert(v) for k, v in obj.items()}
            if isinstance(obj, list):
                return [_convert(v) for v in obj]
            return obj

        return {
            "paths": _convert(asdict(self.paths)),
            "database": _convert(asdict(self.database)),
            "etl": _convert(asdict(self.etl)),
            "gold": _convert(asdict(self.gold)),
            "quality": _convert(asdict(self.quality)),
            "logging": _convert(asdict(self.logging)),
        }


def _load_yaml(path: Path) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _merge_overrides(base: Dict[str, Any], overrides: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not overrides:
        return base

    def deep_merge(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
        out = dict(a)
        for k, v in (b or {}).items():
            if isinstance(v, dict) and isinstance(out.get(k), dict):
                out[k] = deep_merge(out[k], v)
            else:
                out[k] = v
        return out

    return deep_merge(base, overrides)


def _resolve_path(value: Any, default: Path) -> Path:
    if value is None or str(value).strip() == "":
        return Path(default).resolve()
    p = Path(value)
    if not p.is_absolute():
        p = ROOT_DIR / p
    return p.resolve()


def load_config(config_path: Optional[str | Path] = None, cli_overrides: Optional[Dict[str, Any]] = None) -> Config:
    if config_path is None:
        config_path = ROOT_DIR / "config.yaml"

    cfg_path_obj = Path(config_path)
    cfg_dict = _load_yaml(cfg_path_obj) if cfg_path_obj.exists() else {}

    allowed_top = {"paths", "database", "etl", "gold", "quality", "logging"}
    unknown_top = set(cfg_dict.keys()) - allowed_top
    if unknown_top:
        raise ValueError(f"Unknown top-level config keys: {sorted(unknown_top)}. Allowed: {sorted(allowed_top)}")

    env_db_engine = os.getenv("DWH_DB_ENGINE")
    env_sqlite_path = os.getenv("DWH_SQLITE_PATH")
    env_atomic = os.getenv("DWH_ATOMIC_BATCH")
    if env_db_engine:
        cfg_dict.setdefault("database", {})["engine"] = env_db_engine
    if env_sqlite_path:
        cfg_dict.setdefault("database", {})["sqlite_path"] = env_sqlite_path
    if env_atomic is not None:
        cfg_dict.setdefault("etl", {})["atomic_batch"] = str(env_atomic).strip().lower() in _TRUTHY

    cfg_dict = _merge_overrides(cfg_dict, cli_overrides)

    paths_cfg = cfg_dict.get("paths") or {}
    database = cfg_dict.get("database") or {}
    etl_cfg = cfg_dict.get("etl") or {}
    gold_cfg = cfg_dict.get("gold") or {}
    quality_cfg = cfg_dict.get("quality") or {}
    log_cfg = cfg_dict.get("logging") or {}

    engine_choice = str(database.get("engine", "sqlite")).strip().lower()
    if engine_choice not in _ENGINES:
        raise ValueError(f"database.engine must be one of {sorted(_ENGINES)}, got {engine_choice!r}")

    key_mode = str(gold_cfg.get("surrogate_keys", "positional")).strip().lower()
    if key_mode not in _SURROGATE_KEY_MODES:
        raise ValueError(f"gold.surrogate_keys must be one of {sorted(_SURROGATE_KEY_MODES)}, got {key_mode!r}")

    schemas = {"bronze": "bronze", "silver": "silver", "gold": "gold"}
    raw_schemas = database.get("schemas") or {}
    if not isinstance(raw_schemas, dict):
        raise ValueError("database.schemas must be a mapping of layer -> schema name")
    unknown_layers = set(raw_schemas) - set(schemas)
    if unknown_layers:
        raise ValueError(f"Unknown layers in database.schemas: {sorted(unknown_layers)}")
    schemas.update({str(k): str(v).strip() for k, v in raw_schemas.items() if str(v).strip()})

    source_files = dict(DEFAULT_SOURCE_FILES)
    source_files.update({str(k): str(v) for k, v in (etl_cfg.get("source_files") or {}).items()})

    use_schemas = database.get("use_schemas")

    cfg = Config(
        paths=Paths(
            raw=_resolve_path(paths_cfg.get("raw"), RAW_DIR),
            outputs=_resolve_path(paths_cfg.get("outputs"), OUTPUTS_DIR),
        ),
        database=Database(
            engine=engine_choice,
            sqlite_path=_resolve_path(database.get("sqlite_path"), DEFAULT_SQLITE_PATH),
            strict_db=bool(database.get("strict_db", False)),
            use_schemas=None if use_schemas is None else bool(use_schemas),
            schemas=schemas,
        ),
        etl=ETL(
            source_files=source_files,
            csv_encodings=[str(e) for e in (etl_cfg.get("csv_encodings") or ["utf-8", "latin-1", "cp1252", "iso-8859-1"])],
            atomic_batch=bool(etl_cfg.get("atomic_batch", False)),
        ),
        gold=Gold(surrogate_keys=key_mode),
        quality=Quality(
            birthdate_min=str(quality_cfg.get("birthdate_min", "1924-01-01")),
            raw_date_min=int(quality_cfg.get("raw_date_min", 19000101)),
            raw_date_max=int(quality_cfg.get("raw_date_max", 20500101)),
            fail_on_breach=bool(quality_cfg.get("fail_on_breach", False)),
        ),
        logging=Logging(
            level=str(log_cfg.get("level", "INFO")),
            jsonl=bool(log_cfg.get("jsonl", True)),
        ),
    )

    if cfg.quality.raw_date_min >= cfg.quality.raw_date_max:
        raise ValueError("quality.raw_date_min must be lower than quality.raw_date_max")

    return cfg
