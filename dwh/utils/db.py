import os
import urllib.parse
from pathlib import Path

from sqlalchemy import create_engine
from dotenv import load_dotenv

from dwh.utils.logger import get_logger
from dwh.utils.config import load_config

load_dotenv()

logger = get_logger(__name__)

_MSSQL_DRIVERS = ("ODBC Driver 18 for SQL Server", "ODBC Driver 17 for SQL Server")


def _build_pyodbc_conn(server: str, database: str, username: str, password: str, driver: str) -> str:
    params = f"DRIVER={{{driver}}};SERVER={server};DATABASE={database};UID={username};PWD={password};"
    # Default to encrypted connection; trust cert to simplify local dev
    params += "Encrypt=yes;TrustServerCertificate=yes;"
    odbc_connect = urllib.parse.quote_plus(params)
    return f"mssql+pyodbc:///?odbc_connect={odbc_connect}"


def _mssql_credentials() -> dict:
    return {
        "server": os.getenv("DWH_MSSQL_SERVER"),
        "database": os.getenv("DWH_MSSQL_DB"),
        "username": os.getenv("DWH_MSSQL_USER"),
        "password": os.getenv("DWH_MSSQL_PWD"),
    }


def get_db_connection(cfg=None):
    """Return a SQLAlchemy engine for the warehouse.

    * ``database.engine == "mssql"`` connects to SQL Server via ``pyodbc`` using the
      ``DWH_MSSQL_*`` environment variables; missing credentials raise.
    * ``database.engine == "auto"`` prefers SQL Server when credentials are present and
      falls back to SQLite otherwise (unless ``database.strict_db`` is set).
    * ``database.engine == "sqlite"`` opens the configured ``sqlite_path``.
    """
    if cfg is None:
        cfg = load_config()
    db_cfg = cfg.database
    engine_choice = str(getattr(db_cfg, "engine", "sqlite") or "sqlite").lower()
    strict_db = bool(getattr(db_cfg, "strict_db", False))
    sqlite_path = Path(getattr(db_cfg, "sqlite_path"))

    creds = _mssql_credentials()
    mssql_credentials = all(creds.values())

    def _connect_sqlite(path: Path):
        resolved = Path(path)
        resolved.parent.mkdir(parents=True, exist_ok=True)
        logger.info("Using SQLite database at: %s", resolved)
        return create_engine(f"sqlite:///{resolved}")

    def _connect_mssql():
        logger.info("Connecting to SQL Server database: %s/%s", creds["server"], creds["database"])
        last_err = None
        for drv in _MSSQL_DRIVERS:
            try:
                eng = create_engine(_build_pyodbc_conn(driver=drv, **creds))
                with eng.connect() as conn:
                    conn.exec_driver_sql("SELECT 1")
                logger.info("SQL Server connection established using driver: %s", drv)
                return eng
            except Exception as e:
                last_err = e
                continue
        raise RuntimeError(
            "Failed to connect to SQL Server via pyodbc. Ensure Microsoft ODBC Driver 18 or 17 "
            f"for SQL Server is installed and reachable. Last error: {last_err!r}"
        )

    if engine_choice == "mssql":
        if not mssql_credentials:
            raise RuntimeError("database.engine=mssql but DWH_MSSQL_* environment variables are not set")
        return _connect_mssql()

    if engine_choice == "auto":
        if mssql_credentials:
            return _connect_mssql()
        if strict_db:
            raise RuntimeError("database.strict_db=True but DWH_MSSQL_* environment variables are not set")
        logger.warning(
            "SQL Server requested but DWH_MSSQL_* credentials are missing; falling back to SQLite at %s",
            sqlite_path,
        )
        return _connect_sqlite(sqlite_path)

    return _connect_sqlite(sqlite_path)


def validate_connection(engine) -> bool:
    """Validate DB connection health by executing a trivial query."""
    try:
        with engine.connect() as conn:
            conn.exec_driver_sql("SELECT 1")
        return True
    except Exception as e:
        logger.error("Database connection validation failed: %s", e)
        return False
