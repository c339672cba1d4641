import types
from pathlib import Path

import pytest

from dwh.utils import db as dbmod
from dwh.utils.paths import ROOT_DIR


class DummyEngine:
    def __init__(self, url: str):
        self.url = url


@pytest.fixture(autouse=True)
def reset_env(monkeypatch):
    for var in ["DWH_MSSQL_SERVER", "DWH_MSSQL_DB", "DWH_MSSQL_USER", "DWH_MSSQL_PWD"]:
        monkeypatch.delenv(var, raising=False)


def _cfg(engine, sqlite_path, strict_db=False):
    return types.SimpleNamespace(
        database=types.SimpleNamespace(engine=engine, sqlite_path=sqlite_path, strict_db=strict_db)
    )


@pytest.fixture
def captured(monkeypatch):
    seen = {}

    def fake_create_engine(url: str, *_, **__):
        seen["url"] = url
        return DummyEngine(url)

    monkeypatch.setattr(dbmod, "create_engine", fake_create_engine)
    return seen


def test_auto_falls_back_to_sqlite_when_credentials_missing(monkeypatch, caplog, captured, tmp_path):
    custom_path = tmp_path / "fallback.sqlite"
    monkeypatch.setattr(dbmod, "load_config", lambda: _cfg("auto", custom_path))

    caplog.set_level("INFO")
    engine = dbmod.get_db_connection()

    assert isinstance(engine, DummyEngine)
    assert captured["url"] == f"sqlite:///{custom_path}"
    assert any("falling back to SQLite" in msg for msg in caplog.messages)


def test_uses_custom_sqlite_path(captured, tmp_path):
    custom_path = tmp_path / "nested" / "custom.db"
    engine = dbmod.get_db_connection(_cfg("sqlite", custom_path))
    assert engine.url == f"sqlite:///{custom_path}"
    assert custom_path.parent.exists()


def test_strict_db_raises_without_credentials(captured):
    with pytest.raises(RuntimeError):
        dbmod.get_db_connection(_cfg("auto", ROOT_DIR / "unused.db", strict_db=True))
    assert "url" not in captured


def test_mssql_requires_credentials(captured):
    with pytest.raises(RuntimeError):
        dbmod.get_db_connection(_cfg("mssql", Path("unused.db")))


def test_pyodbc_connection_string_is_quoted():
    url = dbmod._build_pyodbc_conn("srv", "DataWarehouse", "user", "p@ss;word", "ODBC Driver 18 for SQL Server")
    assert url.startswith("mssql+pyodbc:///?odbc_connect=")
    assert "DataWarehouse" in url
    assert ";" not in url.split("odbc_connect=")[1]


def test_validate_connection(engine):
    assert dbmod.validate_connection(engine) is True
