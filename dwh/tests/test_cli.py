import json

import pandas as pd
import pytest
import yaml
from click.testing import CliRunner
from sqlalchemy import create_engine, inspect

from dwh.etl import inspect_db
from dwh.ops import init_db, quality_report
from dwh.pipeline import run_full_reload
from dwh.utils.config import DEFAULT_SOURCE_FILES


@pytest.fixture
def cli_config(tmp_path, monkeypatch, bronze_rows):
    for var in ["DWH_DB_ENGINE", "DWH_SQLITE_PATH", "DWH_ATOMIC_BATCH"]:
        monkeypatch.delenv(var, raising=False)
    raw = tmp_path / "raw"
    for entity, rel in DEFAULT_SOURCE_FILES.items():
        path = raw / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        pd.DataFrame(bronze_rows[entity]).to_csv(path, index=False)
    config = {
        "paths": {"raw": str(raw), "outputs": str(tmp_path / "outputs")},
        "database": {"engine": "sqlite", "sqlite_path": str(tmp_path / "cli.db")},
    }
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(config), encoding="utf-8")
    return path


def test_init_creates_tables(cli_config, tmp_path):
    result = CliRunner().invoke(init_db.main, ["--config", str(cli_config)])
    assert result.exit_code == 0, result.output
    tables = set(inspect(create_engine(f"sqlite:///{tmp_path / 'cli.db'}")).get_table_names())
    assert {"bronze_crm_cust_info", "silver_erp_px_cat_g1v2"} <= tables


def test_full_reload_then_quality_and_inspect(cli_config, tmp_path):
    runner = CliRunner()
    result = runner.invoke(run_full_reload.main, ["--config", str(cli_config), "--as-of", "2025-01-01"])
    assert result.exit_code == 0, result.output
    assert "Loading bronze layer: succeeded" in result.output
    assert "Loading silver layer: succeeded" in result.output
    assert "Total Load Duration" in result.output

    runs = [json.loads(line) for line in (tmp_path / "outputs" / "runs" / "runs.jsonl").read_text().splitlines()]
    assert runs[-1]["status"] == "finished"

    engine = create_engine(f"sqlite:///{tmp_path / 'cli.db'}")
    assert "gold_fact_sales" in inspect(engine).get_view_names()

    result = runner.invoke(quality_report.main, ["--config", str(cli_config), "--as-of", "2025-01-01", "--write", "--strict"])
    assert result.exit_code == 1
    assert "fact_referential_integrity" in result.output
    assert (tmp_path / "outputs" / "quality" / "quality_summary.csv").exists()

    result = runner.invoke(quality_report.main, ["--config", str(cli_config), "--check", "customer_key_unique"])
    assert result.exit_code == 0, result.output

    result = runner.invoke(inspect_db.main, ["--config", str(cli_config)])
    assert result.exit_code == 0, result.output
    snapshot = yaml.safe_load((tmp_path / "outputs" / "schema.yml").read_text(encoding="utf-8"))
    assert "gold_dim_customers" in snapshot["views"]
    assert "silver_crm_prd_info" in snapshot["tables"]


def test_full_reload_exits_non_zero_on_missing_extract(cli_config, tmp_path):
    (tmp_path / "raw" / "source_erp" / "PX_CAT_G1V2.csv").unlink()
    result = CliRunner().invoke(run_full_reload.main, ["--config", str(cli_config)])
    assert result.exit_code != 0
    runs = [json.loads(line) for line in (tmp_path / "outputs" / "runs" / "runs.jsonl").read_text().splitlines()]
    assert runs[-1]["status"] == "error"


def test_full_reload_writes_contract_violations(cli_config, tmp_path):
    (tmp_path / "raw" / "source_erp" / "LOC_A101.csv").write_text("CID\nAW-00000001\n", encoding="utf-8")
    result = CliRunner().invoke(run_full_reload.main, ["--config", str(cli_config)])
    assert result.exit_code != 0
    written = list((tmp_path / "outputs" / "runs").glob("*/contract_violations.csv"))
    assert len(written) == 1
    assert pd.read_csv(written[0])["column_name"].tolist() == ["cntry"]
