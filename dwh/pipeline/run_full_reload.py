"""CLI entry point for the full warehouse reload.

Runs the raw load from the CSV extracts, re-derives the standardized tables and
recreates the star-schema views.  Each layer is a truncate-and-insert batch that
stops at its first failing table; a failed layer stops the run and the command
exits non-zero after printing the duration log.
"""

from __future__ import annotations

import datetime as dt
import sys
from pathlib import Path
from typing import List, Optional

import click

from dwh.etl.bronze import load_bronze
from dwh.etl.contracts import RawContractError, violations_to_dataframe
from dwh.etl.gold import create_gold_views
from dwh.etl.loader import LoadReport
from dwh.etl.silver import load_silver
from dwh.etl.tables import TableRegistry
from dwh.ops.run import run_context
from dwh.utils.config import load_config
from dwh.utils.db import get_db_connection, validate_connection
from dwh.utils.logger import get_logger, set_log_level


logger = get_logger(__name__)


def run_full_reload(
    cfg,
    engine=None,
    *,
    skip_bronze: bool = False,
    skip_gold: bool = False,
    as_of: Optional[dt.date] = None,
    log=None,
) -> List[LoadReport]:
    """Reload every layer in order; returns the layer reports up to the first failure."""
    engine = engine or get_db_connection(cfg)
    registry = TableRegistry.for_engine(engine, cfg)
    registry.create_tables(engine, ["bronze", "silver"])
    atomic = bool(cfg.etl.atomic_batch)

    reports: List[LoadReport] = []
    if not skip_bronze:
        bronze = load_bronze(
            engine,
            registry,
            raw_dir=cfg.paths.raw,
            source_files=cfg.etl.source_files,
            encodings=cfg.etl.csv_encodings,
            atomic=atomic,
            log=log,
        )
        reports.append(bronze)
        if not bronze.succeeded:
            return reports

    silver = load_silver(engine, registry, atomic=atomic, as_of=as_of, log=log)
    reports.append(silver)
    if not silver.succeeded or skip_gold:
        return reports

    registry.create_schemas(engine, ["gold"])
    views = create_gold_views(engine, registry, surrogate_keys=cfg.gold.surrogate_keys)
    if log is not None:
        log({"level": "INFO", "event": "gold_views", "views": sorted(views.values())})
    return reports


@click.command()
@click.option("--config", default=str((Path(__file__).parents[1] / "config.yaml").resolve()))
@click.option("--skip-bronze", is_flag=True, default=False, help="Reuse the current raw tables")
@click.option("--skip-gold", is_flag=True, default=False, help="Do not recreate the star-schema views")
@click.option("--atomic/--per-table", default=None, help="Override etl.atomic_batch")
@click.option("--as-of", default=None, help="Reference date YYYY-MM-DD for the future-birthdate rule")
def main(config: str, skip_bronze: bool, skip_gold: bool, atomic: Optional[bool], as_of: Optional[str]) -> None:
    overrides = {"etl": {"atomic_batch": atomic}} if atomic is not None else None
    cfg = load_config(config, cli_overrides=overrides)
    set_log_level(cfg.logging.level)
    as_of_date = dt.date.fromisoformat(as_of) if as_of else None
    engine = get_db_connection(cfg)
    if not validate_connection(engine):
        raise click.ClickException("Database connection is unhealthy")

    runs_dir = Path(cfg.paths.outputs) / "runs"
    with run_context("full_reload", runs_dir=runs_dir, config=cfg.to_dict()) as ctx:
        log = ctx["log"] if cfg.logging.jsonl else None
        try:
            reports = run_full_reload(
                cfg,
                engine,
                skip_bronze=skip_bronze,
                skip_gold=skip_gold,
                as_of=as_of_date,
                log=log,
            )
        except RawContractError as e:
            out = Path(ctx["run_dir"]) / "contract_violations.csv"
            violations_to_dataframe(e.violations).to_csv(out, index=False)
            logger.error("Raw extracts breach their contract; details in %s", out)
            raise
        for report in reports:
            for line in report.duration_log():
                click.echo(line)
            if log is not None:
                log({"level": "INFO", "event": "layer_report", "layer": report.layer, "status": report.status})

    if any(not r.succeeded for r in reports):
        sys.exit(1)


if __name__ == "__main__":
    main()
