from __future__ import annotations

import datetime as dt
import sys
from pathlib import Path
from typing import Optional, Tuple

import click

from dwh.etl.tables import TableRegistry
from dwh.utils.config import load_config
from dwh.utils.db import get_db_connection
from dwh.utils.logger import get_logger, set_log_level
from dwh.validation.quality import run_quality_checks, write_quality_outputs


logger = get_logger(__name__)


@click.command()
@click.option("--config", default=str((Path(__file__).parents[1] / "config.yaml").resolve()))
@click.option("--check", "checks", multiple=True, help="Run only the named check (repeatable)")
@click.option("--write/--no-write", default=False, help="Write summary and offending rows as CSV")
@click.option("--strict/--advisory", default=None, help="Exit non-zero when an assertion fails (default: quality.fail_on_breach)")
@click.option("--as-of", default=None, help="Reference date YYYY-MM-DD for the birthdate range check")
def main(config: str, checks: Tuple[str, ...], write: bool, strict: Optional[bool], as_of: Optional[str]) -> None:
    """Run the quality checks against the standardized and star-schema layers."""
    cfg = load_config(config)
    set_log_level(cfg.logging.level)
    engine = get_db_connection(cfg)
    registry = TableRegistry.for_engine(engine, cfg)
    as_of_date = dt.date.fromisoformat(as_of) if as_of else None

    summary, results = run_quality_checks(
        engine,
        registry,
        names=list(checks) or None,
        quality_cfg=cfg.quality,
        as_of=as_of_date,
    )
    click.echo(summary.to_string(index=False))

    if write:
        out_dir = Path(cfg.paths.outputs) / "quality"
        for path in write_quality_outputs(summary, results, out_dir):
            logger.info("Wrote %s", path)

    failed = summary.loc[~summary["passed"], "check"].tolist()
    if failed:
        logger.warning("Failed quality checks: %s", failed)
    fail_on_breach = cfg.quality.fail_on_breach if strict is None else strict
    if failed and fail_on_breach:
        sys.exit(1)


if __name__ == "__main__":
    main()
