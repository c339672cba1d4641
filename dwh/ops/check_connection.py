from __future__ import annotations

import sys
from pathlib import Path

import click
from sqlalchemy import inspect, text

from dwh.etl.tables import ENTITIES, TableRegistry
from dwh.sql.queries import count_rows
from dwh.utils.config import load_config
from dwh.utils.db import get_db_connection
from dwh.utils.logger import get_logger


logger = get_logger(__name__)


@click.command()
@click.option("--config", default=str((Path(__file__).parents[1] / "config.yaml").resolve()))
def main(config: str) -> None:
    """Check DB connectivity and report row counts of the raw and standardized tables."""
    cfg = load_config(config)
    engine = get_db_connection(cfg)
    registry = TableRegistry.for_engine(engine, cfg)
    logger.info("Connected using SQLAlchemy dialect: %s", engine.dialect.name)

    inspector = inspect(engine)
    allow = registry.allowed_identifiers()
    ok = True
    with engine.connect() as conn:
        for layer in ("bronze", "silver"):
            for entity in ENTITIES:
                schema, name = registry.physical(layer, entity)
                qualified = registry.qualified(layer, entity)
                if not inspector.has_table(name, schema=schema):
                    logger.warning("%s is missing", qualified)
                    ok = False
                    continue
                n = conn.execute(text(count_rows(qualified, allowlist=allow))).scalar()
                logger.info("%s: %s rows", qualified, n)

    if not ok:
        logger.warning("One or more warehouse tables are missing; run dwh-init.")
        sys.exit(1)
    logger.info("All warehouse tables are reachable.")


if __name__ == "__main__":
    main()
