from __future__ import annotations

from pathlib import Path

import click

from dwh.etl.tables import TableRegistry
from dwh.utils.config import load_config
from dwh.utils.db import get_db_connection, validate_connection
from dwh.utils.logger import get_logger, set_log_level


logger = get_logger(__name__)


@click.command()
@click.option("--config", default=str((Path(__file__).parents[1] / "config.yaml").resolve()))
@click.option("--with-key-maps/--no-key-maps", default=False, help="Also create the gold surrogate key maps")
@click.option("--drop-existing/--keep-existing", default=False, help="Drop raw/standardized tables before creating them")
def main(config: str, with_key_maps: bool, drop_existing: bool) -> None:
    """Create the layer schemas (SQL Server) and the raw/standardized tables."""
    cfg = load_config(config)
    set_log_level(cfg.logging.level)
    engine = get_db_connection(cfg)
    if not validate_connection(engine):
        raise click.ClickException("Database connection is unhealthy")
    registry = TableRegistry.for_engine(engine, cfg)
    if drop_existing:
        logger.warning("Dropping existing raw and standardized tables")
        registry.drop_tables(engine, ["bronze", "silver"])
    layers = ["bronze", "silver"]
    if with_key_maps or cfg.gold.surrogate_keys == "stable":
        layers.append("gold")
    registry.create_tables(engine, layers)
    registry.create_schemas(engine, ["gold"])
    logger.info("Warehouse initialized (%s): layers %s", engine.dialect.name, layers)


if __name__ == "__main__":
    main()
