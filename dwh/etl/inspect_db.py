"""Utility for snapshotting the warehouse schema into YAML documentation."""

from pathlib import Path

import click
import yaml
from sqlalchemy import inspect

from dwh.etl.tables import TableRegistry
from dwh.utils.config import load_config
from dwh.utils.db import get_db_connection
from dwh.utils.logger import get_logger

logger = get_logger(__name__)


def _columns(inspector, name, schema):
    return [
        {
            "name": column["name"],
            "type": str(column["type"]),
            "nullable": column["nullable"],
            "default": column["default"],
        }
        for column in inspector.get_columns(name, schema=schema)
    ]


def inspect_db(engine, output_path, registry=None):
    """Inspects the database and writes its tables and views to a YAML file.

    Args:
        engine (sqlalchemy.engine.base.Engine): The database engine.
        output_path (str | Path): The path to the output YAML file.
        registry (TableRegistry, optional): Decides which schemas are scanned.

    Returns:
        dict: The snapshot that was written, keyed by qualified object name.
    """
    logger.info("Inspecting database and generating schema...")
    registry = registry or TableRegistry.for_engine(engine)
    inspector = inspect(engine)
    schemas = sorted(set(registry.schemas.values())) if registry.use_schemas else [None]

    snapshot = {"tables": {}, "views": {}}
    for schema in schemas:
        prefix = f"{schema}." if schema else ""
        for table_name in inspector.get_table_names(schema=schema):
            snapshot["tables"][prefix + table_name] = _columns(inspector, table_name, schema)
        for view_name in inspector.get_view_names(schema=schema):
            snapshot["views"][prefix + view_name] = _columns(inspector, view_name, schema)

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        yaml.safe_dump(snapshot, f, default_flow_style=False, sort_keys=True)

    logger.info("Successfully generated schema to %s", output_path)
    return snapshot


@click.command()
@click.option("--config", default=str((Path(__file__).parents[1] / "config.yaml").resolve()))
@click.option("--output", default=None, help="YAML path (default: <outputs>/schema.yml)")
def main(config, output):
    cfg = load_config(config)
    engine = get_db_connection(cfg)
    registry = TableRegistry.for_engine(engine, cfg)
    inspect_db(engine, output or Path(cfg.paths.outputs) / "schema.yml", registry)


if __name__ == "__main__":
    main()
