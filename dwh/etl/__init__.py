"""Public exports for the load and projection steps."""

from .bronze import load_bronze
from .gold import create_gold_views
from .silver import load_silver

__all__ = ["load_bronze", "load_silver", "create_gold_views"]
