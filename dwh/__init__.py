"""Medallion (bronze -> silver -> gold) sales warehouse over CRM and ERP extracts."""

__version__ = "0.1.0"
