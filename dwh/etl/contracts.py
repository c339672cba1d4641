from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List

import pandas as pd


@dataclass
class ContractViolation:
    table_name: str
    column_name: str
    violation_type: str
    details: str


class RawContractError(ValueError):
    """A raw extract does not match the column contract of its raw table."""

    def __init__(self, violations: List[ContractViolation]):
        self.violations = violations
        details = "; ".join(v.details for v in violations)
        super().__init__(f"Raw extract contract breached: {details}")


def check_required_columns(df: pd.DataFrame, table_name: str, required: Iterable[str]) -> List[ContractViolation]:
    present = {str(c).strip().lower() for c in df.columns}
    missing = [c for c in required if c.lower() not in present]
    return [
        ContractViolation(
            table_name=table_name,
            column_name=col,
            violation_type="missing_column",
            details=f"Column '{col}' not found in {table_name}",
        )
        for col in missing
    ]


def check_unknown_columns(df: pd.DataFrame, table_name: str, expected: Iterable[str]) -> List[ContractViolation]:
    expected_norm = {c.lower() for c in expected}
    return [
        ContractViolation(
            table_name=table_name,
            column_name=str(col),
            violation_type="unknown_column",
            details=f"Column '{col}' is not part of {table_name}",
        )
        for col in df.columns
        if str(col).strip().lower() not in expected_norm
    ]


def violations_to_dataframe(violations: List[ContractViolation]) -> pd.DataFrame:
    if not violations:
        return pd.DataFrame(columns=["table_name", "column_name", "violation_type", "details"])
    return pd.DataFrame([v.__dict__ for v in violations])
