import pandas as pd

from dwh.etl.contracts import (
    RawContractError,
    check_required_columns,
    check_unknown_columns,
    violations_to_dataframe,
)


def test_required_and_unknown_columns():
    df = pd.DataFrame({"CID": ["AW-1"], "Extra": [1]})

    missing = check_required_columns(df, "erp_loc_a101", ["cid", "cntry"])
    assert [(v.column_name, v.violation_type) for v in missing] == [("cntry", "missing_column")]

    unknown = check_unknown_columns(df, "erp_loc_a101", ["cid", "cntry"])
    assert [(v.column_name, v.violation_type) for v in unknown] == [("Extra", "unknown_column")]

    err = RawContractError(missing)
    assert isinstance(err, ValueError)
    assert "cntry" in str(err)

    frame = violations_to_dataframe(missing + unknown)
    assert list(frame.columns) == ["table_name", "column_name", "violation_type", "details"]
    assert len(frame) == 2
    assert violations_to_dataframe([]).empty
