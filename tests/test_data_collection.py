"""
Tests for incident ingestion and date parsing.
"""

import pandas as pd
import pytest

from conftest import incident_row, INCIDENT_COLUMNS
from data_cleaning import AuditTrail
from data_collection import load_incidents, read_incidents


def test_missing_file_raises(tmp_path):
    """A path that does not exist fails the load outright."""
    with pytest.raises(FileNotFoundError):
        read_incidents(tmp_path / "nope.csv")


def test_missing_required_column_raises(write_incidents):
    """The upstream column contract is checked on load."""
    columns = [c for c in INCIDENT_COLUMNS if c != "District"]
    path = write_incidents([incident_row("06/01/2018")], columns=columns)

    with pytest.raises(ValueError, match="District"):
        read_incidents(path)


def test_dates_parsed_with_fixed_format(write_incidents):
    """CrimeDate is parsed as month/day/year into a datetime column."""
    path = write_incidents([incident_row("06/01/2018"), incident_row("12/31/2014")])

    df = load_incidents(path)

    assert pd.api.types.is_datetime64_any_dtype(df["CrimeDate"])
    assert list(df["CrimeDate"]) == [pd.Timestamp(2018, 6, 1), pd.Timestamp(2014, 12, 31)]


def test_malformed_dates_reject_row_not_load(write_incidents):
    """Rows with a date in the wrong format are dropped; the rest load."""
    rows = [
        incident_row("06/01/2018"),
        incident_row("2018-06-02"),
        incident_row("13/45/2018"),
        incident_row("07/01/2018"),
    ]
    path = write_incidents(rows)
    audit = AuditTrail(total_rows=len(rows))

    df = load_incidents(path, audit)

    assert len(df) == 2
    # Identifiers are row positions from the raw file
    assert list(df["incident_id"]) == [0, 3]
    assert audit.steps[0]["rows_affected"] == 2


def test_missing_coordinates_survive_ingestion(write_incidents):
    """Coordinate problems are handled later, not at load time."""
    row = incident_row("06/01/2018")
    row["Longitude"] = "NA"
    path = write_incidents([row])

    df = load_incidents(path)

    assert len(df) == 1
    assert df["Longitude"].isna().all()
