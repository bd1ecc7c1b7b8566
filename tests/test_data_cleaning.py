"""
Tests for the cleaning steps: date window, duplicate report, category
allow-list, geometry construction and the audit trail.
"""

import json

import numpy as np
import pandas as pd
import pytest

from conftest import incident_row, IN_T1, IN_T2
from data_cleaning import (PROPERTY_CRIMES, AuditTrail, build_geometry,
                           clean_incidents, filter_categories,
                           filter_date_range, find_duplicates)


def _frame(rows):
    df = pd.DataFrame(rows)
    df["CrimeDate"] = pd.to_datetime(df["CrimeDate"], format="%m/%d/%Y")
    df.insert(0, "incident_id", range(len(df)))
    return df


def test_date_range_is_inclusive_at_both_ends():
    """2014-01-01 and 2018-12-31 are kept; the days either side are not."""
    df = _frame([
        incident_row("12/31/2013"),
        incident_row("01/01/2014"),
        incident_row("12/31/2018"),
        incident_row("01/01/2019"),
    ])

    out = filter_date_range(df)

    assert list(out["CrimeDate"]) == [pd.Timestamp(2014, 1, 1), pd.Timestamp(2018, 12, 31)]
    assert (out["CrimeDate"] >= pd.Timestamp(2014, 1, 1)).all()
    assert (out["CrimeDate"] <= pd.Timestamp(2018, 12, 31)).all()


def test_date_range_rejects_inverted_window():
    df = _frame([incident_row("06/01/2018")])
    with pytest.raises(ValueError):
        filter_date_range(df, "2018-12-31", "2014-01-01")


def test_find_duplicates_reports_without_dropping():
    """Identical rows are grouped and counted, and the input keeps every row."""
    df = _frame([
        incident_row("06/01/2018"),
        incident_row("06/01/2018"),
        incident_row("06/02/2018", description="LARCENY"),
    ])
    before = df.copy()
    audit = AuditTrail(total_rows=len(df))

    groups = find_duplicates(df, audit)

    assert len(groups) == 1
    assert groups.loc[0, "count"] == 2
    assert groups.loc[0, "Description"] == "BURGLARY"
    pd.testing.assert_frame_equal(df, before)
    assert audit.steps[0]["rows_affected"] == 1


def test_find_duplicates_empty_when_all_unique():
    df = _frame([incident_row("06/01/2018"), incident_row("06/02/2018")])

    groups = find_duplicates(df)

    assert groups.empty
    assert "count" in groups.columns


def test_category_filter_keeps_only_property_crimes():
    """Exact, case-sensitive membership in the nine allowed descriptions."""
    df = _frame([
        incident_row("06/01/2018", description="BURGLARY"),
        incident_row("06/01/2018", description="COMMON ASSAULT"),
        incident_row("06/01/2018", description="burglary"),
        incident_row("06/01/2018", description="ROBBERY - CARJACKING"),
        incident_row("06/01/2018", description="ROBBERY - STREET "),
    ])

    out = filter_categories(df)

    assert len(PROPERTY_CRIMES) == 9
    assert list(out["Description"]) == ["BURGLARY", "ROBBERY - CARJACKING"]
    assert set(out["incident_id"]) <= set(df["incident_id"])
    assert "COMMON ASSAULT" not in set(out["Description"])


def test_build_geometry_drops_missing_coordinates():
    """'NA' or non-numeric coordinates never reach the output."""
    rows = [incident_row("06/01/2018", coords=IN_T1),
            incident_row("06/01/2018", coords=("NA", 39.29)),
            incident_row("06/01/2018", coords=(-76.62, "NA")),
            incident_row("06/01/2018", coords=("", "")),
            incident_row("06/01/2018", coords=IN_T2)]
    df = _frame(rows)

    gdf = build_geometry(df)

    assert list(gdf["incident_id"]) == [0, 4]
    assert gdf.crs.to_epsg() == 6487
    assert gdf.geometry.notna().all()


def test_build_geometry_projects_out_of_degrees():
    """Projected coordinates are metres, nowhere near the raw lon/lat."""
    gdf = build_geometry(_frame([incident_row("06/01/2018", coords=IN_T1)]))

    point = gdf.geometry.iloc[0]
    assert abs(point.x - IN_T1[0]) > 1000
    assert abs(point.y - IN_T1[1]) > 1000


def test_projection_round_trip():
    """4326 → 6487 → 4326 returns the original coordinates."""
    gdf = build_geometry(_frame([incident_row("06/01/2018", coords=IN_T1),
                                 incident_row("06/01/2018", coords=IN_T2)]))

    back = gdf.to_crs(epsg=4326)

    np.testing.assert_allclose(back.geometry.x, [IN_T1[0], IN_T2[0]], atol=1e-6)
    np.testing.assert_allclose(back.geometry.y, [IN_T1[1], IN_T2[1]], atol=1e-6)


def test_clean_incidents_runs_steps_in_order():
    df = _frame([
        incident_row("06/01/2018"),
        incident_row("06/01/2018"),
        incident_row("06/01/2018", description="COMMON ASSAULT"),
        incident_row("06/01/2013"),
        incident_row("06/01/2018", coords=("NA", "NA")),
    ])
    audit = AuditTrail(total_rows=len(df))

    gdf, duplicates = clean_incidents(df, audit)

    assert list(gdf["incident_id"]) == [0, 1]
    assert duplicates["count"].tolist() == [2]
    assert [s["step"] for s in audit.steps] == [
        "Date range", "Duplicate check", "Category filter", "Missing coordinates"]


def test_audit_trail_saves_numpy_values(tmp_path):
    audit = AuditTrail(total_rows=200)
    audit.record("Step", "Something removed", np.int64(50))

    path = tmp_path / "audit.json"
    audit.save(path)

    saved = json.loads(path.read_text())
    assert saved["total_rows"] == 200
    assert saved["steps"][0]["rows_affected"] == 50
    assert saved["steps"][0]["pct_affected"] == 25.0
