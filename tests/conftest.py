"""
Shared fixtures: a pair of adjacent synthetic tracts in central Baltimore and
a helper that writes incident CSVs in the Open Baltimore column layout.
"""

import matplotlib
matplotlib.use("Agg")

import geopandas as gpd
import pandas as pd
import pytest
from shapely.geometry import box

from census_data import StaticTractProvider

T1 = "24510000100"
T2 = "24510000200"

# Inside T1 / inside T2 / outside both (lon, lat)
IN_T1 = (-76.62, 39.29)
IN_T2 = (-76.60, 39.29)
OUTSIDE = (-76.50, 39.40)

INCIDENT_COLUMNS = ["CrimeDate", "CrimeTime", "CrimeCode", "Description",
                    "District", "Neighborhood", "Longitude", "Latitude"]


@pytest.fixture
def tracts_wgs84():
    return gpd.GeoDataFrame(
        {
            "GEOID": [T1, T2],
            "NAME": ["Census Tract 1", "Census Tract 2"],
            "variable": ["B01003_001", "B01003_001"],
            "estimate": [2000.0, 1000.0],
            "moe": [50.0, 80.0],
        },
        geometry=[box(-76.63, 39.28, -76.61, 39.30), box(-76.61, 39.28, -76.59, 39.30)],
        crs="EPSG:4326",
    )


@pytest.fixture
def provider(tracts_wgs84):
    return StaticTractProvider(tracts_wgs84)


def incident_row(date, description="BURGLARY", coords=IN_T1, district="CENTRAL"):
    lon, lat = coords
    return {
        "CrimeDate": date,
        "CrimeTime": "12:00:00",
        "CrimeCode": "5A",
        "Description": description,
        "District": district,
        "Neighborhood": "Downtown",
        "Longitude": lon,
        "Latitude": lat,
    }


@pytest.fixture
def write_incidents(tmp_path):
    """Write rows (dicts) to a CSV and return its path."""
    def _write(rows, name="incidents.csv", columns=INCIDENT_COLUMNS):
        path = tmp_path / name
        pd.DataFrame(rows, columns=columns).to_csv(path, index=False)
        return path
    return _write
