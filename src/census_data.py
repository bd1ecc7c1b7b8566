"""
census_data.py
Tract-level ACS estimates and boundaries for Baltimore City.

The network dependency sits behind TractDataProvider so a run can be fed a
static fixture instead of the live Census API. Every provider returns the
same long format: GEOID, NAME, variable, estimate, moe (+ geometry).
"""

import logging
import os
from abc import ABC, abstractmethod

import geopandas as gpd
import numpy as np
import pandas as pd
from census import Census
from dotenv import load_dotenv
from us import states

from data_cleaning import PROJECTED_CRS

log = logging.getLogger(__name__)


# ── Constants ─────────────────────────────────────────────────────────────────

STATE_FIPS  = states.MD.fips    # "24"
COUNTY_FIPS = "510"             # Baltimore City
ACS_YEAR    = 2018
SURVEY      = "acs5"

POPULATION_VARIABLE   = "B01003_001"   # Total population
UNEMPLOYMENT_VARIABLE = "DP03_0009P"   # Unemployment rate, civilian labor force (%)

BOUNDARY_URL = "https://www2.census.gov/geo/tiger/GENZ{year}/shp/cb_{year}_{state}_tract_500k.zip"

# ACS annotation values. -555555555 on a MOE means "controlled, no sampling error".
CONTROLLED_MOE = -555555555
ANNOTATION_FLOOR = -100000000

OUTPUT_COLUMNS = ["GEOID", "NAME", "variable", "estimate", "moe"]


# ── Providers ─────────────────────────────────────────────────────────────────

class TractDataProvider(ABC):
    """Given geography parameters, return tract estimates (and optionally polygons)."""

    @abstractmethod
    def fetch(self, variable: str, state_fips: str, county_fips: str, year: int,
              survey: str = SURVEY, geometry: bool = True):
        ...


class StaticTractProvider(TractDataProvider):
    """Serves a fixed frame; used for tests and offline reruns."""

    def __init__(self, frame: pd.DataFrame):
        missing = {"GEOID", "estimate", "moe"} - set(frame.columns)
        if missing:
            raise ValueError(f"Static tract frame is missing columns: {sorted(missing)}")
        self.frame = frame

    def fetch(self, variable, state_fips, county_fips, year, survey=SURVEY, geometry=True):
        df = self.frame
        if "variable" in df.columns:
            df = df[df["variable"] == variable]
        if df.empty:
            raise ValueError(f"No rows for {variable} in static tract data")
        if not geometry and isinstance(df, gpd.GeoDataFrame):
            return pd.DataFrame(df.drop(columns=df.geometry.name))
        if geometry and not isinstance(df, gpd.GeoDataFrame):
            raise ValueError("Static tract data has no geometry")
        return df.copy()


class CensusAPIProvider(TractDataProvider):
    """
    Live ACS fetch through the `census` client, with cartographic boundary
    polygons read straight from the Census file server.

    Errors from the API or the file server are not caught: a failed fetch
    fails the run.
    """

    def __init__(self, api_key: str | None = None, boundary_url: str = BOUNDARY_URL):
        load_dotenv()
        api_key = api_key or os.environ.get("CENSUS_API_KEY")
        if not api_key:
            raise ValueError("Census API key required: pass api_key or set CENSUS_API_KEY")
        self.client = Census(api_key)
        self.boundary_url = boundary_url

    def _dataset(self, variable: str, survey: str):
        if survey != SURVEY:
            return getattr(self.client, survey)
        # Data profile and subject tables live behind separate endpoints
        if variable.startswith("DP"):
            return self.client.acs5dp
        if variable.startswith("S"):
            return self.client.acs5st
        return self.client.acs5

    def fetch(self, variable, state_fips, county_fips, year, survey=SURVEY, geometry=True):
        log.info(f"Fetching {survey} {year} {variable} for tracts in {state_fips}{county_fips}")
        dataset = self._dataset(variable, survey)
        rows = dataset.state_county_tract(
            ("NAME", f"{variable}E", f"{variable}M"),
            state_fips, county_fips, Census.ALL, year=year,
        )
        if not rows:
            raise ValueError(f"Census API returned no rows for {variable} ({year})")

        df = pd.DataFrame(rows)
        df["GEOID"] = df["state"] + df["county"] + df["tract"]
        df["variable"] = variable
        df = df.rename(columns={f"{variable}E": "estimate", f"{variable}M": "moe"})
        df = clean_annotations(df)[OUTPUT_COLUMNS]
        log.info(f"Retrieved {len(df):,} tracts")

        if not geometry:
            return df

        url = self.boundary_url.format(year=year, state=state_fips)
        log.info(f"Reading tract boundaries: {url}")
        shapes = gpd.read_file(url)
        shapes = shapes[shapes["COUNTYFP"] == county_fips][["GEOID", "geometry"]]
        return shapes.merge(df, on="GEOID", how="inner")


def clean_annotations(df: pd.DataFrame) -> pd.DataFrame:
    """Replace ACS annotation sentinels with NaN (or 0 for controlled MOEs)."""
    df = df.copy()
    df["estimate"] = pd.to_numeric(df["estimate"], errors="coerce")
    df["moe"] = pd.to_numeric(df["moe"], errors="coerce")

    df.loc[df["estimate"] <= ANNOTATION_FLOOR, "estimate"] = np.nan
    df.loc[df["moe"] == CONTROLLED_MOE, "moe"] = 0
    df.loc[df["moe"] < 0, "moe"] = np.nan
    return df


# ── Loaders ───────────────────────────────────────────────────────────────────

def load_tract_population(provider: TractDataProvider, state_fips=STATE_FIPS,
                          county_fips=COUNTY_FIPS, variable=POPULATION_VARIABLE,
                          year=ACS_YEAR, survey=SURVEY,
                          target_crs=PROJECTED_CRS) -> gpd.GeoDataFrame:
    tracts = provider.fetch(variable, state_fips, county_fips, year, survey, geometry=True)
    if tracts.crs is None:
        raise ValueError("Tract boundaries have no CRS")

    tracts = tracts.to_crs(epsg=target_crs)
    log.info(f"Tract population: {len(tracts):,} tracts, "
             f"total estimate {tracts['estimate'].sum():,.0f}")
    return tracts


def load_tract_unemployment(provider: TractDataProvider, state_fips=STATE_FIPS,
                            county_fips=COUNTY_FIPS, variable=UNEMPLOYMENT_VARIABLE,
                            year=ACS_YEAR, survey=SURVEY) -> pd.DataFrame:
    df = provider.fetch(variable, state_fips, county_fips, year, survey, geometry=False)
    return (
        df[["GEOID", "estimate", "moe"]]
        .rename(columns={"estimate": "unemployment_rate", "moe": "unemployment_moe"})
        .reset_index(drop=True)
    )


def read_unemployment_csv(filepath, geoid_col: str = "GEOID",
                          rate_col: str = "unemployment_rate") -> pd.DataFrame:
    df = pd.read_csv(filepath, dtype={geoid_col: str})
    missing = {geoid_col, rate_col} - set(df.columns)
    if missing:
        raise ValueError(f"Unemployment table is missing columns: {sorted(missing)}")

    df = df.rename(columns={geoid_col: "GEOID", rate_col: "unemployment_rate"})
    df["GEOID"] = df["GEOID"].str.zfill(11)
    df["unemployment_rate"] = pd.to_numeric(df["unemployment_rate"], errors="coerce")
    return df
