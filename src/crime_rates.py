"""
crime_rates.py
Tract-level aggregation of incidents and per-capita rate computation.
"""

import logging

import geopandas as gpd
import numpy as np
import pandas as pd

log = logging.getLogger(__name__)


TARGET_YEAR = 2018
RATE_PER = 1000


# ── Spatial Aggregation ───────────────────────────────────────────────────────

def aggregate_by_tract(incidents: gpd.GeoDataFrame, tracts: gpd.GeoDataFrame,
                       date_col: str = "CrimeDate") -> pd.DataFrame:
    """
    Count incidents per (tract, year).

    The join predicate is `intersects`, so a point lying on a shared tract
    boundary is counted once for every tract it touches. Tract-years with no
    incidents do not appear; see fill_missing_tracts.
    """
    if incidents.crs != tracts.crs:
        raise ValueError(f"CRS mismatch: incidents {incidents.crs} vs tracts {tracts.crs}")

    joined = gpd.sjoin(
        incidents,
        tracts[["GEOID", "estimate", "moe", tracts.geometry.name]],
        how="inner",
        predicate="intersects",
    )
    outside = len(incidents) - joined.index.nunique()
    log.info(f"Spatial join: {len(joined):,} incident-tract matches, "
             f"{outside:,} incidents outside every tract")

    joined["year"] = joined[date_col].dt.year

    # estimate / moe are constant per tract; max collapses the per-incident copies
    aggregates = (
        joined.groupby(["GEOID", "year"], as_index=False)
        .agg(estimate=("estimate", "max"), moe=("moe", "max"), n=("estimate", "size"))
        .sort_values(["GEOID", "year"])
        .reset_index(drop=True)
    )
    return pd.DataFrame(aggregates)


def fill_missing_tracts(aggregates: pd.DataFrame, tracts: pd.DataFrame, years) -> pd.DataFrame:
    """Add zero-count rows for every tract-year absent from `aggregates`."""
    grid = pd.MultiIndex.from_product(
        [tracts["GEOID"].unique(), list(years)], names=["GEOID", "year"]
    ).to_frame(index=False)
    population = pd.DataFrame(tracts[["GEOID", "estimate", "moe"]])

    filled = grid.merge(aggregates[["GEOID", "year", "n"]], on=["GEOID", "year"], how="left")
    filled["n"] = filled["n"].fillna(0).astype(int)
    filled = filled.merge(population, on="GEOID", how="left")
    return filled[["GEOID", "year", "estimate", "moe", "n"]]


# ── Margins of Error ──────────────────────────────────────────────────────────

def moe_prop(num, denom, moe_num, moe_denom):
    """
    ACS margin of error for a proportion num / denom.

    Uses the ratio formula wherever the proportion formula's radicand is
    negative (Census Bureau guidance). A zero or missing denominator yields NaN.
    """
    num = np.asarray(num, dtype=float)
    denom = np.asarray(denom, dtype=float)
    moe_num = np.asarray(moe_num, dtype=float)
    moe_denom = np.asarray(moe_denom, dtype=float)

    with np.errstate(divide="ignore", invalid="ignore"):
        denom = np.where(denom == 0, np.nan, denom)
        prop = num / denom
        radicand = moe_num ** 2 - prop ** 2 * moe_denom ** 2
        ratio = moe_num ** 2 + prop ** 2 * moe_denom ** 2
        result = np.where(radicand < 0, np.sqrt(ratio), np.sqrt(radicand)) / denom
    return result


# ── Rates ─────────────────────────────────────────────────────────────────────

def compute_crime_rates(aggregates: pd.DataFrame, year: int = TARGET_YEAR,
                        per: int = RATE_PER) -> pd.DataFrame:
    df = aggregates[aggregates["year"] == year].copy()
    if df.empty:
        log.warning(f"No tract aggregates for {year}")

    # Zero population → missing rate, never zero or inf
    population = df["estimate"].astype(float).where(df["estimate"] > 0)
    df["crime_rate"] = df["n"] / population * per
    # Incident counts are treated as exact (numerator MOE = 0)
    df["crime_rate_moe"] = moe_prop(df["n"], population, 0, df["moe"]) * per

    undefined = int(df["crime_rate"].isna().sum())
    if undefined:
        log.warning(f"{undefined} tracts with zero or missing population have no rate")
    log.info(f"Crime rates for {year}: {len(df):,} tracts, "
             f"median {df['crime_rate'].median():.1f} per {per:,}")

    cols = ["GEOID", "year", "n", "estimate", "moe", "crime_rate", "crime_rate_moe"]
    return df[cols].reset_index(drop=True)


def attach_tract_geometry(rates: pd.DataFrame, tracts: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """Left-join rates onto tract polygons so tracts with no rate still draw."""
    keep = [c for c in ("GEOID", "NAME") if c in tracts.columns] + [tracts.geometry.name]
    return tracts[keep].merge(rates, on="GEOID", how="left")
