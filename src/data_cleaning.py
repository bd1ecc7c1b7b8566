"""
data_cleaning.py
Cleaning steps for Baltimore property crime incidents.

Design principles:
- Every transformation is logged with before/after counts
- No silent data loss — all decisions are documented
- Functions are pure (input → output), no global state
- Duplicates are reported for review, never dropped automatically
"""

import json
import logging
from datetime import date

import geopandas as gpd
import numpy as np
import pandas as pd

log = logging.getLogger(__name__)


# ── Constants ─────────────────────────────────────────────────────────────────

START_DATE = date(2014, 1, 1)
END_DATE   = date(2018, 12, 31)

# Exact, case-sensitive matches against the Description column
PROPERTY_CRIMES = (
    "BURGLARY",
    "LARCENY",
    "LARCENY FROM AUTO",
    "AUTO THEFT",
    "ARSON",
    "ROBBERY - STREET",
    "ROBBERY - CARJACKING",
    "ROBBERY - COMMERCIAL",
    "ROBBERY - RESIDENCE",
)

GEOGRAPHIC_CRS = 4326   # WGS84 lon/lat
PROJECTED_CRS  = 6487   # NAD83(2011) / Maryland, metres


# ── Audit Trail ───────────────────────────────────────────────────────────────

class AuditTrail:
    """Tracks every cleaning decision with before/after row counts and change stats."""

    def __init__(self, total_rows: int):
        self.total_rows = total_rows
        self.steps: list[dict] = []

    def record(self, step: str, description: str, changed: int, detail: str = ""):
        pct = changed / self.total_rows * 100 if self.total_rows else 0.0
        self.steps.append({
            "step": step,
            "description": description,
            "rows_affected": changed,
            "pct_affected": round(pct, 2),
            "detail": detail,
        })
        log.info(f"[{step}] {description} → {changed:,} rows affected ({pct:.1f}%) {detail}")

    def save(self, path):
        class _NumpyEncoder(json.JSONEncoder):
            """Convert numpy int/float types to native Python before serialising."""
            def default(self, obj):
                if isinstance(obj, np.integer):
                    return int(obj)
                if isinstance(obj, np.floating):
                    return float(obj)
                if isinstance(obj, np.ndarray):
                    return obj.tolist()
                return super().default(obj)

        with open(path, "w") as f:
            json.dump({"total_rows": self.total_rows, "steps": self.steps}, f,
                      indent=2, cls=_NumpyEncoder)
        log.info(f"Audit trail saved → {path}")

    def summary(self):
        print("\n" + "=" * 65)
        print("CLEANING AUDIT SUMMARY")
        print("=" * 65)
        print(f"{'Step':<22} {'Affected':>10} {'%':>7}  Description")
        print("-" * 65)
        for s in self.steps:
            print(f"{s['step']:<22} {s['rows_affected']:>10,} {s['pct_affected']:>6.1f}%  {s['description']}")
        print("=" * 65)


def _record(audit, step: str, description: str, changed: int, detail: str = ""):
    if audit is not None:
        audit.record(step, description, changed, detail)
    else:
        log.info(f"[{step}] {description} → {changed:,} rows affected {detail}")


# ── Step 1: Temporal Filter ───────────────────────────────────────────────────

def filter_date_range(df: pd.DataFrame, start=START_DATE, end=END_DATE,
                      audit=None, date_col: str = "CrimeDate") -> pd.DataFrame:
    start, end = pd.Timestamp(start), pd.Timestamp(end)
    if start > end:
        raise ValueError(f"Start date {start.date()} is after end date {end.date()}")

    # Dates carry no time component, so an inclusive day comparison is exact
    mask = df[date_col].between(start, end, inclusive="both")
    _record(audit, "Date range", f"Rows outside {start.date()} – {end.date()} removed",
            int((~mask).sum()))
    return df[mask].copy()


# ── Step 2: Duplicate Check ───────────────────────────────────────────────────

def find_duplicates(df: pd.DataFrame, audit=None) -> pd.DataFrame:
    """
    Report groups of rows identical across every source column.

    Diagnostic only: the returned table is for manual review and the input
    frame is left exactly as it is. incident_id is synthetic (row position)
    so it is excluded from the comparison.
    """
    cols = [c for c in df.columns if c not in ("incident_id", "geometry")]
    dupe_mask = df.duplicated(subset=cols, keep=False)

    if not dupe_mask.any():
        groups = pd.DataFrame(columns=cols + ["count"])
    else:
        groups = (
            df.loc[dupe_mask, cols]
            .groupby(cols, dropna=False)
            .size()
            .reset_index(name="count")
            .sort_values("count", ascending=False)
            .reset_index(drop=True)
        )

    extra_rows = int(df.duplicated(subset=cols, keep="first").sum())
    _record(audit, "Duplicate check", "Exact duplicate rows flagged (kept in data)",
            extra_rows, f"({len(groups):,} groups)")
    return groups


# ── Step 3: Category Filter ───────────────────────────────────────────────────

def filter_categories(df: pd.DataFrame, categories=PROPERTY_CRIMES, audit=None,
                      category_col: str = "Description") -> pd.DataFrame:
    mask = df[category_col].isin(set(categories))
    _record(audit, "Category filter", f"Rows outside {len(categories)} property crime types removed",
            int((~mask).sum()))
    return df[mask].copy()


# ── Step 4: Geometry ──────────────────────────────────────────────────────────

def build_geometry(df: pd.DataFrame, audit=None,
                   source_crs=GEOGRAPHIC_CRS, target_crs=PROJECTED_CRS,
                   lon_col: str = "Longitude", lat_col: str = "Latitude") -> gpd.GeoDataFrame:
    df = df.copy()
    # "NA", blanks and any other non-numeric text all become NaN
    df[lon_col] = pd.to_numeric(df[lon_col], errors="coerce")
    df[lat_col] = pd.to_numeric(df[lat_col], errors="coerce")

    missing = df[lon_col].isna() | df[lat_col].isna()
    _record(audit, "Missing coordinates", "Rows without numeric lat/lon removed",
            int(missing.sum()))
    df = df[~missing]

    gdf = gpd.GeoDataFrame(
        df,
        geometry=gpd.points_from_xy(df[lon_col], df[lat_col]),
        crs=f"EPSG:{source_crs}",
    )
    log.info(f"Reprojecting {len(gdf):,} points EPSG:{source_crs} → EPSG:{target_crs}")
    return gdf.to_crs(epsg=target_crs)


# ── Pipeline ──────────────────────────────────────────────────────────────────

def clean_incidents(df: pd.DataFrame, audit: AuditTrail,
                    start=START_DATE, end=END_DATE, categories=PROPERTY_CRIMES):
    """
    Ordered cleaning steps for parsed incidents.

    Returns
    -------
    (incidents, duplicates) — projected point GeoDataFrame and the duplicate
    report produced after the date filter.
    """
    df = filter_date_range(df, start, end, audit)
    duplicates = find_duplicates(df, audit)
    df = filter_categories(df, categories, audit)
    gdf = build_geometry(df, audit)
    log.info(f"Cleaned incidents: {len(gdf):,} rows")
    return gdf, duplicates
