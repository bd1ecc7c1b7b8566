"""
data_collection.py
Ingestion of the Baltimore "Part 1 Victim Based Crime Data" snapshot.

The date column is the only field with a hard format contract: it is parsed
as month/day/year and any row that fails is rejected (counted, logged,
dropped). A bad date never aborts the load.
"""

import logging
from pathlib import Path

import pandas as pd

log = logging.getLogger(__name__)


DATE_COLUMN = "CrimeDate"
DATE_FORMAT = "%m/%d/%Y"

REQUIRED_COLUMNS = {"CrimeDate", "CrimeTime", "Description", "District",
                    "Latitude", "Longitude"}


def read_incidents(filepath) -> pd.DataFrame:
    path = Path(filepath)
    if not path.exists():
        raise FileNotFoundError(f"Data file not found: {filepath}")

    log.info(f"Loading: {filepath}")
    df = pd.read_csv(path, dtype={DATE_COLUMN: str}, low_memory=False)
    log.info(f"Loaded {len(df):,} rows × {len(df.columns)} columns")

    missing_cols = REQUIRED_COLUMNS - set(df.columns)
    if missing_cols:
        raise ValueError(f"Dataset is missing expected columns: {sorted(missing_cols)}")

    # Row position at load time; not stable across re-ingestion
    df.insert(0, "incident_id", range(len(df)))
    return df


def parse_crime_dates(df: pd.DataFrame, audit=None) -> pd.DataFrame:
    """Parse CrimeDate under the fixed format, rejecting rows that don't match."""
    df = df.copy()
    df[DATE_COLUMN] = pd.to_datetime(df[DATE_COLUMN], format=DATE_FORMAT, errors="coerce")

    bad = df[DATE_COLUMN].isna()
    rejected = int(bad.sum())
    if rejected:
        log.warning(f"{rejected:,} rows rejected: {DATE_COLUMN} not in {DATE_FORMAT} format")
    if audit is not None:
        audit.record("Date parse", f"Rows with unparseable {DATE_COLUMN} rejected", rejected)

    return df[~bad].copy()


def load_incidents(filepath, audit=None) -> pd.DataFrame:
    return parse_crime_dates(read_incidents(filepath), audit)
