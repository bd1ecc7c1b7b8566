"""
pipeline.py
End-to-end Baltimore property crime analysis.

load → date filter → duplicate check → category filter → geometry →
tract population → spatial aggregate → 2018 rates → choropleth →
correlation with unemployment.

Every stage takes and returns values; nothing is shared between runs.
"""

import logging
from pathlib import Path

import pandas as pd

from census_data import (CensusAPIProvider, load_tract_population,
                         load_tract_unemployment, ACS_YEAR)
from crime_map import N_BINS, render_crime_map
from crime_rates import (aggregate_by_tract, attach_tract_geometry,
                         compute_crime_rates, fill_missing_tracts)
from data_cleaning import END_DATE, START_DATE, AuditTrail, clean_incidents
from data_collection import parse_crime_dates, read_incidents
from eda import run_eda

# ── Logging Setup ─────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(message)s",
    datefmt="%H:%M:%S",
)
log = logging.getLogger(__name__)


def run_pipeline(
    input_path,
    provider,
    unemployment=None,
    output_dir="data/processed",
    year: int = ACS_YEAR,
    start=START_DATE,
    end=END_DATE,
    zero_fill: bool = False,
    n_bins: int = N_BINS,
    self_contained: bool = True,
) -> dict:
    """
    Run the full analysis once.

    Parameters
    ----------
    input_path     : raw incident CSV from Open Baltimore
    provider       : TractDataProvider serving tract population + boundaries
    unemployment   : tract table with GEOID + unemployment_rate, or None to
                     skip the correlation step
    output_dir     : directory for the map, tables, figures and audit log
    year           : target year for rates; also the ACS vintage
    zero_fill      : add zero-count rows for tracts with no incidents
    self_contained : inline map scripts/styles into the HTML

    Returns
    -------
    dict of every intermediate result, keyed by stage
    """
    log.info("=" * 60)
    log.info("BALTIMORE PROPERTY CRIME — PIPELINE START")
    log.info("=" * 60)

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    raw = read_incidents(input_path)
    audit = AuditTrail(total_rows=len(raw))
    incidents = parse_crime_dates(raw, audit)
    incidents, duplicates = clean_incidents(incidents, audit, start, end)

    tracts = load_tract_population(provider, year=year)
    aggregates = aggregate_by_tract(incidents, tracts)
    if zero_fill:
        years = range(pd.Timestamp(start).year, pd.Timestamp(end).year + 1)
        aggregates = fill_missing_tracts(aggregates, tracts, years)

    rates = compute_crime_rates(aggregates, year=year)
    rates_gdf = attach_tract_geometry(rates, tracts)

    crime_map = render_crime_map(rates_gdf, output_dir / f"crime_rate_{year}.html",
                                 n_bins=n_bins, year=year, self_contained=self_contained)

    correlation = run_eda(incidents, rates, unemployment, year, fig_dir=output_dir / "plots")

    # ── Save ──────────────────────────────────────────────────────────────────
    rates.to_csv(output_dir / f"crime_rates_{year}.csv", index=False)
    duplicates.to_csv(output_dir / "duplicates.csv", index=False)
    audit.save(output_dir / "audit.json")
    audit.summary()
    log.info(f"Outputs saved → {output_dir}")

    return {
        "incidents": incidents,
        "duplicates": duplicates,
        "tracts": tracts,
        "aggregates": aggregates,
        "rates": rates,
        "map": crime_map,
        "correlation": correlation,
        "audit": audit,
    }


# ── Entry Point ───────────────────────────────────────────────────────────────

if __name__ == "__main__":
    provider = CensusAPIProvider()
    run_pipeline(
        input_path="data/raw/BPD_Part_1_Victim_Based_Crime_Data.csv",
        provider=provider,
        unemployment=load_tract_unemployment(provider),
        output_dir="data/processed",
    )
