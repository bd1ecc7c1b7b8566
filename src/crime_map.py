"""
crime_map.py
Interactive choropleth of tract property crime rates.

The map is written as a single HTML file. With self_contained=True every
external script and stylesheet folium references is downloaded and inlined,
so the page opens without a CDN (base map tiles still need a connection).
"""

import logging
import re
from pathlib import Path
from urllib.parse import urljoin

import folium
import geopandas as gpd
import numpy as np
import requests
from branca.colormap import LinearColormap

from data_cleaning import GEOGRAPHIC_CRS

log = logging.getLogger(__name__)


N_BINS = 4
# Five-stop viridis
VIRIDIS = ["#440154", "#3B528B", "#21908C", "#5DC863", "#FDE725"]
MISSING_COLOR = "#BDBDBD"
BASE_TILES = "cartodbpositron"
FILL_OPACITY = 0.7
BORDER_COLOR = "white"
BORDER_WEIGHT = 0.5

ASSET_TIMEOUT = 30

_SCRIPT_TAG = re.compile(r'<script\s+src="([^"]+)"\s*>\s*</script>')
_STYLESHEET_TAG = re.compile(r'<link\s+[^>]*?rel="stylesheet"[^>]*?href="([^"]+)"[^>]*?/?>')
_CSS_URL = re.compile(r"""url\(\s*(['"]?)([^'")]+)\1\s*\)""")


def _is_missing(value) -> bool:
    return value is None or (isinstance(value, float) and np.isnan(value))


def rate_bins(values, n_bins: int = N_BINS) -> np.ndarray:
    """Equal-width bin edges spanning the observed (non-missing) values."""
    values = np.asarray(values, dtype=float)
    values = values[~np.isnan(values)]
    if values.size == 0:
        raise ValueError("No crime rates to bin")
    if n_bins < 1:
        raise ValueError(f"n_bins must be positive, got {n_bins}")

    lo, hi = values.min(), values.max()
    if lo == hi:
        hi = lo + 1.0
    return np.linspace(lo, hi, n_bins + 1)


def build_colormap(values, n_bins: int = N_BINS, year=None):
    """
    Step colormap over the observed rates. With no rate at all (no incident
    inside a tract, or no tract with population) the legend spans a 0-1
    placeholder and every tract draws in MISSING_COLOR.
    """
    values = np.asarray(values, dtype=float)
    if np.isnan(values).all():
        log.warning("No tract has a crime rate; map will show every tract as missing")
        edges = np.linspace(0.0, 1.0, n_bins + 1)
    else:
        edges = rate_bins(values, n_bins)
    linear = LinearColormap(VIRIDIS, vmin=edges[0], vmax=edges[-1])
    step = linear.to_step(index=list(edges))
    label = f"Property crime rate, {year}" if year is not None else "Property crime rate"
    step.caption = f"{label} (per 1,000 residents)"
    return step


def render_crime_map(rates: gpd.GeoDataFrame, output_path, n_bins: int = N_BINS,
                     year=None, self_contained: bool = True) -> folium.Map:
    gdf = rates.to_crs(epsg=GEOGRAPHIC_CRS)
    cols = [c for c in ("GEOID", "NAME", "n", "crime_rate", "crime_rate_moe") if c in gdf.columns]
    gdf = gdf[cols + [gdf.geometry.name]].copy()
    gdf["crime_rate"] = gdf["crime_rate"].astype(float).round(2)
    gdf["crime_rate_moe"] = gdf["crime_rate_moe"].astype(float).round(2)

    colormap = build_colormap(gdf["crime_rate"], n_bins, year)

    minx, miny, maxx, maxy = gdf.total_bounds
    m = folium.Map(location=[(miny + maxy) / 2, (minx + maxx) / 2],
                   tiles=BASE_TILES, control_scale=True)
    m.fit_bounds([[miny, minx], [maxy, maxx]])

    def _style(feature):
        rate = feature["properties"].get("crime_rate")
        return {
            "fillColor": MISSING_COLOR if _is_missing(rate) else colormap(rate),
            "fillOpacity": FILL_OPACITY,
            "color": BORDER_COLOR,
            "weight": BORDER_WEIGHT,
        }

    folium.GeoJson(
        gdf,
        name=colormap.caption,
        style_function=_style,
        tooltip=folium.GeoJsonTooltip(
            fields=["GEOID", "crime_rate", "crime_rate_moe"],
            aliases=["Tract", "Rate per 1,000", "MOE (±)"],
        ),
    ).add_to(m)
    colormap.add_to(m)
    folium.LayerControl().add_to(m)

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    if self_contained:
        html = inline_assets(m.get_root().render())
        output_path.write_text(html, encoding="utf-8")
    else:
        m.save(str(output_path))
    log.info(f"Crime map saved → {output_path}")
    return m


# ── Asset inlining ────────────────────────────────────────────────────────────

def _absolute(url: str) -> str:
    return "https:" + url if url.startswith("//") else url


def _fetch_asset(url: str) -> str:
    url = _absolute(url)
    log.info(f"Inlining {url}")
    response = requests.get(url, timeout=ASSET_TIMEOUT)
    response.raise_for_status()
    return response.text


def inline_assets(html: str) -> str:
    """Replace <script src> and stylesheet <link> tags with their contents."""
    def _script(match):
        body = _fetch_asset(match.group(1)).replace("</script", "<\\/script")
        return f"<script>{body}</script>"

    def _stylesheet(match):
        base = _absolute(match.group(1))
        return f"<style>{rebase_css_urls(_fetch_asset(base), base)}</style>"

    html = _SCRIPT_TAG.sub(_script, html)
    return _STYLESHEET_TAG.sub(_stylesheet, html)


def rebase_css_urls(css: str, base_url: str) -> str:
    """
    Make relative url(...) references absolute against the stylesheet's own
    location. Once inlined, a relative reference would otherwise resolve next
    to the HTML file (leaflet's layer-control icon, icon fonts).
    """
    def _rebase(match):
        ref = match.group(2).strip()
        if ref.startswith(("data:", "#")):
            return match.group(0)
        return f'url("{urljoin(base_url, ref)}")'

    return _CSS_URL.sub(_rebase, css)
