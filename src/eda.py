"""
eda.py
Exploratory analysis of Baltimore property crime, 2014–2018.

Design principles:
- Every plot answers a specific question
- Visuals are publication-ready (labeled, titled, sourced)
- Rates are shown with their margins of error, not as exact values
- The crime / unemployment relationship is tested, not just plotted
"""

import warnings
from pathlib import Path

import matplotlib.pyplot as plt
import matplotlib.ticker as mticker
import pandas as pd
import seaborn as sns
from scipy import stats

warnings.filterwarnings("ignore")

# ── Style ─────────────────────────────────────────────────────────────────────
PALETTE  = "viridis"
ACCENT   = "#D62728"   # red — draws attention to key findings
NEUTRAL  = "#4C72B0"   # blue — standard bars
BG_GRAY  = "#F7F7F7"
FIG_DIR  = Path("data/processed/eda/plots")

MIN_PAIRS = 3
ALPHA = 0.05

plt.rcParams.update({
    "figure.facecolor": BG_GRAY,
    "axes.facecolor":   BG_GRAY,
    "axes.spines.top":  False,
    "axes.spines.right": False,
    "axes.labelsize":   11,
    "axes.titlesize":   13,
    "axes.titleweight": "bold",
    "xtick.labelsize":  9,
    "ytick.labelsize":  9,
    "font.family":      "sans-serif",
})


# ── Helpers ───────────────────────────────────────────────────────────────────

def _save(fig: plt.Figure, name: str, fig_dir=FIG_DIR) -> Path:
    fig_dir = Path(fig_dir)
    fig_dir.mkdir(parents=True, exist_ok=True)
    path = fig_dir / f"{name}.png"
    fig.savefig(path, dpi=150, bbox_inches="tight")
    plt.close(fig)
    print(f"  ✓ Saved → {path}")
    return path


def _source_note(ax, note="Source: Baltimore Police Department / Open Baltimore; ACS 5-year"):
    ax.annotate(note, xy=(0, -0.12), xycoords="axes fraction",
                fontsize=7, color="gray")


def fmt_thousands(ax, axis="y"):
    fmt = mticker.FuncFormatter(lambda x, _: f"{x:,.0f}")
    if axis == "y":
        ax.yaxis.set_major_formatter(fmt)
    else:
        ax.xaxis.set_major_formatter(fmt)


def _drop_geometry(df: pd.DataFrame) -> pd.DataFrame:
    if "geometry" in df.columns:
        df = df.drop(columns="geometry")
    return pd.DataFrame(df)


# ── EDA 1: Incidents Over Time ────────────────────────────────────────────────

def eda_yearly_trend(incidents: pd.DataFrame, fig_dir=FIG_DIR) -> pd.DataFrame:
    """
    Q: Is property crime rising or falling across 2014–2018, and which
    offence types drive the change?
    """
    print("=" * 60)
    print("EDA 1 | YEARLY TREND")
    print("=" * 60)

    df = _drop_geometry(incidents)
    df["Year"] = df["CrimeDate"].dt.year
    yearly = df.groupby(["Year", "Description"]).size().unstack(fill_value=0)

    fig, axes = plt.subplots(1, 2, figsize=(14, 5))
    fig.suptitle("Property Crime Over Time", fontsize=14, fontweight="bold")

    totals = yearly.sum(axis=1)
    axes[0].bar(totals.index, totals.values, color=NEUTRAL, alpha=0.6)
    axes[0].plot(totals.index, totals.values, marker="o", color=ACCENT, linewidth=2)
    axes[0].set_xticks(totals.index)
    axes[0].set_title("Property Crimes per Year")
    axes[0].set_ylabel("Number of Incidents")
    fmt_thousands(axes[0])

    yearly.plot(ax=axes[1], marker="o", colormap=PALETTE)
    axes[1].set_xticks(yearly.index)
    axes[1].set_title("By Offence Type")
    axes[1].set_ylabel("Number of Incidents")
    axes[1].legend(title="Description", bbox_to_anchor=(1.01, 1), loc="upper left", fontsize=8)
    fmt_thousands(axes[1])
    _source_note(axes[1])

    plt.tight_layout()
    _save(fig, "01_yearly_trend", fig_dir)

    if len(totals) > 1:
        change = (totals.iloc[-1] - totals.iloc[0]) / totals.iloc[0] * 100
        print(f"  {totals.index[0]} → {totals.index[-1]}: {change:+.1f}%")
    return yearly


# ── EDA 2: Offence Mix ────────────────────────────────────────────────────────

def eda_category_breakdown(incidents: pd.DataFrame, fig_dir=FIG_DIR) -> pd.DataFrame:
    """
    Q: Which offence types dominate, and how does the mix vary by district?
    """
    print("\n" + "=" * 60)
    print("EDA 2 | OFFENCE MIX")
    print("=" * 60)

    df = _drop_geometry(incidents)
    counts = df["Description"].value_counts()
    by_district = df.groupby(["District", "Description"]).size().unstack(fill_value=0)

    fig, axes = plt.subplots(1, 2, figsize=(15, 6))
    fig.suptitle("Property Crime Composition", fontsize=14, fontweight="bold")

    bar_colors = [ACCENT if i == 0 else NEUTRAL for i in range(len(counts))]
    axes[0].barh(counts.index[::-1], counts.values[::-1], color=bar_colors[::-1])
    axes[0].set_title("Incidents by Offence Type")
    axes[0].set_xlabel("Number of Incidents")
    fmt_thousands(axes[0], axis="x")

    # Share within each district, so large districts don't dominate
    share = by_district.div(by_district.sum(axis=1), axis=0) * 100
    share.plot(kind="barh", stacked=True, ax=axes[1], colormap=PALETTE)
    axes[1].set_title("Offence Mix by Police District (%)")
    axes[1].set_xlabel("% of District Incidents")
    axes[1].legend(title="Description", bbox_to_anchor=(1.01, 1), loc="upper left", fontsize=8)
    _source_note(axes[1])

    plt.tight_layout()
    _save(fig, "02_offence_mix", fig_dir)

    print(f"  Most common offence: {counts.idxmax()} ({counts.max():,}, "
          f"{counts.max()/len(df)*100:.1f}%)")
    return by_district


# ── EDA 3: Rate Distribution ──────────────────────────────────────────────────

def eda_rate_distribution(rates: pd.DataFrame, year=None, top_n: int = 15, fig_dir=FIG_DIR):
    """
    Q: How are tract crime rates distributed, and how precise are the highest?
    """
    print("\n" + "=" * 60)
    print("EDA 3 | TRACT RATE DISTRIBUTION")
    print("=" * 60)

    df = _drop_geometry(rates).dropna(subset=["crime_rate"])
    if df.empty:
        print("  No tract has a rate; nothing to plot")
        return
    label = f" ({year})" if year is not None else ""

    fig, axes = plt.subplots(1, 2, figsize=(14, 6))
    fig.suptitle(f"Property Crime Rate per 1,000 Residents{label}", fontsize=14, fontweight="bold")

    axes[0].hist(df["crime_rate"], bins=30, color=NEUTRAL, edgecolor="white", alpha=0.85)
    med = df["crime_rate"].median()
    axes[0].axvline(med, color=ACCENT, linewidth=2, label=f"Median: {med:.1f}")
    axes[0].set_title(f"Tract Rates (n={len(df):,})")
    axes[0].set_xlabel("Incidents per 1,000 Residents")
    axes[0].set_ylabel("Number of Tracts")
    axes[0].legend()

    top = df.nlargest(top_n, "crime_rate").iloc[::-1]
    axes[1].barh(top["GEOID"], top["crime_rate"], xerr=top["crime_rate_moe"],
                 color=NEUTRAL, ecolor=ACCENT, capsize=3)
    axes[1].set_title(f"Top {len(top)} Tracts (bars = MOE)")
    axes[1].set_xlabel("Incidents per 1,000 Residents")
    _source_note(axes[1])

    plt.tight_layout()
    _save(fig, "03_rate_distribution", fig_dir)

    print(f"  Median tract rate: {med:.1f} per 1,000")


# ── EDA 4: Crime vs Unemployment ─────────────────────────────────────────────

def eda_crime_unemployment(rates: pd.DataFrame, unemployment: pd.DataFrame,
                           year=None, fig_dir=FIG_DIR,
                           rate_col: str = "unemployment_rate") -> dict:
    """
    Q: Do tracts with higher unemployment have higher property crime rates?

    Tracts present in only one table are excluded (inner join), as are tracts
    with a missing rate on either side.
    """
    print("\n" + "=" * 60)
    print("EDA 4 | CRIME RATE vs UNEMPLOYMENT")
    print("=" * 60)

    merged = (
        _drop_geometry(rates)[["GEOID", "crime_rate"]]
        .merge(_drop_geometry(unemployment)[["GEOID", rate_col]], on="GEOID", how="inner")
        .dropna(subset=["crime_rate", rate_col])
    )
    if len(merged) < MIN_PAIRS:
        raise ValueError(f"Need at least {MIN_PAIRS} tracts with both values, got {len(merged)}")

    corr, p_value = stats.pearsonr(merged[rate_col], merged["crime_rate"])

    fig, ax = plt.subplots(figsize=(8, 6))
    sns.regplot(data=merged, x=rate_col, y="crime_rate", ci=95, ax=ax,
                scatter_kws={"color": NEUTRAL, "alpha": 0.7, "edgecolor": "white"},
                line_kws={"color": ACCENT})
    ax.text(0.03, 0.95, f"Pearson r = {corr:.3f}\np = {p_value:.4f}\nn = {len(merged)}",
            transform=ax.transAxes, va="top", fontsize=10,
            bbox=dict(boxstyle="round", facecolor="white", alpha=0.8))
    label = f" ({year})" if year is not None else ""
    ax.set_title(f"Property Crime Rate vs Unemployment by Tract{label}")
    ax.set_xlabel("Unemployment Rate (%)")
    ax.set_ylabel("Property Crimes per 1,000 Residents")
    _source_note(ax)

    path = _save(fig, "04_crime_vs_unemployment", fig_dir)

    significant = bool(p_value < ALPHA)
    print(f"  Correlation: {corr:.3f}")
    print(f"  P-value: {p_value:.4f}")
    print(f"  Significant: {'YES' if significant else 'NO'}")

    return {
        "correlation": float(corr),
        "p_value": float(p_value),
        "n": int(len(merged)),
        "significant": significant,
        "figure": str(path),
    }


# ── EDA 5: Summary Statistics Table ──────────────────────────────────────────

def eda_summary_statistics(rates: pd.DataFrame) -> pd.DataFrame:
    """
    Prints and returns a clean summary stats table.
    """
    print("\n" + "=" * 60)
    print("EDA 5 | SUMMARY STATISTICS")
    print("=" * 60)

    numeric_cols = [c for c in ["n", "estimate", "crime_rate", "crime_rate_moe"] if c in rates.columns]
    summary = _drop_geometry(rates)[numeric_cols].describe().round(2)
    print(summary.to_string())

    print("\nTop 5 Tracts by Rate:")
    top = _drop_geometry(rates).nlargest(5, "crime_rate")[["GEOID", "n", "crime_rate"]]
    print(top.to_string(index=False))

    return summary


# ── Pipeline Orchestrator ─────────────────────────────────────────────────────

def run_eda(incidents: pd.DataFrame, rates: pd.DataFrame, unemployment=None,
            year=None, fig_dir=FIG_DIR):
    """
    Run the full EDA in one call. Returns the correlation result, or None
    when no unemployment table is supplied.
    """
    eda_yearly_trend(incidents, fig_dir)
    eda_category_breakdown(incidents, fig_dir)
    eda_rate_distribution(rates, year, fig_dir=fig_dir)
    eda_summary_statistics(rates)

    correlation = None
    if unemployment is not None:
        correlation = eda_crime_unemployment(rates, unemployment, year, fig_dir)

    print("\n" + "=" * 60)
    print(f"✓ EDA COMPLETE — {len(list(Path(fig_dir).glob('*.png')))} figures saved to {fig_dir}/")
    print("=" * 60)
    return correlation
