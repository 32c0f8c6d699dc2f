"""
Reductions over the state-month accident records.

build_state_summary() is the core: one pass over the records producing, per
state code, the total accident count and the count-weighted mean severity.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

import numpy as np
import pandas as pd

from config import N_RANKED_STATES, REQUIRED_COLUMNS

Records = Union[pd.DataFrame, Iterable[Mapping]]


@dataclass(frozen=True)
class StateSummary:
    total_count: int
    avg_severity: float


# ======================
# Utilities
# ======================

def normalize_state_code(s: pd.Series) -> pd.Series:
    """Uppercase, stripped state codes; missing values become ''."""
    return s.fillna("").astype(str).str.strip().str.upper()


def format_count(v) -> str:
    return f"{int(v):,}" if pd.notna(v) else "N/A"


def format_severity(v) -> str:
    return f"{v:.2f}" if pd.notna(v) else "N/A"


def format_metric(v, metric: str) -> str:
    return format_count(v) if metric == "count" else format_severity(v)


def _as_frame(records: Records) -> pd.DataFrame:
    if isinstance(records, pd.DataFrame):
        return records
    return pd.DataFrame(list(records), columns=list(REQUIRED_COLUMNS))


def _weighted_frame(records: Records) -> pd.DataFrame:
    """Per-row code, count and severity*count, without rows lacking a state code."""
    df = _as_frame(records)
    counts = pd.to_numeric(df["count_accidents"], errors="coerce")
    severity = pd.to_numeric(df["avg_severity"], errors="coerce")
    work = pd.DataFrame({
        "state": normalize_state_code(df["state"]),
        "year_month": df["year_month"].fillna("").astype(str) if "year_month" in df.columns else "",
        "count": counts,
        "weighted": severity * counts,
    })
    return work[work["state"] != ""]


# ======================
# Reductions
# ======================

def build_state_summary(records: Records) -> Dict[str, StateSummary]:
    """
    Reduce state-month records to one StateSummary per state code.

    "ca" and "CA" land in the same entry; rows with an empty or missing code
    are skipped. NaN counts or severities contribute nothing to the sums.
    Keys keep first-appearance order.
    """
    work = _weighted_frame(records)
    grouped = work.groupby("state", sort=False)[["count", "weighted"]].sum()

    summary: Dict[str, StateSummary] = {}
    for code, row in grouped.iterrows():
        total = float(row["count"])
        avg = float(row["weighted"]) / total if total > 0 else 0.0
        summary[code] = StateSummary(total_count=int(total), avg_severity=avg)
    return summary


def build_monthly_series(records: Records) -> pd.DataFrame:
    """
    Per state and year-month totals, for the trend chart.
    Returns columns: state, year_month, count_accidents, avg_severity
    """
    work = _weighted_frame(records)
    monthly = (
        work.groupby(["state", "year_month"], sort=True)[["count", "weighted"]]
            .sum()
            .reset_index()
    )
    monthly["avg_severity"] = np.where(
        monthly["count"] > 0,
        monthly["weighted"] / monthly["count"].where(monthly["count"] > 0, 1),
        0.0,
    )
    monthly = monthly.rename(columns={"count": "count_accidents"})
    return monthly[["state", "year_month", "count_accidents", "avg_severity"]]


def metric_value(summary: Mapping[str, StateSummary], code: Optional[str], metric: str) -> float:
    """Value of the metric for a state code; 0 when the code is unknown."""
    stats = summary.get((code or "").strip().upper())
    if stats is None:
        return 0
    return stats.total_count if metric == "count" else stats.avg_severity


def default_selection(summary: Mapping[str, StateSummary], preferred: str) -> Optional[str]:
    """The preferred code if summarized, else the first summarized code."""
    if preferred in summary:
        return preferred
    return next(iter(summary), None)


def get_state_rankings(
    summary: Mapping[str, StateSummary],
    state_names: Mapping[str, str],
    metric: str,
    n_states: int = N_RANKED_STATES,
) -> Tuple[List[Dict], List[Dict]]:
    """
    Highest and lowest states for a metric.

    Returns:
        Tuple of (top_states, bottom_states), lists of dicts with 'state' and
        'value' keys; bottom_states starts with the lowest state.
    """
    if not summary:
        return [], []

    ranked = sorted(
        summary,
        key=lambda code: metric_value(summary, code, metric),
        reverse=True,
    )

    def entry(code):
        return {
            "state": state_names.get(code, code),
            "value": format_metric(metric_value(summary, code, metric), metric),
        }

    top_states = [entry(code) for code in ranked[:n_states]]
    bottom_states = [entry(code) for code in reversed(ranked[-n_states:])]
    return top_states, bottom_states
