"""
Choropleth rendering for the accident dashboard.

Everything here is display-independent: feature property lookup, color scale
domains, legend content, the per-session ViewState and the Plotly figure
builders. Dash wiring lives in app.py.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
from plotly.colors import sample_colorscale

from aggregation import StateSummary, format_count, format_metric, format_severity, metric_value
from config import (
    COLOR_SCALES,
    DEFAULT_METRIC,
    HOVER_STROKE_WIDTH,
    INITIAL_TRANSITION_MS,
    LEGEND_GRADIENTS,
    LEGEND_LABELS,
    MAP_HEIGHT,
    MAP_MARGIN,
    MAP_WIDTH,
    METRIC_DESCRIPTIONS,
    METRIC_LABELS,
    METRICS,
    SELECTED_HOVER_STROKE_WIDTH,
    SELECTED_STROKE_COLOR,
    SELECTED_STROKE_WIDTH,
    SEVERITY_MIN_SPAN,
    SEVERITY_PADDING,
    STROKE_COLOR,
    STROKE_WIDTH,
)

# Candidate property names, highest priority first.
STATE_CODE_KEYS = (
    "STUSPS",
    "STUSPS10",
    "state_code",
    "STATE",
    "CODE",
    "code",
    "postal",
    "postalCode",
)
STATE_NAME_KEYS = ("NAME", "NAME10", "name", "state_name")

UNKEYED_PREFIX = "__feature_"

logger = logging.getLogger(__name__)


# ======================
# Feature properties
# ======================

def _first_text(props: Mapping, keys: Sequence[str]) -> str:
    for key in keys:
        value = props.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def extract_state_code(feature: Mapping) -> str:
    """First non-empty code-like property, stripped; '' when none."""
    return _first_text(feature.get("properties") or {}, STATE_CODE_KEYS)


def extract_state_name(feature: Mapping) -> str:
    props = feature.get("properties") or {}
    for key in STATE_NAME_KEYS:
        value = props.get(key)
        if value:
            return str(value)
    return extract_state_code(feature) or "State"


def keyed_feature_collection(geojson: Mapping) -> Tuple[dict, List[str]]:
    """
    Build a copy of the collection where every feature has an 'id'.

    The id is the uppercase state code, or a placeholder for features without
    one. Only the first feature with a given code carries it; later duplicates
    get a placeholder so one code never maps to two polygons. The input
    features are left untouched.
    Returns:
        keyed_geojson, feature_ids (in feature order)
    """
    features, ids, seen = [], [], set()
    for i, feat in enumerate(geojson.get("features", [])):
        code = extract_state_code(feat).upper()
        if code and code in seen:
            logger.warning("Feature %d repeats state code %r; drawn without data", i, code)
            code = ""
        seen.add(code)
        fid = code or f"{UNKEYED_PREFIX}{i}"
        features.append({**feat, "id": fid})
        ids.append(fid)
    return {"type": "FeatureCollection", "features": features}, ids


def state_names(geojson: Mapping) -> Dict[str, str]:
    """Uppercase code -> display name for every feature with a code."""
    names = {}
    for feat in geojson.get("features", []):
        code = extract_state_code(feat).upper()
        if code:
            names.setdefault(code, extract_state_name(feat))
    return names


def resolve_location(location: Optional[str]) -> str:
    """State code for a clicked/hovered location id; '' for placeholder ids."""
    if not location or str(location).startswith(UNKEYED_PREFIX):
        return ""
    return str(location).strip().upper()


# ======================
# Color scale
# ======================

@dataclass(frozen=True)
class ColorScale:
    metric: str
    colorscale: str
    domain: Tuple[float, float]
    legend_range: Tuple[float, float]

    def color_for(self, value: float) -> str:
        """
        'rgb(r, g, b)' for a value, clamped into the domain.

        The map itself is shaded by Plotly from colorscale/zmin/zmax; this
        reproduces the same mapping for a single value.
        """
        lo, hi = self.domain
        t = (value - lo) / (hi - lo)
        if not math.isfinite(t):
            t = 0.0
        t = min(max(t, 0.0), 1.0)
        return sample_colorscale(_sequential(self.colorscale), [t])[0]


def _sequential(name: str) -> List[str]:
    return getattr(px.colors.sequential, name)


def _finite_extent(values: Sequence[float]) -> Tuple[float, float]:
    finite = [v for v in values if v is not None and math.isfinite(v)]
    lo = min(finite) if finite else 0.0
    hi = max(finite) if finite else 1.0
    return lo, hi


def build_color_scale(summary: Mapping[str, StateSummary], metric: str) -> ColorScale:
    """
    Color scale for the active metric over all summarized states.

    count: [min, max] of totals, widened to [min, min + 1] when flat.
    severity: [min - 0.05, max + 0.05], at least 0.1 wide.
    legend_range always reports the unpadded extent.
    """
    if metric == "count":
        lo, hi = _finite_extent([s.total_count for s in summary.values()])
        domain = (lo, lo + 1 if hi == lo else hi)
    else:
        lo, hi = _finite_extent([s.avg_severity or 0 for s in summary.values()])
        domain_min = lo - SEVERITY_PADDING
        domain_max = hi + SEVERITY_PADDING
        if domain_max <= domain_min:
            domain_max = domain_min + SEVERITY_MIN_SPAN
        domain = (domain_min, domain_max)
    return ColorScale(
        metric=metric,
        colorscale=COLOR_SCALES[metric],
        domain=domain,
        legend_range=(lo, hi),
    )


def legend_content(scale: ColorScale) -> Dict[str, str]:
    low_label, high_label = LEGEND_LABELS[scale.metric]
    lo, hi = scale.legend_range
    return {
        "label_low": low_label,
        "label_high": high_label,
        "gradient": LEGEND_GRADIENTS[scale.metric],
        "min": format_metric(lo, scale.metric),
        "max": format_metric(hi, scale.metric),
    }


def metric_description(metric: str) -> str:
    return METRIC_DESCRIPTIONS.get(metric, METRIC_DESCRIPTIONS[DEFAULT_METRIC])


# ======================
# View state
# ======================

@dataclass(frozen=True)
class ViewState:
    """Per-session interaction state; stored client-side as a dict."""
    selected_state: Optional[str] = None
    metric: str = DEFAULT_METRIC
    hovered: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "selected_state": self.selected_state,
            "metric": self.metric,
            "hovered": self.hovered,
        }

    @classmethod
    def from_dict(cls, data: Optional[Mapping]) -> "ViewState":
        data = data or {}
        metric = data.get("metric", DEFAULT_METRIC)
        return cls(
            selected_state=data.get("selected_state"),
            metric=metric if metric in METRICS else DEFAULT_METRIC,
            hovered=data.get("hovered"),
        )


def select_state(view: ViewState, location: Optional[str]) -> ViewState:
    """Select the clicked state; unchanged when the location has no code."""
    code = resolve_location(location)
    if not code:
        return view
    return replace(view, selected_state=code)


def with_metric(view: ViewState, metric: str) -> ViewState:
    if metric not in METRICS:
        raise ValueError(f"Unknown metric: {metric!r}")
    return replace(view, metric=metric)


def with_hover(view: ViewState, location: Optional[str]) -> ViewState:
    return replace(view, hovered=resolve_location(location) or None)


def line_styles(feature_ids: Sequence[str], view: ViewState) -> Tuple[List[float], List[str]]:
    """Border widths and colors per feature for the current hover/selection."""
    widths, colors = [], []
    for fid in feature_ids:
        if fid == view.selected_state:
            widths.append(SELECTED_HOVER_STROKE_WIDTH if fid == view.hovered else SELECTED_STROKE_WIDTH)
            colors.append(SELECTED_STROKE_COLOR)
        elif fid == view.hovered:
            widths.append(HOVER_STROKE_WIDTH)
            colors.append(STROKE_COLOR)
        else:
            widths.append(STROKE_WIDTH)
            colors.append(STROKE_COLOR)
    return widths, colors


# ======================
# Figure builders
# ======================

def tooltip_html(name: str, code: str, stats: Optional[StateSummary]) -> str:
    if stats is None:
        return f"<b>{name}</b><br>No data"
    return (
        f"<b>{name} ({code})</b><br>"
        f"Accidents: {format_count(stats.total_count)}<br>"
        f"Avg severity: {format_severity(stats.avg_severity)}"
    )


def make_map_figure(
    keyed_geojson: dict,
    feature_ids: Sequence[str],
    summary: Mapping[str, StateSummary],
    view: ViewState,
    transition_ms: int = INITIAL_TRANSITION_MS,
) -> Tuple[go.Figure, ColorScale]:
    """Build the choropleth for the active metric. Returns figure and its scale."""
    scale = build_color_scale(summary, view.metric)
    z = [metric_value(summary, fid, view.metric) for fid in feature_ids]
    hover = [
        tooltip_html(extract_state_name(feat), fid, summary.get(fid))
        for feat, fid in zip(keyed_geojson["features"], feature_ids)
    ]
    widths, colors = line_styles(feature_ids, view)

    fig = go.Figure(go.Choropleth(
        geojson=keyed_geojson,
        locations=list(feature_ids),
        z=z,
        zmin=scale.domain[0],
        zmax=scale.domain[1],
        colorscale=scale.colorscale,
        showscale=False,
        marker_line_width=widths,
        marker_line_color=colors,
        customdata=[[h] for h in hover],
        hovertemplate="%{customdata[0]}<extra></extra>",
    ))
    fig.update_geos(
        projection_type="albers usa",
        fitbounds="locations",
        visible=False,
    )
    fig.update_layout(
        width=MAP_WIDTH,
        height=MAP_HEIGHT,
        margin=MAP_MARGIN,
        paper_bgcolor="rgba(0,0,0,0)",
        # plotly.js does not animate choropleth fills on react; the duration
        # is recorded here but the fill change is applied immediately.
        transition={"duration": transition_ms, "easing": "cubic-in-out"},
        hoverlabel=dict(
            bgcolor="rgba(255, 255, 255, 0.95)",
            bordercolor="#e5e7eb",
            font_size=13,
            font_family="Inter"
        ),
        uirevision="map",
    )
    return fig, scale


def make_empty_trend(metric: str) -> go.Figure:
    """Placeholder trend chart when nothing is selected."""
    fig = go.Figure()
    fig.update_layout(
        margin={"r": 0, "t": 0, "l": 0, "b": 0},
        xaxis_title="Month",
        yaxis_title=METRIC_LABELS.get(metric, ""),
        annotations=[dict(text="Click a state to see its monthly trend.",
                          x=0.5, y=0.5, xref="paper", yref="paper",
                          showarrow=False)]
    )
    return fig


def make_trend_figure(
    monthly: pd.DataFrame,
    code: Optional[str],
    name: str,
    metric: str,
) -> Tuple[go.Figure, str]:
    """Monthly line chart for the selected state."""
    if not code:
        return make_empty_trend(metric), ""

    column = "count_accidents" if metric == "count" else "avg_severity"
    dfs = monthly[monthly["state"] == code].sort_values("year_month")
    if dfs.empty:
        return make_empty_trend(metric), f"{name} ({code}): no monthly data"

    color = "#b91c1c" if metric == "count" else "#1d4ed8"
    value_fmt = "%{y:,.0f}" if metric == "count" else "%{y:.2f}"
    fig = go.Figure(go.Scatter(
        x=dfs["year_month"],
        y=dfs[column],
        mode="lines+markers",
        name=name,
        line=dict(width=2, color=color),
        marker=dict(size=4, color=color),
        hovertemplate="<b>%{x}</b><br>" + METRIC_LABELS[metric] + ": " + value_fmt + "<extra></extra>",
    ))
    fig.update_layout(
        margin={"r": 20, "t": 20, "l": 80, "b": 50},
        plot_bgcolor="rgba(0,0,0,0)",
        paper_bgcolor="rgba(0,0,0,0)",
        font=dict(family="Inter, system-ui, sans-serif", size=12),
        xaxis=dict(title="Month", showgrid=True, gridcolor="#f3f4f6"),
        yaxis=dict(title=METRIC_LABELS[metric], showgrid=True, gridcolor="#f3f4f6"),
    )
    return fig, f"Monthly trend – {name} ({code})"
