"""
US Accidents Dashboard (2016-2023)
- Single CSV source: data/us_accidents_state_month.csv (state + year_month aggregates)
- GeoJSON: data/us_states.geojson
- Choropleth by state, shaded by accident count or average severity
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

import dash
import pandas as pd
from dash import Input, Output, Patch, State, dcc, html

from aggregation import (
    StateSummary,
    build_monthly_series,
    build_state_summary,
    default_selection,
    get_state_rankings,
)
from config import (
    DEFAULT_STATE,
    METRIC_LABELS,
    METRIC_TRANSITION_MS,
    INITIAL_TRANSITION_MS,
    METRICS,
    N_RANKED_STATES,
    STATE_MONTH_CSV,
    STATES_GEOJSON,
)
from loaders import LoadFailure, load_sources
from map_view import (
    ViewState,
    build_color_scale,
    keyed_feature_collection,
    legend_content,
    line_styles,
    make_map_figure,
    make_trend_figure,
    metric_description,
    select_state,
    state_names,
    with_hover,
    with_metric,
)

logger = logging.getLogger(__name__)


# ======================
# Interaction helpers
# ======================

def event_location(event_data: Optional[Mapping]) -> Optional[str]:
    """Location id of the first point in a Graph clickData/hoverData payload."""
    if event_data and event_data.get("points"):
        return event_data["points"][0].get("location")
    return None


def apply_trigger(view: ViewState, trigger: str, metric: Optional[str],
                  click_data: Optional[Mapping]) -> Optional[ViewState]:
    """
    Next view state for a metric change or a map click.
    Returns None when the event changes nothing (e.g. a click on a polygon
    without a state code).
    """
    if trigger == "metric-select" and metric:
        new_view = with_metric(view, metric)
    elif trigger == "map":
        new_view = select_state(view, event_location(click_data))
    else:
        return None
    return new_view if new_view != view else None


def border_patch(feature_ids: Sequence[str], view: ViewState) -> Patch:
    """Patch restyling only the map borders for the current hover/selection."""
    widths, colors = line_styles(feature_ids, view)
    patched = Patch()
    patched["data"][0]["marker"]["line"]["width"] = widths
    patched["data"][0]["marker"]["line"]["color"] = colors
    return patched


def map_update(
    view_data: Optional[Mapping],
    rendered_metric: Optional[str],
    keyed_geojson: dict,
    feature_ids: Sequence[str],
    summary: Mapping[str, StateSummary],
):
    """
    Map figure for a new view state.
    Returns:
        (figure or border Patch, rendered metric or dash.no_update)
    A full figure is built on first draw (900 ms transition) and on a metric
    change (600 ms); a selection change only restyles the borders.
    """
    view = ViewState.from_dict(view_data)
    if rendered_metric == view.metric:
        return border_patch(feature_ids, view), dash.no_update

    transition_ms = INITIAL_TRANSITION_MS if rendered_metric is None else METRIC_TRANSITION_MS
    fig, _ = make_map_figure(keyed_geojson, feature_ids, summary, view, transition_ms)
    return fig, view.metric


def hover_update(hover_data: Optional[Mapping], view_data: Optional[Mapping],
                 feature_ids: Sequence[str]) -> Patch:
    """Border Patch for the hovered polygon; cleared hover data resets it."""
    view = with_hover(ViewState.from_dict(view_data), event_location(hover_data))
    return border_patch(feature_ids, view)


def legend_update(metric: Optional[str], summary: Mapping[str, StateSummary]):
    """Description, legend labels, gradient style and min/max for a metric."""
    metric = metric if metric in METRICS else METRICS[0]
    legend = legend_content(build_color_scale(summary, metric))
    gradient_style = {"height": "12px", "borderRadius": "6px", "margin": "4px 0",
                      "background": legend["gradient"]}
    return (
        metric_description(metric),
        legend["label_low"],
        legend["label_high"],
        gradient_style,
        legend["min"],
        legend["max"],
    )


def create_ranking_display(states: List[Dict], title: str, is_top: bool = True) -> html.Div:
    """
    Create a formatted display for state rankings.

    Args:
        states: List of dicts with 'state' and 'value' keys
        title: Title for the ranking section
        is_top: Whether these are the highest states (affects styling)
    """
    color_class = "top-performer" if is_top else "bottom-performer"

    if not states:
        return html.Div([
            html.H4(title),
            html.P("No data available", style={"color": "#6b7280", "fontSize": "14px", "margin": "0"})
        ], className=color_class)

    items = [
        html.Div([
            html.Span(f"{i}.", className="state-rank"),
            html.Span(info["state"], className="state-name"),
            html.Span(info["value"], className="state-value")
        ], className="state-ranking-item")
        for i, info in enumerate(states, 1)
    ]
    return html.Div([html.H4(title), html.Div(items)], className=color_class)


# ======================
# App Factory
# ======================

def build_layout(initial_view: ViewState) -> html.Div:
    """Construct the static Dash layout."""
    card = {"background": "#fff", "borderRadius": "12px", "boxShadow": "0 2px 12px #0001", "padding": "14px 10px"}

    controls = html.Div([
        html.P("Pick a metric for the map. Hover a state for its totals; click a state to see its monthly trend.",
               className="lead", style={"margin": "0 0 16px 0", "fontSize": "15px", "paddingBottom": "12px", "borderBottom": "1px solid #e5e7eb"}),
        html.Div([
            html.Label("Metric", style={"fontWeight": 600, "marginRight": 8, "fontSize": "16px"}),
            dcc.Dropdown(
                id="metric-select",
                options=[{"label": METRIC_LABELS[m], "value": m} for m in METRICS],
                value=initial_view.metric,
                clearable=False,
                style={"width": 240, "fontSize": "15px"}
            ),
        ], style={"display": "flex", "alignItems": "center", "gap": "8px", "flexWrap": "wrap"}),
        html.P(id="metric-description", style={"marginTop": "10px", "fontSize": "14px", "color": "#4b5563"}),
    ], style={**card, "marginBottom": "12px"})

    legend = html.Div([
        html.Div([
            html.Span(id="legend-label-low"),
            html.Span(id="legend-label-high", style={"float": "right"}),
        ], style={"fontSize": "13px", "color": "#374151"}),
        html.Div(id="legend-gradient", style={"height": "12px", "borderRadius": "6px", "margin": "4px 0"}),
        html.Div([
            html.Span(id="legend-min"),
            html.Span(id="legend-max", style={"float": "right"}),
        ], style={"fontSize": "13px", "color": "#374151"}),
    ], id="legend", style={"width": "320px", "margin": "8px auto 0 auto"})

    map_section = html.Div([
        dcc.Loading(
            id="map-loading",
            type="dot",
            children=dcc.Graph(id="map", clear_on_unhover=True, config={"displayModeBar": False}),
            fullscreen=False,
        ),
        legend,
    ], style=card)

    trend_section = html.Div([
        html.Div(id="trend-title", style={"fontWeight": 600, "marginBottom": 6, "fontSize": "17px"}),
        dcc.Graph(id="trend", style={"height": "32vh"}),
    ], style=card)

    rankings_section = html.Div([
        html.H3("State Rankings", style={"fontSize": "18px", "fontWeight": "600", "marginBottom": "16px", "color": "#1f2937"}),
        html.Div([
            html.Div(id="top-states", style={"flex": "1", "minWidth": "280px"}),
            html.Div(id="bottom-states", style={"flex": "1", "minWidth": "280px"})
        ], style={"display": "flex", "gap": "24px", "flexWrap": "wrap"})
    ], style={**card, "padding": "20px"})

    return html.Div(
        style={"fontFamily": "Inter, system-ui, -apple-system, Segoe UI, Roboto, Helvetica, Arial, sans-serif",
               "margin": "0 auto", "maxWidth": "1000px", "padding": "18px", "background": "#f8fafc"},
        children=[
            html.H2("US Accidents by State, 2016–2023", className="page-title"),
            controls,
            map_section,
            html.Hr(style={"marginTop": "24px", "marginBottom": "18px"}),
            trend_section,
            html.Hr(style={"marginTop": "24px", "marginBottom": "18px"}),
            rankings_section,
            dcc.Store(id="view-state", data=initial_view.to_dict()),
            dcc.Store(id="rendered-metric"),
        ]
    )


def register_callbacks(
    app: dash.Dash,
    summary: Mapping[str, StateSummary],
    monthly: pd.DataFrame,
    keyed_geojson: dict,
    feature_ids: Sequence[str],
    names: Mapping[str, str],
):
    """Wire all Dash callbacks."""

    @app.callback(
        Output("view-state", "data"),
        Input("metric-select", "value"),
        Input("map", "clickData"),
        State("view-state", "data"),
        prevent_initial_call=True,
    )
    def update_view_state(metric, click_data, view_data):
        ctx = dash.callback_context
        if not ctx.triggered:
            raise dash.exceptions.PreventUpdate

        trigger = ctx.triggered[0]["prop_id"].split(".")[0]
        new_view = apply_trigger(ViewState.from_dict(view_data), trigger, metric, click_data)
        if new_view is None:
            raise dash.exceptions.PreventUpdate
        return new_view.to_dict()

    @app.callback(
        Output("map", "figure"),
        Output("rendered-metric", "data"),
        Input("view-state", "data"),
        State("rendered-metric", "data"),
    )
    def render_map(view_data, rendered_metric):
        return map_update(view_data, rendered_metric, keyed_geojson, feature_ids, summary)

    @app.callback(
        Output("map", "figure", allow_duplicate=True),
        Input("map", "hoverData"),
        State("view-state", "data"),
        prevent_initial_call=True,
    )
    def highlight_hovered(hover_data, view_data):
        return hover_update(hover_data, view_data, feature_ids)

    @app.callback(
        Output("metric-description", "children"),
        Output("legend-label-low", "children"),
        Output("legend-label-high", "children"),
        Output("legend-gradient", "style"),
        Output("legend-min", "children"),
        Output("legend-max", "children"),
        Input("metric-select", "value"),
    )
    def update_legend(metric):
        """Update the description and legend when the metric changes."""
        return legend_update(metric, summary)

    @app.callback(
        Output("trend", "figure"),
        Output("trend-title", "children"),
        Input("view-state", "data"),
    )
    def update_trend(view_data):
        view = ViewState.from_dict(view_data)
        code = view.selected_state
        return make_trend_figure(monthly, code, names.get(code, code or ""), view.metric)

    @app.callback(
        Output("top-states", "children"),
        Output("bottom-states", "children"),
        Input("metric-select", "value"),
    )
    def update_rankings(metric):
        """Update the state rankings when the metric changes."""
        if metric not in METRICS:
            return html.Div(), html.Div()
        top_states, bottom_states = get_state_rankings(summary, names, metric, N_RANKED_STATES)
        label = METRIC_LABELS[metric]
        return (
            create_ranking_display(top_states, f"Highest {N_RANKED_STATES} States - {label}", is_top=True),
            create_ranking_display(bottom_states, f"Lowest {N_RANKED_STATES} States - {label}", is_top=False),
        )


def create_app(csv_path: Path = STATE_MONTH_CSV,
               geojson_path: Path = STATES_GEOJSON) -> dash.Dash:
    """
    App factory. Loads data, builds layout, and registers callbacks.
    Raises LoadFailure if either source cannot be read.
    """
    state_month, geojson = load_sources(csv_path, geojson_path)

    summary = build_state_summary(state_month)
    monthly = build_monthly_series(state_month)
    keyed_geojson, feature_ids = keyed_feature_collection(geojson)
    names = state_names(geojson)
    logger.info("Summarized %d states over %d map features", len(summary), len(feature_ids))

    initial_view = ViewState(selected_state=default_selection(summary, DEFAULT_STATE))

    app = dash.Dash(__name__)
    app.title = "US Accidents 2016–2023"

    app.layout = build_layout(initial_view)
    register_callbacks(app, summary, monthly, keyed_geojson, feature_ids, names)
    return app


# ======================
# Main
# ======================

def main() -> int:
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    try:
        app = create_app()
    except LoadFailure as e:
        logger.error("Error loading data: %s", e)
        return 1
    app.run(debug=True)
    return 0


if __name__ == "__main__":
    sys.exit(main())
