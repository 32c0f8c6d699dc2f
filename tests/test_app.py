import logging

import dash
import pytest

import app as dashboard
from loaders import LoadFailure
from aggregation import build_state_summary
from config import HOVER_STROKE_WIDTH, SELECTED_STROKE_WIDTH, STROKE_WIDTH
from map_view import ViewState, keyed_feature_collection


def collect_ids(component):
    """All component ids in a Dash layout tree."""
    ids = set()
    cid = getattr(component, "id", None)
    if cid:
        ids.add(cid)
    children = getattr(component, "children", None)
    if isinstance(children, (list, tuple)):
        for child in children:
            ids |= collect_ids(child)
    elif children is not None and hasattr(children, "to_plotly_json"):
        ids |= collect_ids(children)
    return ids


def click(location):
    return {"points": [{"location": location}]}


def test_event_location():
    assert dashboard.event_location(click("TX")) == "TX"
    assert dashboard.event_location({"points": []}) is None
    assert dashboard.event_location(None) is None


def test_apply_trigger_click_selects_state():
    view = ViewState(selected_state="CA")
    new_view = dashboard.apply_trigger(view, "map", "count", click("TX"))
    assert new_view == ViewState(selected_state="TX")


def test_apply_trigger_click_without_code_is_noop():
    view = ViewState(selected_state="CA")
    assert dashboard.apply_trigger(view, "map", "count", click("__feature_3")) is None
    assert dashboard.apply_trigger(view, "map", "count", None) is None
    assert dashboard.apply_trigger(view, "map", "count", click("CA")) is None


def test_apply_trigger_metric_keeps_selection():
    view = ViewState(selected_state="TX")
    new_view = dashboard.apply_trigger(view, "metric-select", "severity", None)
    assert new_view == ViewState(selected_state="TX", metric="severity")


def test_create_app(data_files):
    csv_path, geojson_path = data_files
    app = dashboard.create_app(csv_path, geojson_path)

    assert isinstance(app, dash.Dash)
    ids = collect_ids(app.layout)
    assert {
        "map", "metric-select", "metric-description",
        "legend-label-low", "legend-label-high", "legend-gradient", "legend-min", "legend-max",
        "view-state", "trend", "top-states", "bottom-states",
    } <= ids


def test_create_app_default_selection(data_files):
    csv_path, geojson_path = data_files
    app = dashboard.create_app(csv_path, geojson_path)
    store = [c for c in app.layout.children if getattr(c, "id", None) == "view-state"][0]
    assert store.data == {"selected_state": "CA", "metric": "count", "hovered": None}


def test_create_app_propagates_load_failure(tmp_path):
    with pytest.raises(LoadFailure):
        dashboard.create_app(tmp_path / "missing.csv", tmp_path / "missing.geojson")


def test_main_reports_load_failure_once(monkeypatch, caplog, tmp_path):
    def failing_create_app():
        raise LoadFailure(tmp_path / "missing.csv", "No such file")

    monkeypatch.setattr(dashboard, "create_app", failing_create_app)
    with caplog.at_level(logging.ERROR):
        assert dashboard.main() == 1

    errors = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert len(errors) == 1
    assert "missing.csv" in errors[0].getMessage()


# ---- callback bodies ----

@pytest.fixture
def map_inputs(states_geojson):
    summary = build_state_summary([
        {"state": "TX", "year_month": "2016-02", "year": 2016, "count_accidents": 100, "avg_severity": 2.0},
        {"state": "CA", "year_month": "2016-02", "year": 2016, "count_accidents": 40, "avg_severity": 3.0},
    ])
    keyed, ids = keyed_feature_collection(states_geojson)
    return keyed, ids, summary


def patched_values(patch):
    """Assigned value per patched location."""
    return {
        tuple(op["location"]): op["params"]["value"]
        for op in patch.to_plotly_json()["operations"]
    }


def border_widths(patch):
    return patched_values(patch)[("data", 0, "marker", "line", "width")]


def test_map_update_first_draw(map_inputs):
    view = ViewState(selected_state="CA").to_dict()
    fig, rendered = dashboard.map_update(view, None, *map_inputs)

    assert fig.layout.transition.duration == 900
    assert rendered == "count"


def test_map_update_metric_change(map_inputs):
    view = ViewState(selected_state="CA", metric="severity").to_dict()
    fig, rendered = dashboard.map_update(view, "count", *map_inputs)

    assert fig.layout.transition.duration == 600
    assert rendered == "severity"
    assert list(fig.data[0].z)[:2] == [2.0, 3.0]


def test_map_update_same_metric_restyles_borders(map_inputs):
    view = ViewState(selected_state="TX").to_dict()
    patch, rendered = dashboard.map_update(view, "count", *map_inputs)

    assert isinstance(patch, dash.Patch)
    assert rendered is dash.no_update
    assert border_widths(patch) == [SELECTED_STROKE_WIDTH, STROKE_WIDTH, STROKE_WIDTH, STROKE_WIDTH]


def test_hover_update(map_inputs):
    _, ids, _ = map_inputs
    view = ViewState(selected_state="CA").to_dict()

    widths = border_widths(dashboard.hover_update(click("TX"), view, ids))
    assert widths == [HOVER_STROKE_WIDTH, SELECTED_STROKE_WIDTH, STROKE_WIDTH, STROKE_WIDTH]


def test_hover_update_cleared_resets_borders(map_inputs):
    _, ids, _ = map_inputs
    view = {"selected_state": None, "metric": "count", "hovered": "TX"}

    assert border_widths(dashboard.hover_update(None, view, ids)) == [STROKE_WIDTH] * len(ids)


def test_legend_update(map_inputs):
    *_, summary = map_inputs
    description, low, high, style, vmin, vmax = dashboard.legend_update("severity", summary)

    assert "1 = minor, 4 = most severe" in description
    assert (low, high) == ("Lower severity", "Higher severity")
    assert style["background"] == "linear-gradient(90deg, #e0f2fe, #1d4ed8)"
    assert (vmin, vmax) == ("2.00", "3.00")


def test_legend_update_unknown_metric_falls_back_to_count(map_inputs):
    *_, summary = map_inputs
    description, low, _, _, vmin, vmax = dashboard.legend_update("fatalities", summary)

    assert "Total number of reported accidents" in description
    assert low == "Low accidents"
    assert (vmin, vmax) == ("40", "100")
