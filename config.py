"""US Accidents dashboard: paths and display constants."""

from pathlib import Path

# ======================
# Paths
# ======================

STATE_MONTH_CSV = Path("data/us_accidents_state_month.csv")
STATES_GEOJSON = Path("data/us_states.geojson")

REQUIRED_COLUMNS = ("state", "year_month", "year", "count_accidents", "avg_severity")
NUMERIC_COLUMNS = ("year", "count_accidents", "avg_severity")

# ======================
# Map canvas
# ======================

MAP_WIDTH = 900
MAP_HEIGHT = 500
MAP_MARGIN = {"t": 10, "r": 10, "b": 10, "l": 10}

INITIAL_TRANSITION_MS = 900
METRIC_TRANSITION_MS = 600

STROKE_COLOR = "#ffffff"
STROKE_WIDTH = 0.7
HOVER_STROKE_WIDTH = 1.5
SELECTED_STROKE_COLOR = "#111827"
SELECTED_STROKE_WIDTH = 2.0
# selected outline thickens by the same step as a plain border on hover
SELECTED_HOVER_STROKE_WIDTH = SELECTED_STROKE_WIDTH + (HOVER_STROKE_WIDTH - STROKE_WIDTH)

DEFAULT_STATE = "CA"

# ======================
# Metrics
# ======================

METRICS = ("count", "severity")
DEFAULT_METRIC = "count"

METRIC_LABELS = {
    "count": "Accident count",
    "severity": "Average severity",
}

METRIC_DESCRIPTIONS = {
    "count": "Total number of reported accidents in each state between 2016 and 2023.",
    "severity": "Average severity of accidents in each state (1 = minor, 4 = most severe).",
}

COLOR_SCALES = {
    "count": "Reds",
    "severity": "Blues",
}

LEGEND_LABELS = {
    "count": ("Low accidents", "High accidents"),
    "severity": ("Lower severity", "Higher severity"),
}

LEGEND_GRADIENTS = {
    "count": "linear-gradient(90deg, #fee2e2, #b91c1c)",
    "severity": "linear-gradient(90deg, #e0f2fe, #1d4ed8)",
}

SEVERITY_PADDING = 0.05
SEVERITY_MIN_SPAN = 0.1

N_RANKED_STATES = 5
