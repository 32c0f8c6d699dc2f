"""
Data loaders for the state-month accident table and the US states GeoJSON.

Both sources are read concurrently at startup; a failure in either one aborts
the whole load with a LoadFailure.
"""

from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Tuple

import pandas as pd

from config import NUMERIC_COLUMNS, REQUIRED_COLUMNS, STATE_MONTH_CSV, STATES_GEOJSON

logger = logging.getLogger(__name__)


class LoadFailure(Exception):
    """Raised when an input resource cannot be read or parsed."""

    def __init__(self, resource: Path, reason: str):
        self.resource = Path(resource)
        self.reason = reason
        super().__init__(f"Failed to load {self.resource}: {reason}")


def load_state_month(csv_path: Path = STATE_MONTH_CSV) -> pd.DataFrame:
    """
    Load the per state and year-month accident aggregates.
    Expects columns:
        state, year_month, year, count_accidents, avg_severity
    state and year_month stay strings; the other three are coerced to numbers
    (invalid text becomes NaN).
    """
    try:
        df = pd.read_csv(csv_path, dtype=str, keep_default_na=False)
    except (OSError, ValueError) as e:
        raise LoadFailure(csv_path, str(e)) from e

    df.rename(columns={c: c.strip() for c in df.columns}, inplace=True)

    missing = set(REQUIRED_COLUMNS).difference(df.columns)
    if missing:
        raise LoadFailure(csv_path, f"CSV is missing required columns: {sorted(missing)}")

    df = df[list(REQUIRED_COLUMNS)].copy()
    for c in NUMERIC_COLUMNS:
        raw = df[c].str.strip()
        df[c] = pd.to_numeric(raw, errors="coerce")
        n_bad = int((df[c].isna() & (raw != "")).sum())
        if n_bad:
            logger.warning("%s: %d rows have a non-numeric %r", csv_path, n_bad, c)

    logger.info("Loaded %d state-month rows from %s", len(df), csv_path)
    return df


def load_states_geojson(path: Path = STATES_GEOJSON) -> dict:
    """Load the US states feature collection."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            geojson = json.load(f)
    except (OSError, ValueError) as e:
        raise LoadFailure(path, str(e)) from e

    if not isinstance(geojson, dict) or not isinstance(geojson.get("features"), list):
        raise LoadFailure(path, "not a GeoJSON FeatureCollection")

    logger.info("Loaded %d features from %s", len(geojson["features"]), path)
    return geojson


def load_sources(csv_path: Path = STATE_MONTH_CSV,
                 geojson_path: Path = STATES_GEOJSON) -> Tuple[pd.DataFrame, dict]:
    """
    Read both sources concurrently and wait for both.
    Returns:
        state_month, geojson
    """
    with ThreadPoolExecutor(max_workers=2) as executor:
        csv_future = executor.submit(load_state_month, csv_path)
        geo_future = executor.submit(load_states_geojson, geojson_path)
        # result() re-raises the worker's LoadFailure
        state_month = csv_future.result()
        geojson = geo_future.result()
    return state_month, geojson
