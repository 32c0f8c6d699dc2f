import json

import pytest

CSV_HEADER = "state,year_month,year,count_accidents,avg_severity\n"


def _feature(props, lon=-100.0, lat=40.0):
    return {
        "type": "Feature",
        "properties": props,
        "geometry": {
            "type": "Polygon",
            "coordinates": [[[lon, lat], [lon + 1, lat], [lon + 1, lat + 1], [lon, lat + 1], [lon, lat]]],
        },
    }


@pytest.fixture
def states_geojson():
    return {
        "type": "FeatureCollection",
        "features": [
            _feature({"STUSPS10": "TX", "NAME10": "Texas"}, -100.0, 31.0),
            _feature({"STUSPS": "CA", "NAME": "California"}, -120.0, 37.0),
            _feature({"postal": "ny", "name": "New York"}, -75.0, 42.0),
            _feature({"NAME": "Nowhere"}, -90.0, 45.0),
        ],
    }


@pytest.fixture
def data_files(tmp_path, states_geojson):
    csv_path = tmp_path / "us_accidents_state_month.csv"
    csv_path.write_text(
        CSV_HEADER
        + "TX,2016-02,2016,100,2.0\n"
        + "TX,2016-03,2016,50,4.0\n"
        + "ca,2016-02,2016,30,2.5\n"
        + "CA,2016-03,2016,10,3.5\n"
        + ",2016-03,2016,999,1.0\n",
        encoding="utf-8",
    )
    geojson_path = tmp_path / "us_states.geojson"
    geojson_path.write_text(json.dumps(states_geojson), encoding="utf-8")
    return csv_path, geojson_path
