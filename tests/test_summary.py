"""Summary calculator and geometry backend tests."""

from __future__ import annotations

import pytest

from timeline_viewer.config import ConfigError
from timeline_viewer.domain.timeline_types import GeometryCollection, LineGeometry, PointGeometry
from timeline_viewer.services.geometry_backend import (
    GeodesicBackend,
    HaversineBackend,
    build_geometry_backend,
    haversine_km,
    line_length_km,
    scan_bounds,
)
from timeline_viewer.services.normalizer import normalize
from timeline_viewer.services.summary import precomputed_distance_km, summarize

TOKYO_TO_YOKOHAMA = (
    (139.767, 35.681),
    (139.740, 35.630),
    (139.700, 35.600),
    (139.638, 35.466),
)


def test_scenario_summary_counts_and_haversine_distance() -> None:
    payload = {
        "trips": [
            {
                "geometry": {
                    "type": "LineString",
                    "coordinates": [[139.70, 35.68], [139.71, 35.69]],
                }
            }
        ],
        "stays": [{"center": {"lat": 35.68, "lon": 139.70}, "label": "home"}],
        "visits": [],
    }

    summary = summarize(normalize(payload), payload["stays"], payload["visits"])

    assert summary.stay_count == 1
    assert summary.visit_count == 0
    assert summary.trip_count == 1
    assert summary.total_distance_km == pytest.approx(1.4325, abs=0.005)


def test_counts_come_from_raw_lists_not_geometry() -> None:
    stays = [{"label": "x"}]
    collection = normalize({"stays": stays})

    summary = summarize(collection, stays, None)

    assert collection.points() == []
    assert summary.stay_count == 1
    assert summary.visit_count == 0


def test_trip_endpoint_points_are_not_counted_as_stays() -> None:
    payload = {"trips": [{"route": [[139.70, 35.68], [139.71, 35.69]]}]}
    collection = normalize(payload, with_trip_endpoints=True)

    summary = summarize(collection, [], [])

    assert len(collection.points()) == 2
    assert summary.stay_count == 0
    assert summary.visit_count == 0
    assert summary.trip_count == 1


def test_empty_collection_gives_zero_summary() -> None:
    summary = summarize(GeometryCollection(), [], [])
    assert summary.stay_count == 0
    assert summary.visit_count == 0
    assert summary.trip_count == 0
    assert summary.total_distance_km == 0.0


def test_distance_sums_consecutive_pairs_across_lines() -> None:
    first = LineGeometry(coordinates=((0.0, 0.0), (1.0, 0.0), (1.0, 1.0)))
    second = LineGeometry(coordinates=((10.0, 10.0), (10.0, 11.0)))
    collection = GeometryCollection([first, second])

    expected = (
        haversine_km((0.0, 0.0), (1.0, 0.0))
        + haversine_km((1.0, 0.0), (1.0, 1.0))
        + haversine_km((10.0, 10.0), (10.0, 11.0))
    )
    assert summarize(collection, [], []).total_distance_km == pytest.approx(expected)


def test_haversine_one_degree_of_latitude() -> None:
    # 6371 * pi / 180
    assert haversine_km((0.0, 0.0), (0.0, 1.0)) == pytest.approx(111.195, abs=0.001)
    assert haversine_km((139.7, 35.6), (139.7, 35.6)) == 0.0


def test_line_length_of_single_pair_sequence_is_zero() -> None:
    assert line_length_km([(139.7, 35.6)]) == 0.0


def test_haversine_and_geodesic_totals_agree_within_one_percent() -> None:
    collection = GeometryCollection([LineGeometry(coordinates=TOKYO_TO_YOKOHAMA)])

    haversine_total = summarize(collection, [], [], backend=HaversineBackend()).total_distance_km
    geodesic_total = summarize(collection, [], [], backend=GeodesicBackend()).total_distance_km

    assert haversine_total > 20
    assert geodesic_total == pytest.approx(haversine_total, rel=0.01)


def test_bounding_boxes_of_both_backends_match() -> None:
    collection = GeometryCollection(
        [
            LineGeometry(coordinates=TOKYO_TO_YOKOHAMA),
            PointGeometry(coordinates=(139.9, 35.5), kind="visit"),
        ]
    )

    expected = (139.638, 35.466, 139.9, 35.681)
    assert scan_bounds(collection) == pytest.approx(expected)
    assert HaversineBackend().bounding_box(collection) == pytest.approx(expected)
    assert GeodesicBackend().bounding_box(collection) == pytest.approx(expected)


def test_bounding_box_of_empty_collection_is_none() -> None:
    assert scan_bounds(GeometryCollection()) is None
    assert GeodesicBackend().bounding_box(GeometryCollection()) is None


def test_build_geometry_backend_by_name() -> None:
    assert isinstance(build_geometry_backend("pyproj"), GeodesicBackend)
    assert isinstance(build_geometry_backend("haversine"), HaversineBackend)
    with pytest.raises(ConfigError):
        build_geometry_backend("vincenty")


def test_precomputed_distance_used_only_without_trip_geometry() -> None:
    trips = [{"distance_km": 1.5}, {"distance_m": 500}, {"distance_km": "bad"}, {"distance_m": -3}]

    summary = summarize(GeometryCollection(), [], [], raw_trips=trips)
    assert summary.total_distance_km == pytest.approx(2.0)
    assert summary.trip_count == 4

    collection = GeometryCollection([LineGeometry(coordinates=((0.0, 0.0), (0.0, 1.0)))])
    summary = summarize(collection, [], [], raw_trips=trips)
    assert summary.total_distance_km == pytest.approx(111.195, abs=0.001)


def test_precomputed_distance_ignores_malformed_input() -> None:
    assert precomputed_distance_km(None) == 0.0
    assert precomputed_distance_km("trips") == 0.0
    assert precomputed_distance_km([None, 3, {"distance_km": True}]) == 0.0
    assert precomputed_distance_km([{"distance_km": 10**400}, {"distance_m": 10**400}]) == 0.0
    assert precomputed_distance_km([{"distance_km": 10**400, "distance_m": 250}]) == pytest.approx(0.25)


def test_trip_count_follows_raw_trip_list() -> None:
    trips = [{"distance_km": 1.5, "from": {"label": "a"}, "to": {"label": "b"}}, "garbage"]

    summary = summarize(GeometryCollection(), [], [], raw_trips=trips)

    assert summary.trip_count == 1
    assert summary.total_distance_km == pytest.approx(1.5)


def test_split_server_lines_count_as_one_listed_trip() -> None:
    collection = GeometryCollection(
        [
            LineGeometry(coordinates=((0.0, 0.0), (0.0, 1.0))),
            LineGeometry(coordinates=((1.0, 0.0), (1.0, 1.0))),
        ]
    )

    assert summarize(collection, [], [], raw_trips=[{"id": "t1"}]).trip_count == 1
    assert summarize(collection, [], [], raw_trips=[]).trip_count == 2
    assert summarize(collection, [], []).trip_count == 2
