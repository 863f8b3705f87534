import asyncio

import httpx
import pytest

from deliveryroute.services.trips.client import (
    MissingAccessTokenError,
    TripOptimizationClient,
    TripServiceError,
    WaypointValidationError,
    count_out_of_region,
    format_distance,
    format_duration,
)
from deliveryroute.services.trips.models import TripOptimizationOptions, Waypoint

WAYPOINTS = [
    Waypoint(coordinates=(43.6532, -79.3832), name="Depot"),
    Waypoint(coordinates=(43.70, -79.40), name="North", address="1 North St"),
    Waypoint(coordinates=(43.66, -79.38)),
]


def trip_payload() -> dict:
    # Provider lists waypoints in input order; waypoint_index is the visiting position.
    return {
        "code": "Ok",
        "waypoints": [
            {"waypoint_index": 0, "trips_index": 0, "location": [-79.3832, 43.6532]},
            {"waypoint_index": 2, "trips_index": 0, "location": [-79.40, 43.70]},
            {"waypoint_index": 1, "trips_index": 0, "location": [-79.38, 43.66]},
        ],
        "trips": [
            {
                "distance": 6123.4,
                "duration": 845.0,
                "geometry": {"coordinates": [[-79.3832, 43.6532], [-79.38, 43.66], [-79.40, 43.70]]},
                "legs": [
                    {
                        "distance": 900.0,
                        "duration": 120.0,
                        "steps": [
                            {
                                "distance": 900.0,
                                "duration": 120.0,
                                "maneuver": {"instruction": "Head north on Bay Street"},
                                "geometry": {"coordinates": [[-79.3832, 43.6532], [-79.38, 43.66]]},
                            }
                        ],
                    },
                    {"distance": 5223.4, "duration": 725.0, "steps": []},
                ],
            }
        ],
    }


def make_client(handler, **kwargs):
    sleeps: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    kwargs.setdefault("access_token", "test-token")
    client = TripOptimizationClient(
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        sleep=fake_sleep,
        **kwargs,
    )
    return client, sleeps


def test_thirteen_waypoints_rejected_without_network() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json=trip_payload())

    client, _ = make_client(handler)
    waypoints = [Waypoint(coordinates=(43.65 + n * 0.001, -79.38)) for n in range(13)]

    with pytest.raises(WaypointValidationError):
        asyncio.run(client.optimize_route(waypoints))
    assert calls == []


@pytest.mark.parametrize(
    "waypoints",
    [
        [Waypoint(coordinates=(43.65, -79.38))],
        [Waypoint(coordinates=(43.65, -79.38)), Waypoint(coordinates=(95.0, -79.38))],
        [Waypoint(coordinates=(43.65, -79.38)), Waypoint(coordinates=(float("nan"), -79.38))],
    ],
)
def test_invalid_waypoints_are_rejected(waypoints) -> None:
    client, _ = make_client(lambda request: httpx.Response(500))

    with pytest.raises(WaypointValidationError):
        asyncio.run(client.optimize_route(waypoints))


def test_missing_token_is_a_configuration_error() -> None:
    client, _ = make_client(lambda request: httpx.Response(200, json=trip_payload()), access_token="")

    with pytest.raises(MissingAccessTokenError):
        asyncio.run(client.optimize_route(WAYPOINTS))


def test_request_uses_lon_lat_and_options() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=trip_payload())

    client, _ = make_client(handler)
    options = TripOptimizationOptions(profile="cycling", source="any", roundtrip=True, annotations=["distance", "speed"])
    asyncio.run(client.optimize_route(WAYPOINTS, options))

    request = seen[0]
    assert request.url.path.endswith("/cycling/-79.3832,43.6532;-79.4,43.7;-79.38,43.66")
    params = request.url.params
    assert params["source"] == "any"
    assert params["destination"] == "last"
    assert params["roundtrip"] == "true"
    assert params["geometries"] == "geojson"
    assert params["overview"] == "full"
    assert params["steps"] == "true"
    assert params["annotations"] == "distance,speed"
    assert params["access_token"] == "test-token"


def test_response_is_converted_to_lat_lon_in_visit_order() -> None:
    client, _ = make_client(lambda request: httpx.Response(200, json=trip_payload()))
    trip = asyncio.run(client.optimize_route(WAYPOINTS))

    assert [wp.input_index for wp in trip.waypoints] == [0, 2, 1]
    assert [wp.name for wp in trip.waypoints] == ["Depot", "Stop 2", "North"]
    assert trip.waypoints[2].address == "1 North St"
    assert trip.waypoints[1].coordinates == (43.66, -79.38)
    assert trip.distance == 6123.4
    assert trip.duration == 845.0
    assert trip.geometry[0] == (43.6532, -79.3832)
    assert trip.legs[0].steps[0].instruction == "Head north on Bay Street"
    assert trip.legs[0].steps[0].coordinates[-1] == (43.66, -79.38)
    assert trip.legs[1].steps == []


def test_provider_error_status_raises_service_error() -> None:
    client, _ = make_client(lambda request: httpx.Response(422, text="InvalidInput"))

    with pytest.raises(TripServiceError, match="Mapbox API error: 422"):
        asyncio.run(client.optimize_route(WAYPOINTS))


def test_non_ok_code_raises_service_error() -> None:
    payload = {"code": "NoTrips", "message": "No trip found"}
    client, _ = make_client(lambda request: httpx.Response(200, json=payload))

    with pytest.raises(TripServiceError, match="NoTrips"):
        asyncio.run(client.optimize_route(WAYPOINTS))


def test_transport_failure_raises_service_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    client, _ = make_client(handler)

    with pytest.raises(TripServiceError):
        asyncio.run(client.optimize_route(WAYPOINTS))


def test_optimize_multiple_routes_runs_sequentially_with_delay() -> None:
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        return httpx.Response(200, json=trip_payload())

    client, sleeps = make_client(handler, request_delay_seconds=1.0)
    trips = asyncio.run(client.optimize_multiple_routes([(WAYPOINTS, None), (WAYPOINTS, None), (WAYPOINTS, None)]))

    assert len(trips) == 3
    assert len(calls) == 3
    assert sleeps == [1.0, 1.0]


def test_optimize_multiple_routes_stops_at_first_failure() -> None:
    client, _ = make_client(lambda request: httpx.Response(200, json=trip_payload()))
    bad = [Waypoint(coordinates=(43.65, -79.38))]

    with pytest.raises(WaypointValidationError):
        asyncio.run(client.optimize_multiple_routes([(WAYPOINTS, None), (bad, None)]))


@pytest.mark.parametrize(
    "meters, expected",
    [(0, "0 m"), (999.4, "999 m"), (1000, "1.0 km"), (12345, "12.3 km")],
)
def test_format_distance(meters: float, expected: str) -> None:
    assert format_distance(meters) == expected


@pytest.mark.parametrize(
    "seconds, expected",
    [(42, "42s"), (125, "2m 5s"), (3600, "1h 0m"), (5430, "1h 30m")],
)
def test_format_duration(seconds: float, expected: str) -> None:
    assert format_duration(seconds) == expected


def test_count_out_of_region() -> None:
    waypoints = [*WAYPOINTS, Waypoint(coordinates=(45.50, -73.57)), Waypoint(coordinates=(42.9, -79.0))]

    assert count_out_of_region(waypoints) == 2
