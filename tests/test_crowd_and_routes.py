from datetime import timedelta
from decimal import Decimal

import pytest

from src.crowd.schemas import AlertCreate, AlertType, CrowdLevel, CrowdReadingCreate
from src.crowd.service import CrowdService, crowd_level_for_ratio
from src.models import Route, Station
from src.realtime.feed import ChangeFeed
from src.routes.service import RouteService

from conftest import FIXED_NOW

def reading(train="WR-1", coach=1, line="Western Line", passengers=100, capacity=400):
    return CrowdReadingCreate(
        line=line, train_number=train, coach_number=coach,
        passenger_count=passengers, capacity=capacity, platform="2"
    )

@pytest.fixture()
def feed():
    return ChangeFeed()

@pytest.fixture()
def crowd(db_session, feed):
    return CrowdService(db_session, feed, clock=lambda: FIXED_NOW)

@pytest.mark.parametrize("ratio, level", [
    (0.0, CrowdLevel.LOW),
    (0.4, CrowdLevel.LOW),
    (0.41, CrowdLevel.MODERATE),
    (0.7, CrowdLevel.MODERATE),
    (0.71, CrowdLevel.HIGH),
])
def test_crowd_level_bands(ratio, level):
    assert crowd_level_for_ratio(ratio) == level

def test_upsert_replaces_coach_reading(crowd, feed):
    events = []
    feed.subscribe("crowd_data", "*", events.append)

    first = crowd.upsert_reading(reading(passengers=100))
    second = crowd.upsert_reading(reading(passengers=350))

    assert first.id == second.id
    assert second.occupancy_level == CrowdLevel.HIGH
    assert [e.event for e in events] == ["INSERT", "UPDATE"]
    assert events[1].old["occupancy_level"] == "low"
    assert len(crowd.get_crowd_data()) == 1

def test_train_crowd_sorted_by_coach(crowd):
    for coach in (3, 1, 2):
        crowd.upsert_reading(reading(coach=coach))
    crowd.upsert_reading(reading(train="CR-9", line="Central Line"))

    assert [r.coach_number for r in crowd.get_train_crowd("WR-1")] == [1, 2, 3]
    assert len(crowd.get_crowd_data("Central Line")) == 1

def test_explicit_level_is_kept(crowd):
    data = reading(passengers=10).model_copy(update={"occupancy_level": CrowdLevel.HIGH})
    assert crowd.upsert_reading(data).occupancy_level == CrowdLevel.HIGH

def test_alerts_expire(db_session, feed):
    now = {"value": FIXED_NOW}
    crowd = CrowdService(db_session, feed, clock=lambda: now["value"])
    events = []
    feed.subscribe("alerts", "INSERT", events.append)

    alert = crowd.create_alert(AlertCreate(type=AlertType.DELAY, message=" Signal failure at Dadar ",
                                           line="Central Line", duration_minutes=30))
    assert alert.message == "Signal failure at Dadar"
    assert [a.id for a in crowd.get_active_alerts()] == [alert.id]
    assert events[0].new["id"] == alert.id

    now["value"] = FIXED_NOW + timedelta(minutes=31)
    assert crowd.get_active_alerts() == []

def test_network_stats(crowd):
    crowd.upsert_reading(reading(train="WR-1", passengers=200))
    crowd.upsert_reading(reading(train="WR-2", passengers=400))
    crowd.create_alert(AlertCreate(type=AlertType.DISRUPTION, message="Overhead wire snapped"))
    crowd.create_alert(AlertCreate(type=AlertType.CROWD, message="Busy platform"))

    stats = crowd.get_network_stats()
    assert stats.active_trains == 2
    assert stats.avg_occupancy == 75.0
    assert stats.incidents == 1

# Route suggestions

@pytest.fixture()
def network(db_session):
    db_session.add_all([
        Station(name="Andheri", line="Western Line"),
        Station(name="Churchgate", line="Western Line"),
        Station(name="Andheri Metro", line="Metro Line 3", is_metro=True),
        Station(name="Churchgate Metro", line="Metro Line 3", is_metro=True),
        Station(name="Thane", line="Central Line"),
        Station(name="CSMT", line="Central Line"),
        Route(from_station="Andheri", to_station="Churchgate", line="Western Line",
              base_fare=Decimal("15"), duration_minutes=45),
        Route(from_station="Thane", to_station="CSMT", line="Central Line",
              base_fare=Decimal("15"), duration_minutes=55),
    ])
    db_session.commit()

def test_suggestions_rank_by_time_and_crowd(db_session, network, crowd):
    # Packed Western Line: 45 + 20 loses to the 35 minute metro journey
    crowd.upsert_reading(reading(passengers=380))
    service = RouteService(db_session, crowd)

    options = service.suggest_routes("Andheri", "Churchgate")

    assert [o.id.split("-")[0] for o in options] == ["metro", "direct"]
    assert options[0].total_time == 35
    assert options[1].crowd_level == CrowdLevel.HIGH

def test_direct_route_defaults_to_moderate_crowd(db_session, network, crowd):
    options = RouteService(db_session, crowd).suggest_routes("Thane", "CSMT")
    assert len(options) == 1
    assert options[0].crowd_level == CrowdLevel.MODERATE
    assert options[0].steps[0].line == "Central Line"

def test_no_route(db_session, network, crowd):
    assert RouteService(db_session, crowd).suggest_routes("Virar", "Panvel") == []

def test_routes_api(client, db_session, network):
    lines = client.get("/api/v1/routes/lines").json()
    assert "Metro Line 3" in [line["name"] for line in lines]

    stations = client.get("/api/v1/routes/stations", params={"line": "Western Line"}).json()
    assert [s["name"] for s in stations] == ["Andheri", "Churchgate"]

    r = client.get("/api/v1/routes/suggest", params={"from": "Andheri", "to": "Churchgate"})
    assert r.status_code == 200
    assert r.json()["total_options"] == 2

    r = client.get("/api/v1/routes/suggest", params={"from": "Andheri", "to": "andheri"})
    assert r.status_code == 400

def test_crowd_api(client, operator_headers, rider_headers):
    body = {"line": "Western Line", "train_number": "WR-7", "coach_number": 1,
            "passenger_count": 300, "capacity": 400}

    assert client.post("/api/v1/crowd", json=body, headers=rider_headers).status_code == 403
    r = client.post("/api/v1/crowd", json=body, headers=operator_headers)
    assert r.status_code == 200, r.text
    assert r.json()["occupancy_level"] == "high"

    assert client.get("/api/v1/crowd").json()["total"] == 1
    assert len(client.get("/api/v1/crowd/trains/WR-7").json()) == 1
    assert client.get("/api/v1/crowd/trains/XX-0").status_code == 404

    r = client.post("/api/v1/alerts", json={"type": "safety", "message": "Mind the gap"}, headers=operator_headers)
    assert r.status_code == 201
    assert [a["message"] for a in client.get("/api/v1/alerts").json()] == ["Mind the gap"]
