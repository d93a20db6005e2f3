#!/usr/bin/env python3
"""
Seed Data Script

Creates the Mumbai network (stations and static routes), an operator
account and a few sample crowd readings and alerts.

Usage:
    python seed_data.py
"""

import os
import uuid
from datetime import timedelta
from decimal import Decimal

from src.auth.schemas import UserCreate
from src.auth.service import UserService
from src.database import SessionLocal, init_db
from src.models import Alert, CrowdReading, Route, Station, User
from src.crowd.service import crowd_level_for_ratio, occupancy_ratio
from src.time_utils import utc_now

STATIONS = {
    "Western Line": ["Churchgate", "Marine Lines", "Dadar", "Bandra", "Andheri", "Borivali", "Virar"],
    "Central Line": ["CSMT", "Byculla", "Dadar", "Kurla", "Ghatkopar", "Thane", "Kalyan"],
    "Harbour Line": ["CSMT", "Wadala Road", "Kurla", "Vashi", "Panvel"],
    "Metro Line 1": ["Versova", "Andheri", "Ghatkopar"],
    "Metro Line 3": ["Cuffe Parade", "Churchgate", "Dadar", "Bandra", "Andheri", "Aarey"],
}

# (from, to, line, km, fare, minutes); each is also added in reverse
ROUTES = [
    ("Andheri", "Churchgate", "Western Line", "22.0", "15", 45),
    ("Borivali", "Churchgate", "Western Line", "34.0", "15", 60),
    ("Bandra", "Churchgate", "Western Line", "15.0", "10", 30),
    ("Dadar", "Andheri", "Western Line", "12.0", "10", 20),
    ("Virar", "Andheri", "Western Line", "38.0", "20", 55),
    ("CSMT", "Thane", "Central Line", "34.0", "15", 55),
    ("CSMT", "Dadar", "Central Line", "9.0", "10", 18),
    ("Dadar", "Kalyan", "Central Line", "44.0", "20", 65),
    ("Kurla", "Ghatkopar", "Central Line", "4.0", "5", 7),
    ("CSMT", "Panvel", "Harbour Line", "49.0", "20", 80),
    ("Kurla", "Vashi", "Harbour Line", "14.0", "10", 25),
    ("Versova", "Ghatkopar", "Metro Line 1", "11.4", "40", 21),
]

SAMPLE_TRAINS = [
    ("Western Line", "WR-9012", "Churchgate", 4, 1500),
    ("Central Line", "CR-1124", "CSMT", 3, 1200),
    ("Harbour Line", "HR-3307", "Panvel", 2, 500),
]

def create_stations(db):
    print("Creating stations...")
    stations = []
    for line, names in STATIONS.items():
        for name in names:
            stations.append(Station(name=name, line=line, is_metro=line.startswith("Metro")))
    db.add_all(stations)
    db.flush()
    return stations

def create_routes(db):
    print("Creating routes...")
    routes = []
    for from_station, to_station, line, km, fare, minutes in ROUTES:
        for a, b in ((from_station, to_station), (to_station, from_station)):
            routes.append(Route(
                from_station=a,
                to_station=b,
                line=line,
                distance_km=Decimal(km),
                base_fare=Decimal(fare),
                duration_minutes=minutes
            ))
    db.add_all(routes)
    db.flush()
    return routes

def create_operator(db):
    email = os.getenv("SEED_ADMIN_EMAIL", "admin@mumbaitransit.in")
    if UserService.get_user_by_email(db, email):
        print("✅ Operator account already exists, skipping...")
        return None

    print("Creating operator account...")
    return UserService.create_user(
        db,
        UserCreate(
            email=email,
            full_name="Station Operator",
            phone=None,
            password=os.getenv("SEED_ADMIN_PASSWORD", "Admin123!")
        ),
        is_admin=True
    )

def create_live_samples(db):
    print("Creating sample crowd readings and alerts...")
    now = utc_now()
    readings = []
    for line, train, platform, coaches, base_load in SAMPLE_TRAINS:
        for coach in range(1, coaches * 3 + 1):
            passengers = (base_load // coaches) * (1 + coach % 3) // 3
            capacity = 400
            readings.append(CrowdReading(
                id=str(uuid.uuid4()),
                line=line,
                train_number=train,
                direction="up",
                coach_number=coach,
                occupancy_level=crowd_level_for_ratio(occupancy_ratio(passengers, capacity)).value,
                passenger_count=min(passengers, capacity),
                capacity=capacity,
                platform=platform,
                next_arrival="4 min",
                updated_at=now
            ))
    db.add_all(readings)

    alerts = [
        Alert(id=str(uuid.uuid4()), type="delay", message="Western Line running 10 minutes late",
              line="Western Line", severity="medium", created_at=now, expires_at=now + timedelta(hours=2)),
        Alert(id=str(uuid.uuid4()), type="crowd", message="Heavy crowding expected at Dadar",
              line="Central Line", station="Dadar", severity="low", created_at=now,
              expires_at=now + timedelta(hours=1)),
    ]
    db.add_all(alerts)
    return readings, alerts

def create_seed_data():
    init_db()
    db = SessionLocal()

    try:
        print("🚀 Creating seed data for Mumbai Transit System...")

        # Network data is replaced wholesale; accounts and tickets are kept
        print("Clearing existing network data...")
        db.query(Route).delete()
        db.query(Station).delete()
        db.query(CrowdReading).delete()
        db.query(Alert).delete()

        stations = create_stations(db)
        routes = create_routes(db)
        readings, alerts = create_live_samples(db)
        db.commit()

        operator = create_operator(db)

        print("✅ Successfully created seed data for Mumbai Transit System!")
        print(f"Created:")
        print(f"  - {len(stations)} stations")
        print(f"  - {len(routes)} routes")
        print(f"  - {len(readings)} crowd readings")
        print(f"  - {len(alerts)} alerts")
        print(f"  - {db.query(User).filter(User.is_admin.is_(True)).count()} operator account(s)")
        if operator is not None:
            print(f"  Operator login: {operator.email}")

    except Exception as e:
        print(f"❌ Error creating seed data: {e}")
        db.rollback()
        raise
    finally:
        db.close()

if __name__ == "__main__":
    create_seed_data()
