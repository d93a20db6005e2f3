from sqlalchemy import Column, Integer, BigInteger, String, Boolean, DateTime, Text, ForeignKey, Numeric, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from src.database import Base

# ================================
# Users
# ================================
class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    phone = Column(String(32))
    password = Column(String(255), nullable=False)
    is_admin = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    tickets = relationship("Ticket", back_populates="user")

# ================================
# Tickets
# ================================
class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(20), nullable=False)
    line = Column(String(100), nullable=False, index=True)
    from_station = Column(String(255), nullable=False)
    to_station = Column(String(255), nullable=False)
    qr_code = Column(Text, unique=True, nullable=False)
    valid_until = Column(DateTime(timezone=True), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="active", index=True)
    used_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    # Relationships
    user = relationship("User", back_populates="tickets")

# ================================
# Network: stations and static routes
# ================================
class Station(Base):
    __tablename__ = "stations"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    line = Column(String(100), nullable=False)
    is_metro = Column(Boolean, default=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

class Route(Base):
    __tablename__ = "routes"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, index=True)
    from_station = Column(String(255), nullable=False, index=True)
    to_station = Column(String(255), nullable=False, index=True)
    line = Column(String(100), nullable=False)
    distance_km = Column(Numeric(8, 2))
    base_fare = Column(Numeric(10, 2), nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

# ================================
# Crowd data & Alerts
# ================================
class CrowdReading(Base):
    __tablename__ = "crowd_data"

    id = Column(String(36), primary_key=True)
    line = Column(String(100), nullable=False, index=True)
    train_number = Column(String(50), nullable=False, index=True)
    direction = Column(String(50))
    coach_number = Column(Integer, nullable=False)
    occupancy_level = Column(String(20), nullable=False)
    passenger_count = Column(Integer, nullable=False, default=0)
    capacity = Column(Integer, nullable=False)
    platform = Column(String(20))
    next_arrival = Column(String(50))
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    __table_args__ = (
        Index("ix_crowd_train_coach", "train_number", "coach_number", unique=True),
    )

class Alert(Base):
    __tablename__ = "alerts"

    id = Column(String(36), primary_key=True)
    type = Column(String(20), nullable=False, index=True)
    message = Column(Text, nullable=False)
    line = Column(String(100))
    station = Column(String(255))
    severity = Column(String(20), default="low")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
