"""
SQLAlchemy ORM models for persistence.
"""
from datetime import datetime
from sqlalchemy import Column, DateTime, Integer, JSON, String

from db import Base


class UsageStatsORM(Base):
    __tablename__ = "usage_stats"

    device_id = Column(String, primary_key=True, index=True)
    current_month = Column(String, nullable=False)
    search_count = Column(Integer, nullable=False, default=0)
    place_view_count = Column(Integer, nullable=False, default=0)
    total_searches_all_time = Column(Integer, nullable=False, default=0)
    last_search_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class HiddenPlaceORM(Base):
    __tablename__ = "hidden_places"

    device_id = Column(String, primary_key=True)
    normalized_name = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    hidden_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class SavedPlaceORM(Base):
    __tablename__ = "saved_places"

    device_id = Column(String, primary_key=True)
    normalized_name = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    place = Column(JSON, nullable=False)
    saved_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class HistoryEntryORM(Base):
    __tablename__ = "history_entries"

    device_id = Column(String, primary_key=True)
    normalized_name = Column(String, primary_key=True)
    place_id = Column(String, nullable=False, index=True)
    place = Column(JSON, nullable=False)
    search_query = Column(String, nullable=True)
    location = Column(String, nullable=False, default="Unknown")
    viewed_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)


class CollectionORM(Base):
    __tablename__ = "collections"

    id = Column(String, primary_key=True, index=True)
    device_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    icon = Column(String, nullable=True)
    place_ids = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)
