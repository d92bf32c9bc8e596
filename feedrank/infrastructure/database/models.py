"""SQLAlchemy database models."""

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class BookModel(Base):
    __tablename__ = "books"

    id = Column(String(64), primary_key=True)
    title = Column(String(255), nullable=False, index=True)
    genre = Column(String(100), nullable=False, default="general", server_default="general", index=True)
    author_id = Column(String(64), nullable=False, index=True)
    author_name = Column(String(255), nullable=False, default="")
    tags = Column(JSON, nullable=False, default=list)
    quality_score = Column(Float, nullable=True)

    views = Column(Integer, nullable=False, default=0)
    purchases = Column(Integer, nullable=False, default=0)
    total_reviews = Column(Integer, nullable=False, default=0)
    average_rating = Column(Float, nullable=False, default=0.0)
    word_count = Column(Integer, nullable=False, default=0)

    status = Column(String(20), nullable=False, default="draft", index=True)
    is_public = Column(Boolean, nullable=False, default=True)
    published_at = Column(DateTime, nullable=True)
    target_audience = Column(String(50), nullable=True)
    age_rating = Column(String(10), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (Index("ix_books_status_views", "status", "views"),)


class ActivityProfileModel(Base):
    """One row per user; nested collections are stored as JSON documents."""

    __tablename__ = "activity_profiles"

    user_id = Column(String(64), primary_key=True)

    genre_preferences = Column(JSON, nullable=False, default=list)
    author_preferences = Column(JSON, nullable=False, default=list)
    interaction_events = Column(JSON, nullable=False, default=list)
    reading_history = Column(JSON, nullable=False, default=list)
    writing_progress = Column(JSON, nullable=False, default=list)

    currently_reading = Column(JSON, nullable=False, default=list)
    completed_books = Column(JSON, nullable=False, default=list)
    abandoned_books = Column(JSON, nullable=False, default=list)
    currently_writing = Column(JSON, nullable=False, default=list)
    completed_writing = Column(JSON, nullable=False, default=list)

    total_books_read = Column(Integer, nullable=False, default=0)
    total_books_written = Column(Integer, nullable=False, default=0)
    total_reading_time = Column(Float, nullable=False, default=0.0)
    total_writing_time = Column(Float, nullable=False, default=0.0)
    last_active_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    current_streak = Column(Integer, nullable=False, default=0)
    longest_streak = Column(Integer, nullable=False, default=0)
    last_streak_date = Column(DateTime, nullable=True)

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class BookCompletionModel(Base):
    """Denormalised (user, completed book) pairs for set queries."""

    __tablename__ = "book_completions"

    user_id = Column(String(64), primary_key=True)
    book_id = Column(String(64), primary_key=True, index=True)
    completed_at = Column(DateTime, default=datetime.utcnow, nullable=False)
