"""
SQLAlchemy tables and engine wiring shared by the SQL-backed repositories.
"""

from __future__ import annotations

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    Integer,
    String,
    create_engine,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

Base = declarative_base()


class ProductRow(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String, nullable=False)
    category = Column(String, nullable=False, index=True)
    image = Column(String, nullable=True)
    image_public_id = Column(String, nullable=True)
    image_version = Column(Integer, nullable=False, default=1)
    new_price = Column(Float, nullable=False)
    old_price = Column(Float, nullable=False, default=0)
    available = Column(Boolean, nullable=False, default=True)
    features = Column(JSON, nullable=False, default=list)
    date = Column(DateTime(timezone=True), nullable=False)


class CounterRow(Base):
    """Highest value ever handed out for a named sequence."""

    __tablename__ = "catalog_counters"

    name = Column(String, primary_key=True)
    value = Column(Integer, nullable=False, default=0)


class UserRow(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True, index=True)
    password = Column(String, nullable=False)
    cart_data = Column(JSON, nullable=False)
    date = Column(DateTime(timezone=True), nullable=False)


def create_db_engine(database_url: str) -> Engine:
    if not database_url:
        raise ValueError("DATABASE_URL is required for the SQL repositories")
    engine = create_engine(
        database_url,
        future=True,
        pool_pre_ping=True,
        pool_recycle=1800,
    )
    Base.metadata.create_all(engine)
    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        bind=engine, class_=Session, expire_on_commit=False, future=True
    )
