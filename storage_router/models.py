"""
ORM models provisioned identically on every backend.
"""

from __future__ import annotations

from sqlalchemy import Column, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    phone = Column(String, nullable=False, unique=True)
    name = Column(String, nullable=False)
    created_at = Column(Float, nullable=False)
    last_seen_at = Column(Float, nullable=True)


class PostRow(Base):
    __tablename__ = "posts"

    id = Column(String, primary_key=True)
    author_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    body = Column(Text, nullable=False)
    like_count = Column(Integer, nullable=False, default=0)
    created_at = Column(Float, nullable=False, index=True)
