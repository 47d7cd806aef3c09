from __future__ import annotations
import datetime as dt
from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, CheckConstraint
from .db import Base


class Mapping(Base):
    __tablename__ = "mappings"
    __table_args__ = (
        CheckConstraint("view_count >= 0", name="ck_mappings_view_count"),
        CheckConstraint("object_key IS NOT NULL OR url IS NOT NULL", name="ck_mappings_target"),
    )

    hash = Column(String(64), primary_key=True)
    filename = Column(String, nullable=True)

    # Target: object_key wins over url; url alone means an externally hosted image
    url = Column(Text, nullable=True)
    object_key = Column(String, nullable=True)
    storage_tier = Column(String, nullable=True)  # None: try every backend
    file_extension = Column(String(8), nullable=True)  # "png", "jpg", ...

    # Access policy
    password = Column(String, nullable=True)  # short numeric code or passlib hash
    expires_at = Column(DateTime, nullable=True)

    view_count = Column(Integer, default=0, nullable=False)

    # Soft delete
    is_deleted = Column(Boolean, default=False, nullable=False)
    deleted_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=dt.datetime.utcnow)
