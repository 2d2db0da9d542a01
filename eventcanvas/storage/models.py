"""SQLAlchemy ORM models for provider settings profiles."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
import uuid

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text, UniqueConstraint, func, text
from sqlalchemy.orm import Mapped, mapped_column

from eventcanvas.storage.db import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class ProviderSettingsProfile(Base):
    __tablename__ = "provider_settings_profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    provider_id: Mapped[str] = mapped_column(String(32), nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    base_settings_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    specific_settings_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    updated_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        UniqueConstraint("provider_id", "name", name="uq_provider_settings_profiles_provider_name"),
        Index(
            "uq_provider_settings_profiles_one_default",
            "provider_id",
            unique=True,
            postgresql_where=text("is_default"),
            sqlite_where=text("is_default"),
        ),
        Index("ix_provider_settings_profiles_provider_active", "provider_id", "is_active", "updated_at"),
    )

    # Every ORM UPDATE is issued as "... WHERE version = :old" and bumps the counter by one.
    __mapper_args__ = {"version_id_col": version}
