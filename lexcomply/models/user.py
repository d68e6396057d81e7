"""
Users. Provisioned on first authenticated request, never hard-deleted.
"""

from datetime import datetime

from sqlalchemy import String, Integer, Boolean, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base
from .base import utcnow


class User(Base):
    __tablename__ = "users"

    # Subject of the authenticated principal
    id: Mapped[str] = mapped_column(String, primary_key=True)
    email: Mapped[str] = mapped_column(String, unique=True, nullable=True)
    first_name: Mapped[str] = mapped_column(String, nullable=True)
    last_name: Mapped[str] = mapped_column(String, nullable=True)
    profile_image_url: Mapped[str] = mapped_column(String, nullable=True)
    role: Mapped[str] = mapped_column(
        String, nullable=False, default="user"
    )  # user, admin, legal_manager
    plan: Mapped[str] = mapped_column(
        String, nullable=False, default="basic"
    )  # basic, professional, enterprise
    plan_usage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    plan_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )
