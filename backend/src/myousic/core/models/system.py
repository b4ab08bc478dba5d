"""System models: SystemSetting."""

from typing import Optional

from sqlalchemy import Float, String
from sqlalchemy.orm import Mapped, mapped_column

from myousic.core.models.base import Base, TimestampMixin


class SystemSetting(Base, TimestampMixin):
    """Persistent storage for dynamic settings and cached credentials."""

    __tablename__ = "system_settings"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[str] = mapped_column(String)
    description: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    # Epoch seconds; only set for expiring values such as bearer tokens
    expires_at: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
