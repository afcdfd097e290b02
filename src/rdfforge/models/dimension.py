"""Dimension registry models: shared code lists and their hierarchies."""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from rdfforge.core.clock import utcnow
from rdfforge.core.database import Base


class DimensionType(str, enum.Enum):
    KEY = "key"
    TEMPORAL = "temporal"
    GEO = "geo"
    CODED = "coded"
    MEASURE = "measure"
    ATTRIBUTE = "attribute"


class Dimension(Base):
    __tablename__ = "dimensions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    uri: Mapped[str] = mapped_column(String(1024), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(String(20), default=DimensionType.CODED.value)
    base_uri: Mapped[str | None] = mapped_column(String(1024), nullable=True)  # prefix for value IRIs
    value_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class DimensionValue(Base):
    __tablename__ = "dimension_values"
    __table_args__ = (UniqueConstraint("dimension_id", "code"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    dimension_id: Mapped[str] = mapped_column(String(36), ForeignKey("dimensions.id", ondelete="CASCADE"), index=True)
    code: Mapped[str] = mapped_column(String(255), nullable=False)
    uri: Mapped[str] = mapped_column(String(1024), nullable=False)
    label: Mapped[str | None] = mapped_column(String(512), nullable=True)
    parent_code: Mapped[str | None] = mapped_column(String(255), nullable=True)  # broader value, same dimension
    sort_order: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
