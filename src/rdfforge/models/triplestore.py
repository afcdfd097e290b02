"""Triplestore connection model."""

import enum
import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from rdfforge.core.clock import utcnow
from rdfforge.core.database import Base


class TriplestoreType(str, enum.Enum):
    MEMORY = "memory"
    FUSEKI = "fuseki"
    GRAPHDB = "graphdb"
    STARDOG = "stardog"
    SPARQL = "sparql"


class TriplestoreConnection(Base):
    __tablename__ = "triplestore_connections"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    type: Mapped[str] = mapped_column(String(20), default=TriplestoreType.MEMORY.value)
    url: Mapped[str | None] = mapped_column(String(1024), nullable=True)  # SPARQL query endpoint
    graph_store_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    default_graph: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    auth_type: Mapped[str] = mapped_column(String(20), default="none")  # none, basic, apikey
    auth_config: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    health_status: Mapped[str] = mapped_column(String(20), default="unknown")
    last_health_check: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
