"""JobContext: the runtime state threaded through the steps of one job."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from rdflib import Graph

from rdfforge.core.clock import utcnow
from rdfforge.core.errors import InputValidationError
from rdfforge.data.formats import Table
from rdfforge.models.job import LogLevel

if TYPE_CHECKING:
    from rdfforge.core.database import Database
    from rdfforge.data.storage import FileStorage
    from rdfforge.triplestore.registry import TriplestoreRegistry


@dataclass
class StepResources:
    """Process-wide collaborators a step may reach: database, uploaded files, triplestores."""

    database: "Database"
    storage: "FileStorage"
    triplestores: "TriplestoreRegistry"


@dataclass
class StepTrace:
    step_id: str
    name: str
    operation: str
    status: str = "pending"
    started_at: datetime | None = None
    finished_at: datetime | None = None
    duration_ms: int | None = None
    metrics: dict = field(default_factory=dict)
    error: dict | None = None


class JobContext:
    """Runtime context for one job execution.

    Holds the current table (tabular steps) and graph (RDF steps) handed
    from one step to the next, and buffers log entries until the runner
    persists them.
    """

    def __init__(
        self,
        job_id: str,
        pipeline_name: str,
        variables: dict | None = None,
        resources: StepResources | None = None,
        dry_run: bool = False,
        cancel_event: asyncio.Event | None = None,
    ):
        self.job_id = job_id
        self.pipeline_name = pipeline_name
        self.variables = variables or {}
        self.resources = resources
        self.dry_run = dry_run
        self.cancel_event = cancel_event or asyncio.Event()
        self.table: Table | None = None
        self.graph = Graph()
        self.output_graph: str | None = None
        self.current_step: str | None = None
        self._logs: list[dict[str, Any]] = []

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def log(self, message: str, level: str = LogLevel.INFO.value, details: dict | None = None) -> None:
        """Record a job log entry (persisted by the runner after each step)."""
        self._logs.append({
            "timestamp": utcnow(),
            "level": level,
            "step": self.current_step,
            "message": message,
            "details": details,
        })

    def warn(self, message: str, details: dict | None = None) -> None:
        self.log(message, LogLevel.WARN.value, details)

    def drain_logs(self) -> list[dict[str, Any]]:
        entries, self._logs = self._logs, []
        return entries

    def require_table(self, operation: str) -> Table:
        if self.table is None:
            raise InputValidationError(
                f"'{operation}' needs tabular input; add a load-csv or load-json step before it",
                errors=[{"path": "steps", "message": "no table loaded"}],
            )
        return self.table
