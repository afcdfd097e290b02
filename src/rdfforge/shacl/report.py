"""Validation results."""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, field


class Severity(str, enum.Enum):
    VIOLATION = "Violation"
    WARNING = "Warning"
    INFO = "Info"


@dataclass
class ValidationViolation:
    focus_node: str
    path: str | None
    value: str | None
    severity: str
    constraint: str
    source_shape: str
    message: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ValidationReport:
    """Outcome of one evaluation. Always recomputed, never cached."""

    violations: list[ValidationViolation] = field(default_factory=list)
    execution_time: int = 0  # wall-clock ms for the whole evaluation
    focus_node_count: int = 0

    @property
    def violation_count(self) -> int:
        return sum(1 for v in self.violations if v.severity == Severity.VIOLATION.value)

    @property
    def warning_count(self) -> int:
        return sum(1 for v in self.violations if v.severity == Severity.WARNING.value)

    @property
    def info_count(self) -> int:
        return sum(1 for v in self.violations if v.severity == Severity.INFO.value)

    @property
    def conforms(self) -> bool:
        return self.violation_count == 0

    def to_dict(self, max_violations: int | None = None) -> dict:
        violations = self.violations if max_violations is None else self.violations[:max_violations]
        return {
            "conforms": self.conforms,
            "violation_count": self.violation_count,
            "warning_count": self.warning_count,
            "info_count": self.info_count,
            "focus_node_count": self.focus_node_count,
            "violations": [v.to_dict() for v in violations],
            "execution_time": self.execution_time,
        }
