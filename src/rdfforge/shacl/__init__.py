"""SHACL Core validation."""

from rdfforge.shacl.report import Severity, ValidationReport, ValidationViolation
from rdfforge.shacl.shapes import SH, ShapesGraph, load_shapes
from rdfforge.shacl.validator import ShaclValidator, validate

__all__ = [
    "SH",
    "Severity",
    "ShaclValidator",
    "ShapesGraph",
    "ValidationReport",
    "ValidationViolation",
    "load_shapes",
    "validate",
]
