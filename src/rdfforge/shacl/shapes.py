"""Shapes graph access: shape discovery, targets, property paths and syntax checks."""

from __future__ import annotations

import re
from typing import Iterable

from rdflib import RDF, RDFS, Graph, Literal, Namespace, URIRef
from rdflib.collection import Collection
from rdflib.term import Node

from rdfforge.core.errors import InputValidationError
from rdfforge.rdf import parse_graph, term_to_str

SH = Namespace("http://www.w3.org/ns/shacl#")

TARGET_PREDICATES = (SH.targetClass, SH.targetNode, SH.targetSubjectsOf, SH.targetObjectsOf)
SHAPE_TYPES = (SH.NodeShape, SH.PropertyShape)


def _unique(nodes: Iterable[Node]) -> list[Node]:
    return list(dict.fromkeys(nodes))


class ShapesGraph:
    """Read access to a parsed SHACL shapes graph."""

    def __init__(self, graph: Graph):
        self.graph = graph

    @classmethod
    def parse(cls, content: str, fmt: str = "turtle") -> "ShapesGraph":
        return cls(parse_graph(content, fmt))

    # ─── Accessors ───

    def value(self, shape: Node, predicate: URIRef) -> Node | None:
        return self.graph.value(shape, predicate)

    def values(self, shape: Node, predicate: URIRef) -> list[Node]:
        return list(self.graph.objects(shape, predicate))

    def list_items(self, head: Node) -> list[Node]:
        if head == RDF.nil:
            return []
        return list(Collection(self.graph, head))

    def is_deactivated(self, shape: Node) -> bool:
        flag = self.value(shape, SH.deactivated)
        return isinstance(flag, Literal) and flag.toPython() is True

    # ─── Shapes and targets ───

    def targeted_shapes(self) -> list[Node]:
        """Shapes that select their own focus nodes."""
        shapes: list[Node] = []
        for predicate in TARGET_PREDICATES:
            shapes.extend(self.graph.subjects(predicate, None))
        for shape_type in SHAPE_TYPES:
            for shape in self.graph.subjects(RDF.type, shape_type):
                if (shape, RDF.type, RDFS.Class) in self.graph:
                    shapes.append(shape)
        return _unique(shapes)

    def declared_shapes(self) -> list[Node]:
        """Named shapes plus every targeted shape."""
        shapes: list[Node] = []
        for shape_type in SHAPE_TYPES:
            for shape in self.graph.subjects(RDF.type, shape_type):
                if isinstance(shape, URIRef):
                    shapes.append(shape)
        shapes.extend(self.targeted_shapes())
        return _unique(shapes)

    def target_classes(self, shape: Node) -> list[Node]:
        classes = self.values(shape, SH.targetClass)
        if (shape, RDF.type, RDFS.Class) in self.graph:
            classes.append(shape)
        return classes

    def focus_nodes(self, shape: Node, data: Graph) -> list[Node]:
        nodes: list[Node] = []
        for cls in self.target_classes(shape):
            nodes.extend(instances_of(data, cls))
        nodes.extend(self.values(shape, SH.targetNode))
        for predicate in self.values(shape, SH.targetSubjectsOf):
            nodes.extend(data.subjects(predicate, None))
        for predicate in self.values(shape, SH.targetObjectsOf):
            nodes.extend(data.objects(None, predicate))
        return _unique(nodes)

    # ─── Property paths ───

    def evaluate_path(self, path: Node, data: Graph, focus: Node) -> list[Node]:
        return _unique(self._walk(path, data, [focus]))

    def _walk(self, path: Node, data: Graph, nodes: list[Node]) -> list[Node]:
        if isinstance(path, URIRef):
            return [o for n in nodes for o in data.objects(n, path)]

        if (path, RDF.first, None) in self.graph:
            current = nodes
            for step in self.list_items(path):
                current = _unique(self._walk(step, data, current))
            return current

        inverse = self.value(path, SH.inversePath)
        if inverse is not None:
            if isinstance(inverse, URIRef):
                return [s for n in nodes for s in data.subjects(inverse, n)]
            candidates = _unique(list(data.subjects()) + list(data.objects()))
            return [c for c in candidates if any(n in self._walk(inverse, data, [c]) for n in nodes)]

        alternatives = self.value(path, SH.alternativePath)
        if alternatives is not None:
            found: list[Node] = []
            for option in self.list_items(alternatives):
                found.extend(self._walk(option, data, nodes))
            return found

        for predicate, include_start, repeat in (
            (SH.zeroOrMorePath, True, True),
            (SH.oneOrMorePath, False, True),
            (SH.zeroOrOnePath, True, False),
        ):
            inner = self.value(path, predicate)
            if inner is None:
                continue
            reached: list[Node] = list(nodes) if include_start else []
            frontier = nodes
            while frontier:
                step = [n for n in _unique(self._walk(inner, data, frontier)) if n not in reached]
                reached.extend(step)
                frontier = step if repeat else []
            return reached

        raise InputValidationError(f"Unsupported property path: {term_to_str(path)}")

    def render_path(self, path: Node | None) -> str | None:
        if path is None:
            return None
        if isinstance(path, URIRef):
            return str(path)
        if (path, RDF.first, None) in self.graph:
            return "/".join(self.render_path(p) or "" for p in self.list_items(path))
        inverse = self.value(path, SH.inversePath)
        if inverse is not None:
            return f"^{self.render_path(inverse)}"
        alternatives = self.value(path, SH.alternativePath)
        if alternatives is not None:
            return "(" + "|".join(self.render_path(p) or "" for p in self.list_items(alternatives)) + ")"
        for predicate, suffix in ((SH.zeroOrMorePath, "*"), (SH.oneOrMorePath, "+"), (SH.zeroOrOnePath, "?")):
            inner = self.value(path, predicate)
            if inner is not None:
                return f"({self.render_path(inner)}){suffix}"
        return term_to_str(path)


def instances_of(data: Graph, cls: Node) -> list[Node]:
    """SHACL instances: rdf:type of the class or any rdfs:subClassOf* descendant."""
    nodes: list[Node] = []
    for sub in data.transitive_subjects(RDFS.subClassOf, cls):
        nodes.extend(data.subjects(RDF.type, sub))
    return _unique(nodes)


def is_instance(data: Graph, node: Node, cls: Node) -> bool:
    for node_type in data.objects(node, RDF.type):
        if cls in data.transitive_objects(node_type, RDFS.subClassOf):
            return True
    return False


# ─── Syntax checks ───

def _is_non_negative_integer(term: Node | None) -> bool:
    if not isinstance(term, Literal):
        return False
    value = term.toPython()
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def shape_problems(shapes: ShapesGraph) -> tuple[list[dict], list[dict]]:
    """Errors and warnings in the constraint parameters of a parsed shapes graph."""
    errors: list[dict] = []
    warnings: list[dict] = []
    graph = shapes.graph

    property_shapes = _unique(
        list(graph.objects(None, SH.property)) + list(graph.subjects(RDF.type, SH.PropertyShape))
    )
    for prop in property_shapes:
        if shapes.value(prop, SH.path) is None:
            errors.append({"path": term_to_str(prop), "message": "Property shape is missing sh:path"})

    for predicate in (SH.minCount, SH.maxCount, SH.minLength, SH.maxLength):
        for subject, value in graph.subject_objects(predicate):
            if not _is_non_negative_integer(value):
                errors.append({
                    "path": term_to_str(subject),
                    "message": f"sh:{predicate.split('#')[-1]} must be a non-negative integer, got {value}",
                })

    for subject, value in graph.subject_objects(SH.datatype):
        if not isinstance(value, URIRef):
            errors.append({"path": term_to_str(subject), "message": "sh:datatype must be an IRI"})

    for subject, value in graph.subject_objects(SH.pattern):
        try:
            re.compile(str(value))
        except re.error as e:
            errors.append({"path": term_to_str(subject), "message": f"Invalid sh:pattern: {e}"})

    for subject, value in graph.subject_objects(SH["in"]):
        if value != RDF.nil and (value, RDF.first, None) not in graph:
            errors.append({"path": term_to_str(subject), "message": "sh:in must be an RDF list"})

    for subject, value in graph.subject_objects(SH.severity):
        if value not in (SH.Violation, SH.Warning, SH.Info):
            warnings.append({"path": term_to_str(subject), "message": f"Unknown severity {value}, treated as Violation"})
    return errors, warnings


def check_shapes(content: str, fmt: str = "turtle") -> dict:
    """Parse shape content and report structural problems without validating any data."""
    try:
        shapes = ShapesGraph.parse(content, fmt)
    except InputValidationError as e:
        return {"valid": False, "errors": [{"path": "content", "message": e.message}], "warnings": [], "shape_count": 0}

    errors, warnings = shape_problems(shapes)
    declared = shapes.declared_shapes()
    if not declared:
        errors.append({"path": "content", "message": "No SHACL shapes found"})
    elif not shapes.targeted_shapes():
        warnings.append({"path": "content", "message": "No shape declares a target; validation will select no focus nodes"})

    return {"valid": not errors, "errors": errors, "warnings": warnings, "shape_count": len(declared)}


def load_shapes(content: str, fmt: str = "turtle") -> ShapesGraph:
    """Parse shapes for validation, rejecting constraint parameters the validator cannot evaluate.

    Raises:
        InputValidationError: If the content does not parse or a parameter is malformed
    """
    shapes = ShapesGraph.parse(content, fmt)
    errors, _ = shape_problems(shapes)
    if errors:
        raise InputValidationError(f"Invalid SHACL shapes ({len(errors)} errors)", errors=errors)
    return shapes


def first_target_class(content: str, fmt: str = "turtle") -> str | None:
    shapes = ShapesGraph.parse(content, fmt)
    for shape in shapes.targeted_shapes():
        classes = shapes.target_classes(shape)
        if classes:
            return str(classes[0])
    return None


