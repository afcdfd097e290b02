"""SHACL Core validator.

Evaluates every targeted shape in a shapes graph against a data graph. Each
unmet constraint yields one ValidationViolation per offending value node;
cardinality and hasValue constraints yield one entry per focus node. Only
Violation-severity entries affect conformance.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from typing import Callable

from rdflib import RDF, XSD, Graph, Literal, URIRef
from rdflib.term import BNode, Node

from rdfforge.rdf import term_to_str
from rdfforge.shacl.report import Severity, ValidationReport, ValidationViolation
from rdfforge.shacl.shapes import SH, ShapesGraph, is_instance

SEVERITIES = {
    SH.Violation: Severity.VIOLATION.value,
    SH.Warning: Severity.WARNING.value,
    SH.Info: Severity.INFO.value,
}

_REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "x": re.VERBOSE}


@dataclass
class _Scope:
    """One (shape, focus node) evaluation."""

    shape: Node
    focus: Node
    path: Node | None
    values: list[Node]
    data: Graph
    stack: frozenset


class ShaclValidator:
    def __init__(self, shapes: ShapesGraph):
        self.shapes = shapes

    def validate(self, data: Graph) -> ValidationReport:
        started = time.perf_counter()
        report = ValidationReport()
        for shape in self.shapes.targeted_shapes():
            if self.shapes.is_deactivated(shape):
                continue
            for focus in self.shapes.focus_nodes(shape, data):
                report.focus_node_count += 1
                report.violations.extend(self._validate_shape(shape, focus, data, frozenset()))
        report.execution_time = int((time.perf_counter() - started) * 1000)
        return report

    def conforms(self, shape: Node, node: Node, data: Graph, stack: frozenset) -> bool:
        """A node conforms to a shape when the shape produces no results of any severity."""
        return not self._validate_shape(shape, node, data, stack)

    def _validate_shape(self, shape: Node, focus: Node, data: Graph, stack: frozenset) -> list[ValidationViolation]:
        if self.shapes.is_deactivated(shape) or (shape, focus) in stack:
            return []
        stack = stack | {(shape, focus)}

        path = self.shapes.value(shape, SH.path)
        values = self.shapes.evaluate_path(path, data, focus) if path is not None else [focus]
        scope = _Scope(shape=shape, focus=focus, path=path, values=values, data=data, stack=stack)

        results: list[ValidationViolation] = []
        for component in COMPONENTS:
            results.extend(component(self, scope))
        for prop in self.shapes.values(shape, SH.property):
            results.extend(self._validate_shape(prop, focus, data, stack))
        return results

    def result(
        self,
        scope: _Scope,
        component: str,
        message: str,
        value: Node | None = None,
        path: Node | None = None,
    ) -> ValidationViolation:
        severity = SEVERITIES.get(self.shapes.value(scope.shape, SH.severity), Severity.VIOLATION.value)
        custom = self.shapes.value(scope.shape, SH.message)
        return ValidationViolation(
            focus_node=term_to_str(scope.focus),
            path=self.shapes.render_path(path if path is not None else scope.path),
            value=term_to_str(value),
            severity=severity,
            constraint=f"sh:{component}ConstraintComponent",
            source_shape=term_to_str(scope.shape),
            message=str(custom) if custom is not None else message,
        )


def validate(shapes: ShapesGraph, data: Graph) -> ValidationReport:
    return ShaclValidator(shapes).validate(data)


# ─── Constraint components ───

def _int_param(term: Node) -> int:
    return int(term.toPython())


def _min_count(v: ShaclValidator, s: _Scope) -> list[ValidationViolation]:
    if s.path is None:
        return []
    results = []
    for param in v.shapes.values(s.shape, SH.minCount):
        minimum = _int_param(param)
        if len(s.values) < minimum:
            results.append(v.result(s, "MinCount", f"Less than {minimum} values ({len(s.values)} found)"))
    return results


def _max_count(v: ShaclValidator, s: _Scope) -> list[ValidationViolation]:
    if s.path is None:
        return []
    results = []
    for param in v.shapes.values(s.shape, SH.maxCount):
        maximum = _int_param(param)
        if len(s.values) > maximum:
            results.append(v.result(s, "MaxCount", f"More than {maximum} values ({len(s.values)} found)"))
    return results


def _literal_datatype(term: Literal) -> URIRef:
    if term.datatype is not None:
        return term.datatype
    return RDF.langString if term.language else XSD.string


def _datatype(v: ShaclValidator, s: _Scope) -> list[ValidationViolation]:
    results = []
    for datatype in v.shapes.values(s.shape, SH.datatype):
        for value in s.values:
            ok = (
                isinstance(value, Literal)
                and _literal_datatype(value) == datatype
                and not getattr(value, "ill_typed", False)
            )
            if not ok:
                results.append(v.result(s, "Datatype", f"Value is not a valid literal of datatype {datatype}", value))
    return results


def _class(v: ShaclValidator, s: _Scope) -> list[ValidationViolation]:
    results = []
    for cls in v.shapes.values(s.shape, SH["class"]):
        for value in s.values:
            if isinstance(value, Literal) or not is_instance(s.data, value, cls):
                results.append(v.result(s, "Class", f"Value is not an instance of {cls}", value))
    return results


_NODE_KINDS: dict[Node, Callable[[Node], bool]] = {
    SH.IRI: lambda n: isinstance(n, URIRef),
    SH.BlankNode: lambda n: isinstance(n, BNode),
    SH.Literal: lambda n: isinstance(n, Literal),
    SH.BlankNodeOrIRI: lambda n: isinstance(n, (BNode, URIRef)),
    SH.BlankNodeOrLiteral: lambda n: isinstance(n, (BNode, Literal)),
    SH.IRIOrLiteral: lambda n: isinstance(n, (URIRef, Literal)),
}


def _node_kind(v: ShaclValidator, s: _Scope) -> list[ValidationViolation]:
    results = []
    for kind in v.shapes.values(s.shape, SH.nodeKind):
        check = _NODE_KINDS.get(kind)
        if check is None:
            continue
        for value in s.values:
            if not check(value):
                results.append(v.result(s, "NodeKind", f"Value does not have node kind {kind}", value))
    return results


def _compare(value: Node, bound: Node, op: Callable[[object, object], bool]) -> bool:
    if not isinstance(value, Literal) or not isinstance(bound, Literal):
        return False
    left, right = value.toPython(), bound.toPython()
    if isinstance(left, Literal) or isinstance(right, Literal):
        return False
    try:
        return bool(op(left, right))
    except TypeError:
        return False


_RANGES = (
    (SH.minInclusive, "MinInclusive", lambda a, b: a >= b, "less than"),
    (SH.minExclusive, "MinExclusive", lambda a, b: a > b, "less than or equal to"),
    (SH.maxInclusive, "MaxInclusive", lambda a, b: a <= b, "greater than"),
    (SH.maxExclusive, "MaxExclusive", lambda a, b: a < b, "greater than or equal to"),
)


def _value_range(v: ShaclValidator, s: _Scope) -> list[ValidationViolation]:
    results = []
    for predicate, component, op, relation in _RANGES:
        for bound in v.shapes.values(s.shape, predicate):
            for value in s.values:
                if not _compare(value, bound, op):
                    results.append(v.result(s, component, f"Value is {relation} {bound}", value))
    return results


def _length(v: ShaclValidator, s: _Scope) -> list[ValidationViolation]:
    results = []
    for predicate, component, check in (
        (SH.minLength, "MinLength", lambda n, b: n >= b),
        (SH.maxLength, "MaxLength", lambda n, b: n <= b),
    ):
        for param in v.shapes.values(s.shape, predicate):
            bound = _int_param(param)
            for value in s.values:
                if isinstance(value, BNode) or not check(len(str(value)), bound):
                    word = "shorter" if component == "MinLength" else "longer"
                    results.append(v.result(s, component, f"Value is {word} than {bound} characters", value))
    return results


def _pattern(v: ShaclValidator, s: _Scope) -> list[ValidationViolation]:
    results = []
    flags_term = v.shapes.value(s.shape, SH.flags)
    flags = 0
    for char in str(flags_term or ""):
        flags |= _REGEX_FLAGS.get(char, 0)
    for pattern in v.shapes.values(s.shape, SH.pattern):
        regex = re.compile(str(pattern), flags)
        for value in s.values:
            if isinstance(value, BNode) or not regex.search(str(value)):
                results.append(v.result(s, "Pattern", f"Value does not match pattern '{pattern}'", value))
    return results


def _in(v: ShaclValidator, s: _Scope) -> list[ValidationViolation]:
    results = []
    for head in v.shapes.values(s.shape, SH["in"]):
        allowed = v.shapes.list_items(head)
        for value in s.values:
            if value not in allowed:
                shown = ", ".join(term_to_str(a) or "" for a in allowed)
                results.append(v.result(s, "In", f"Value is not in [{shown}]", value))
    return results


def _has_value(v: ShaclValidator, s: _Scope) -> list[ValidationViolation]:
    results = []
    for expected in v.shapes.values(s.shape, SH.hasValue):
        if expected not in s.values:
            results.append(v.result(s, "HasValue", f"Missing expected value {expected}", expected))
    return results


def _language_in(v: ShaclValidator, s: _Scope) -> list[ValidationViolation]:
    results = []
    for head in v.shapes.values(s.shape, SH.languageIn):
        tags = [str(t).lower() for t in v.shapes.list_items(head)]
        for value in s.values:
            language = value.language.lower() if isinstance(value, Literal) and value.language else None
            if language is None or not any(language == t or language.startswith(t + "-") for t in tags):
                results.append(v.result(s, "LanguageIn", f"Language tag not in {tags}", value))
    return results


def _unique_lang(v: ShaclValidator, s: _Scope) -> list[ValidationViolation]:
    flag = v.shapes.value(s.shape, SH.uniqueLang)
    if s.path is None or not (isinstance(flag, Literal) and flag.toPython() is True):
        return []
    seen: dict[str, int] = {}
    for value in s.values:
        if isinstance(value, Literal) and value.language:
            seen[value.language.lower()] = seen.get(value.language.lower(), 0) + 1
    return [
        v.result(s, "UniqueLang", f"Language '{lang}' used more than once")
        for lang, count in seen.items()
        if count > 1
    ]


def _node(v: ShaclValidator, s: _Scope) -> list[ValidationViolation]:
    results = []
    for node_shape in v.shapes.values(s.shape, SH.node):
        for value in s.values:
            if not v.conforms(node_shape, value, s.data, s.stack):
                results.append(v.result(s, "Node", f"Value does not conform to shape {term_to_str(node_shape)}", value))
    return results


def _not(v: ShaclValidator, s: _Scope) -> list[ValidationViolation]:
    results = []
    for negated in v.shapes.values(s.shape, SH["not"]):
        for value in s.values:
            if v.conforms(negated, value, s.data, s.stack):
                results.append(v.result(s, "Not", f"Value conforms to negated shape {term_to_str(negated)}", value))
    return results


def _and(v: ShaclValidator, s: _Scope) -> list[ValidationViolation]:
    results = []
    for head in v.shapes.values(s.shape, SH["and"]):
        members = v.shapes.list_items(head)
        for value in s.values:
            if not all(v.conforms(m, value, s.data, s.stack) for m in members):
                results.append(v.result(s, "And", "Value does not conform to all shapes in sh:and", value))
    return results


def _or(v: ShaclValidator, s: _Scope) -> list[ValidationViolation]:
    results = []
    for head in v.shapes.values(s.shape, SH["or"]):
        members = v.shapes.list_items(head)
        for value in s.values:
            if not any(v.conforms(m, value, s.data, s.stack) for m in members):
                results.append(v.result(s, "Or", "Value does not conform to any shape in sh:or", value))
    return results


def _xone(v: ShaclValidator, s: _Scope) -> list[ValidationViolation]:
    results = []
    for head in v.shapes.values(s.shape, SH.xone):
        members = v.shapes.list_items(head)
        for value in s.values:
            matched = sum(1 for m in members if v.conforms(m, value, s.data, s.stack))
            if matched != 1:
                results.append(v.result(s, "Xone", f"Value conforms to {matched} shapes in sh:xone, expected 1", value))
    return results


def _closed(v: ShaclValidator, s: _Scope) -> list[ValidationViolation]:
    flag = v.shapes.value(s.shape, SH.closed)
    if s.path is not None or not (isinstance(flag, Literal) and flag.toPython() is True):
        return []
    allowed: set[Node] = set()
    for prop in v.shapes.values(s.shape, SH.property):
        path = v.shapes.value(prop, SH.path)
        if isinstance(path, URIRef):
            allowed.add(path)
    for head in v.shapes.values(s.shape, SH.ignoredProperties):
        allowed.update(v.shapes.list_items(head))

    results = []
    for value in s.values:
        if isinstance(value, Literal):
            continue
        for predicate, obj in s.data.predicate_objects(value):
            if predicate not in allowed:
                results.append(v.result(s, "Closed", f"Predicate {predicate} is not allowed (closed shape)", obj, path=predicate))
    return results


COMPONENTS: tuple[Callable[[ShaclValidator, _Scope], list[ValidationViolation]], ...] = (
    _class,
    _datatype,
    _node_kind,
    _min_count,
    _max_count,
    _value_range,
    _length,
    _pattern,
    _language_in,
    _unique_lang,
    _in,
    _has_value,
    _node,
    _not,
    _and,
    _or,
    _xone,
    _closed,
)
