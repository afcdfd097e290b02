"""Shape generation from structured definitions, and shape inference from instance data."""

from __future__ import annotations

from typing import Any

from rdflib import RDF, RDFS, XSD, BNode, Graph, Literal, Namespace, URIRef
from rdflib.collection import Collection

from rdfforge.core.errors import InputValidationError
from rdfforge.shacl.shapes import SH

_SEVERITY_IRIS = {"violation": SH.Violation, "warning": SH.Warning, "info": SH.Info}
_NODE_KIND_IRIS = {
    "iri": SH.IRI,
    "blanknode": SH.BlankNode,
    "literal": SH.Literal,
    "blanknodeoriri": SH.BlankNodeOrIRI,
    "blanknodeorliteral": SH.BlankNodeOrLiteral,
    "iriorliteral": SH.IRIOrLiteral,
}
_DEFAULT_PREFIXES = {"xsd": str(XSD), "rdf": str(RDF), "rdfs": str(RDFS), "sh": str(SH)}


def _expand(term: str, prefixes: dict[str, str]) -> URIRef:
    """Expand a CURIE like ex:name with the given prefixes; full IRIs pass through."""
    if "://" in term or term.startswith("urn:"):
        return URIRef(term)
    prefix, sep, local = term.partition(":")
    if sep and prefix in prefixes:
        return URIRef(prefixes[prefix] + local)
    raise InputValidationError(
        f"Cannot expand '{term}': not an absolute IRI and prefix '{prefix}' is not declared",
        errors=[{"path": term, "message": "unknown prefix"}],
    )


def _typed(value: Any, datatype: URIRef | None) -> Literal:
    if datatype is not None:
        return Literal(str(value), datatype=datatype)
    return Literal(value)


def _add_list(graph: Graph, items: list) -> BNode:
    head = BNode()
    Collection(graph, head, items)
    return head


def build_shape_graph(definition: dict[str, Any]) -> Graph:
    """Build a node shape graph from a structured definition.

    definition keys: uri, target_class, closed, ignored_properties, severity,
    prefixes, properties (each with path, name, description, min_count,
    max_count, datatype, class, node_kind, pattern, flags, min_length,
    max_length, min_inclusive, max_inclusive, min_exclusive, max_exclusive,
    in, has_value, node, severity, message).
    """
    prefixes = {**_DEFAULT_PREFIXES, **(definition.get("prefixes") or {})}
    if not definition.get("uri"):
        raise InputValidationError("Shape definition requires a uri", errors=[{"path": "uri", "message": "required"}])

    graph = Graph()
    for prefix, namespace in prefixes.items():
        graph.bind(prefix, Namespace(namespace))

    shape = _expand(definition["uri"], prefixes)
    graph.add((shape, RDF.type, SH.NodeShape))
    if definition.get("name"):
        graph.add((shape, RDFS.label, Literal(definition["name"])))
    if definition.get("target_class"):
        graph.add((shape, SH.targetClass, _expand(definition["target_class"], prefixes)))
    if definition.get("closed"):
        graph.add((shape, SH.closed, Literal(True)))
        ignored = [_expand(p, prefixes) for p in definition.get("ignored_properties") or []]
        if ignored:
            graph.add((shape, SH.ignoredProperties, _add_list(graph, ignored)))
    if definition.get("severity"):
        graph.add((shape, SH.severity, _severity(definition["severity"])))

    for index, prop in enumerate(definition.get("properties") or []):
        _add_property(graph, shape, prop, prefixes, index)
    return graph


def _severity(name: str) -> URIRef:
    try:
        return _SEVERITY_IRIS[name.lower()]
    except KeyError:
        raise InputValidationError(f"Unknown severity '{name}'", errors=[{"path": "severity", "message": "expected violation, warning or info"}])


def _add_property(graph: Graph, shape: URIRef, prop: dict[str, Any], prefixes: dict[str, str], index: int) -> None:
    if not prop.get("path"):
        raise InputValidationError(
            "Property shape requires a path",
            errors=[{"path": f"properties[{index}].path", "message": "required"}],
        )
    node = BNode()
    graph.add((shape, SH.property, node))
    graph.add((node, SH.path, _expand(prop["path"], prefixes)))

    if prop.get("name"):
        graph.add((node, SH.name, Literal(prop["name"])))
    if prop.get("description"):
        graph.add((node, SH.description, Literal(prop["description"])))

    datatype = _expand(prop["datatype"], prefixes) if prop.get("datatype") else None
    if datatype is not None:
        graph.add((node, SH.datatype, datatype))
    if prop.get("class"):
        graph.add((node, SH["class"], _expand(prop["class"], prefixes)))
    if prop.get("node"):
        graph.add((node, SH.node, _expand(prop["node"], prefixes)))
    if prop.get("node_kind"):
        kind = _NODE_KIND_IRIS.get(prop["node_kind"].replace("_", "").lower())
        if kind is None:
            raise InputValidationError(
                f"Unknown node kind '{prop['node_kind']}'",
                errors=[{"path": f"properties[{index}].node_kind", "message": f"expected one of {sorted(_NODE_KIND_IRIS)}"}],
            )
        graph.add((node, SH.nodeKind, kind))

    for key, predicate in (
        ("min_count", SH.minCount),
        ("max_count", SH.maxCount),
        ("min_length", SH.minLength),
        ("max_length", SH.maxLength),
    ):
        if prop.get(key) is not None:
            graph.add((node, predicate, Literal(int(prop[key]))))

    for key, predicate in (
        ("min_inclusive", SH.minInclusive),
        ("max_inclusive", SH.maxInclusive),
        ("min_exclusive", SH.minExclusive),
        ("max_exclusive", SH.maxExclusive),
    ):
        if prop.get(key) is not None:
            graph.add((node, predicate, _typed(prop[key], datatype)))

    if prop.get("pattern"):
        graph.add((node, SH.pattern, Literal(prop["pattern"])))
        if prop.get("flags"):
            graph.add((node, SH.flags, Literal(prop["flags"])))
    if prop.get("in"):
        graph.add((node, SH["in"], _add_list(graph, [_typed(v, datatype) for v in prop["in"]])))
    if prop.get("has_value") is not None:
        graph.add((node, SH.hasValue, _typed(prop["has_value"], datatype)))
    if prop.get("severity"):
        graph.add((node, SH.severity, _severity(prop["severity"])))
    if prop.get("message"):
        graph.add((node, SH.message, Literal(prop["message"])))


def generate_turtle(definition: dict[str, Any]) -> str:
    return build_shape_graph(definition).serialize(format="turtle")


# ─── Inference ───

def infer_shape_definition(
    data: Graph,
    target_class: str | None = None,
    shape_uri: str | None = None,
) -> dict[str, Any]:
    """Derive a structured node shape from the instances of one class.

    When no class is given, the class with the most instances is used.
    """
    if target_class is None:
        counts: dict[URIRef, int] = {}
        for cls in data.objects(None, RDF.type):
            if isinstance(cls, URIRef):
                counts[cls] = counts.get(cls, 0) + 1
        if not counts:
            raise InputValidationError("Cannot infer a shape: data has no typed resources")
        cls = max(counts, key=lambda c: (counts[c], str(c)))
    else:
        cls = URIRef(target_class)

    instances = list(dict.fromkeys(data.subjects(RDF.type, cls)))
    if not instances:
        raise InputValidationError(f"Cannot infer a shape: no instances of {cls}")

    predicates: dict[URIRef, list[list]] = {}
    for instance in instances:
        for predicate in set(data.predicates(instance, None)):
            if predicate == RDF.type:
                continue
            predicates.setdefault(predicate, [])
    for predicate in predicates:
        for instance in instances:
            predicates[predicate].append(list(data.objects(instance, predicate)))

    properties = []
    for predicate in sorted(predicates, key=str):
        per_instance = predicates[predicate]
        counts = [len(values) for values in per_instance]
        values = [v for vs in per_instance for v in vs]
        prop: dict[str, Any] = {"path": str(predicate), "max_count": max(counts)}
        if min(counts) > 0:
            prop["min_count"] = min(counts)
        if values and all(isinstance(v, Literal) for v in values):
            datatypes = {v.datatype or (RDF.langString if v.language else XSD.string) for v in values}
            if len(datatypes) == 1:
                prop["datatype"] = str(datatypes.pop())
        elif values and all(isinstance(v, URIRef) for v in values):
            prop["node_kind"] = "iri"
            value_types = [set(data.objects(v, RDF.type)) for v in values]
            common = set.intersection(*value_types) if value_types else set()
            if len(common) == 1:
                prop["class"] = str(common.pop())
        properties.append(prop)

    local = str(cls).rstrip("/#").rsplit("/", 1)[-1].rsplit("#", 1)[-1]
    return {
        "uri": shape_uri or f"{cls}Shape",
        "name": f"{local}Shape",
        "target_class": str(cls),
        "properties": properties,
        "instance_count": len(instances),
    }
