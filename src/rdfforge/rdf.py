"""RDF parsing and serialization helpers on top of rdflib."""

from __future__ import annotations

from rdflib import Graph, Literal, URIRef
from rdflib.term import BNode, Node

from rdfforge.core.errors import InputValidationError

# Public format names -> rdflib plugin names
RDF_FORMATS = {
    "turtle": "turtle",
    "ttl": "turtle",
    "jsonld": "json-ld",
    "json-ld": "json-ld",
    "ntriples": "nt",
    "nt": "nt",
    "nquads": "nquads",
    "rdfxml": "xml",
    "xml": "xml",
    "trig": "trig",
}

MEDIA_TYPES = {
    "turtle": "text/turtle",
    "json-ld": "application/ld+json",
    "nt": "application/n-triples",
    "nquads": "application/n-quads",
    "xml": "application/rdf+xml",
    "trig": "application/trig",
}


def rdflib_format(fmt: str) -> str:
    try:
        return RDF_FORMATS[fmt.lower()]
    except KeyError:
        raise InputValidationError(
            f"Unsupported RDF format '{fmt}'",
            errors=[{"path": "format", "message": f"expected one of {sorted(RDF_FORMATS)}"}],
        )


def parse_graph(content: str | bytes, fmt: str = "turtle", base: str | None = None) -> Graph:
    """Parse RDF text into a new Graph.

    Raises:
        InputValidationError: If the payload is not valid in the given format
    """
    graph = Graph()
    try:
        graph.parse(data=content, format=rdflib_format(fmt), publicID=base)
    except InputValidationError:
        raise
    except Exception as e:
        # rdflib parsers raise a mix of BadSyntax, SAXParseException, ValueError and JSON errors
        raise InputValidationError(
            f"Could not parse {fmt} content: {e}",
            errors=[{"path": "content", "message": str(e)}],
        ) from e
    return graph


def serialize_graph(graph: Graph, fmt: str = "turtle") -> str:
    return graph.serialize(format=rdflib_format(fmt))


def term_to_dict(term: Node) -> dict:
    """SPARQL JSON results style term encoding."""
    if isinstance(term, URIRef):
        return {"type": "uri", "value": str(term)}
    if isinstance(term, BNode):
        return {"type": "bnode", "value": str(term)}
    if isinstance(term, Literal):
        encoded = {"type": "literal", "value": str(term)}
        if term.language:
            encoded["xml:lang"] = term.language
        elif term.datatype:
            encoded["datatype"] = str(term.datatype)
        return encoded
    return {"type": "unknown", "value": str(term)}


def term_to_str(term: Node | None) -> str | None:
    if term is None:
        return None
    if isinstance(term, BNode):
        return f"_:{term}"
    return str(term)
