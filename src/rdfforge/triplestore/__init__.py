"""Triplestore connectors: in-process rdflib store and remote SPARQL stores."""

from rdfforge.triplestore.base import ConnectionTestResult, QueryResult, TriplestoreConnector
from rdfforge.triplestore.memory import MemoryStore
from rdfforge.triplestore.registry import TriplestoreRegistry
from rdfforge.triplestore.sparql import SparqlStore

__all__ = [
    "ConnectionTestResult",
    "MemoryStore",
    "QueryResult",
    "SparqlStore",
    "TriplestoreConnector",
    "TriplestoreRegistry",
]
