"""RDF Forge: pipeline job orchestration and SHACL validation for RDF data production."""

__version__ = "0.1.0"
