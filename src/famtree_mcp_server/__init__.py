"""Family-tree graph server: people, their relationships and photos on Neo4j."""

__version__ = "0.1.0"
