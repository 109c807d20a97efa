"""logpeek: in-memory log tail server with filtered query and live push."""

__version__ = "0.1.0"
