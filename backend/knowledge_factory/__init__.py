"""Knowledge Factory: document ingestion and retrieval-augmented chat."""

__version__ = "1.0.0"
