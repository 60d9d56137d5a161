"""mediaingest: asynchronous media ingestion into the Gemini File API."""

__version__ = "0.1.0"
