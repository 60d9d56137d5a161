"""Command-line tools for mediaingest.

- ``python -m mediaingest.cli`` streams an ingestion job (upload, url or
  direct mode) against a running server, or lists a tenant's files.
"""
