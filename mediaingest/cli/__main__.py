"""Allow ``python -m mediaingest.cli`` execution."""

from mediaingest.cli.ingest import main

main()
