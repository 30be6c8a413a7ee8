"""Process entrypoints: HTTP API and event worker."""
