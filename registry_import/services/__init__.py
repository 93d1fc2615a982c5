"""Import services: validation, retry, endpoint client, orchestration, progress, summary."""
