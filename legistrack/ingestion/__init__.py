"""Ingestion module - Congress.gov client, transformer and sync pipelines."""
