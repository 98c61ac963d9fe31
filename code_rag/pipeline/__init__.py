"""Ingest and query drivers plus the command line entry points."""
