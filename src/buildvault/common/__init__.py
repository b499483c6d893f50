"""Shared helpers (logging, HTTP) used across buildvault modules."""
