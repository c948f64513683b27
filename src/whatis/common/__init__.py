"""Shared infrastructure: HTTP client, logging helpers and the package cache lock."""
