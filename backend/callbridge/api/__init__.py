"""Realtime Call Bridge - HTTP API (health and session endpoints)."""
