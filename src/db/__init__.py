"""Persistence: engine, sessions, ORM models and migrations."""
