"""Persistence: schema, session management, repository functions."""
