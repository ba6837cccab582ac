"""API module for abfunnel.

API layer boundary:
- Resolves the caller, validates inputs, calls the experiment service
- Maps domain errors to HTTP status codes
- Forbidden: statistics, direct SQL
"""
