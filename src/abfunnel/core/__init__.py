"""Pure domain logic: significance testing and the error taxonomy.

Forbidden: database access, network calls.
"""
