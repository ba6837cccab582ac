"""Copy-suggestion providers.

Narrow interface `suggest(context) -> suggestions`.
Forbidden: database writes, statistics.
"""
