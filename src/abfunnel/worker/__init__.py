"""Scheduled experiment evaluation.

Performs the periodic significance check and auto-declares winners.
Forbidden: HTTP concerns.
"""
