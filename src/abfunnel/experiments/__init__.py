"""Experiment lifecycle.

- service: create, inspect, pause/resume, declare winner, delete
- winner: completion primitive shared with the scheduler
- suggest: optional copy ideas for a tested field
"""
