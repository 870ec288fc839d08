"""Routers package — HTTP endpoint definitions.

Files:
  deps.py  — shared dependencies (collaborators, session guard, services)
  v1/      — Versioned API routes (/api/v1/*)
"""
