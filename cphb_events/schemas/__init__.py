"""Pydantic schemas package.

Folder intent:
  common.py    — CamelModel base, HealthResponse, SyncStatus
  event.py     — event form (validated submission) and event views
  layout.py    — furniture items, public layouts
  workflow.py  — approval packages, permissions, callbacks, void reasons
  auth.py      — session status
"""
