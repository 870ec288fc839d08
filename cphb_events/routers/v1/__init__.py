"""v1 router package — all /api/v1/* endpoints live here.

Files:
  auth.py      — login, logout, session status
  events.py    — event pipelines and queries
  layouts.py   — layout queries, public layouts
  workflow.py  — Workflow callbacks and inbox redirects

Rule: Routers only handle HTTP (request parsing, response shaping).
      All business logic delegates to cphb_events/services/.
"""
