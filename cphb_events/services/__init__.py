"""Services package — all business logic lives here, never in routers.

Files:
  tokens.py         — token store interface and token types
  identity.py       — campus OAuth2 client, application token cache
  session_guard.py  — per-request token check and refresh
  workflow.py       — approval routing client
  document_sync.py  — SharePoint list mirror
  validation.py     — event form rules and projections
  pipeline.py       — ordered stage runner
  events.py         — event pipelines and queries
  layouts.py        — layout queries and public layouts

Rule: routers call services, services call repositories, repositories call the DB.
      No SQLAlchemy queries in routers. No FastAPI imports in services.
"""
