"""
TalentDesk Backend: Application Package
=======================================

What: Recruiting CRM API (candidates, pipelines, stages, notes, attachments,
      tags, CV imports, email templates) guarded by role-based access control.
Who:  Imported by uvicorn (`talentdesk.main:app`), Alembic, and pytest.

Layering:
    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  HTTP concerns only
    ├─────────────────────────────────────┤
    │   Dependencies (session + RBAC)     │  who is calling, may they?
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  duplicates, merge, search, ...
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  one async session per request
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
