# Routes package init
"""
TalentDesk Backend: API Routes Package
======================================

Route Inventory:
    - health.py:       GET  /health
    - auth.py:         /api/auth/login, /logout, /me
    - users.py:        /api/users, invitations
    - pipelines.py:    /api/pipelines, stages, pipeline candidates
    - candidates.py:   /api/candidates (duplicates, merge, bulk, detail, move)
    - activity.py:     notes, tags, attachments and emails of a candidate
    - tags.py:         /api/tags
    - templates.py:    /api/templates
    - search.py:       /api/search, /api/saved-searches
    - analytics.py:    /api/analytics, /api/audit-logs
    - imports.py:      /api/imports

Routes stay thin: they declare the permission they need, pull data out of
the request and hand it to a service. Business rules live in services.
"""
