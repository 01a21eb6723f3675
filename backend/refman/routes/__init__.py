# Routes package init
"""
RefMan Backend — API Routes Package
=====================================

Route Inventory:
    - entries.py:   /api/entries, /api/dump, /api/search   (relational backend)
    - keywords.py:  /api/keywords                         (keyword vocabulary and per-entry sets)
    - items.py:     /api/v0/items                         (flat-file backend)
    - utils.py:     /api/utils/metadata, /api/utils/archive
    - health.py:    /health

Routes stay thin: extract request data, call a service, choose the status
code. Business rules live in refman.services.
"""
