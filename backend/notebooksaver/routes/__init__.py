# Routes package init
"""
NotebookSaver Backend — API Routes Package
============================================

Route Inventory:
    - extract.py:    POST /api/extract                      (image → text → Drafts)
    - handoff.py:    POST /api/handoff/drafts               (submit text directly)
                     GET  /api/handoff/queue                (pending hand-offs)
                     POST /api/host/foreground|background   (lifecycle events)
                     POST /api/notifications/{id}/open      (notification tapped)
    - models.py:     GET  /api/models, POST /api/models/refresh
    - telemetry.py:  GET  /api/telemetry/sessions|report, DELETE /api/telemetry/sessions
    - health.py:     GET  /health

Routes stay THIN: pull the services off the container, call them, shape the
response. Business logic belongs in services.
"""
