# Middleware package init
"""
NotebookSaver Backend — Middleware Package
============================================

Middleware Chain (order matters!):
    Request → [Request ID] → [Logging] → Route Handler

    1. Request ID: generate the correlation ID first
    2. Logging: log method, path, status and duration with that ID
"""
