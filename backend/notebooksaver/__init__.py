"""
NotebookSaver Backend — Application Package Initializer
=======================================================

What: Marks the `notebooksaver` directory as a Python package.
Why:  Enables module imports like `from notebooksaver.config import settings`.
Who:  Used implicitly by Python's import system and explicitly by Alembic, pytest, and uvicorn.

Architecture Note:
    The backend turns a photographed notebook page into text and hands that
    text to the Drafts note-taking app:

    ┌─────────────────────────────────────┐
    │        Routes (local HTTP API)      │  ← capture client, lifecycle, notifications
    ├─────────────────────────────────────┤
    │   Services (extraction + hand-off)  │  ← extractors, catalog, queue, telemetry
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │   Key-value store (Persistence)     │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

    Every service is constructed once in `services.container.ServiceContainer`
    and handed its collaborators explicitly, so each layer can be tested with
    fakes for the layer below it.
"""

__version__ = "1.0.0"
