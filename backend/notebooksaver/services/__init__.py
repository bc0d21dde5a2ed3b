# Services package init
"""
NotebookSaver Backend — Services Layer
========================================

What:  Business logic between the HTTP routes and the key-value store.
How:   Services receive their collaborators in the constructor; the
       ServiceContainer wires one instance of each at startup.

Service Inventory:
    - TextExtractor (abstract): capture image → text
        - CloudExtractor: Gemini generateContent over REST
        - LocalExtractor: on-device OCR (Tesseract)
    - ModelCatalogService: Gemini model discovery with a persisted cache
    - DraftHandoffQueue: durable hand-off of text to the Drafts app
    - HandoffNotifier: "result ready" notifications and their tap events
    - TelemetryService: per-operation timing sessions with device context
    - ExtractionPipeline: extract → (archive photo) → hand off
    - KeyValueStore: the one persistence seam (get / set / remove)
"""
