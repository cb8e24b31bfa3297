"""
Climapp Backend: Application Package Initializer
=================================================

What: Backend-for-frontend for the Climapp field-service app (HVAC and
      refrigeration technicians).
Who:  Imported by uvicorn (`climapp.main:app`), Alembic and pytest.

Architecture Note:
    The backend is layered the same way for every feature:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← Pipeline, adapters, CRUD rules
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │   Database / Upstream APIs          │  ← PostgreSQL, Gemini, Deepgram,
    │                                     │    Firebase, Cloudinary
    └─────────────────────────────────────┘

    The voice-memo pipeline (services/audio_pipeline.py) is the only piece
    with real structure: validate → transcribe → extract → filter → assemble.
    Everything else is a thin wrapper around one managed service.
"""

__version__ = "1.0.0"
