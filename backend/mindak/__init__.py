"""
Mindak Reservations Backend — Application Package Initializer
=============================================================

What: Marks the `mindak` directory as a Python package.
Who:  Imported by uvicorn (`mindak.main:app`), Alembic and pytest.

Architecture Note:
    The backend is layered:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← forms, snapshots, workflow
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

    Services are plain module-level singletons. Routes receive the
    per-request database session through FastAPI's `Depends()`; there is
    no container or symbol registry.
"""

__version__ = "1.0.0"
