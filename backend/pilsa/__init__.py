"""
Pilsa Backend — Application Package Initializer
================================================

What:  Marks the `pilsa` directory as a Python package.
Who:   Imported by uvicorn (`pilsa.main:app`), Alembic, and pytest.

Architecture Note:
    The backend is layered the same way top to bottom:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns, auth dependency
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← membership rules, credit ledger
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

    Routes never build queries; services never look at HTTP headers.
"""

__version__ = "1.0.0"
