"""
Komuchi API — Application Package
==================================

What: Backend for recording capture, transcription, AI debriefs and chat.

Layout:
    ┌─────────────────────────────────────┐
    │   Routes (FastAPI, HTTP concerns)   │
    ├─────────────────────────────────────┤
    │   Services (business rules)         │
    ├──────────────────┬──────────────────┤
    │ Models / Schemas │ Workers (RQ jobs)│
    ├──────────────────┴──────────────────┤
    │   Database (async SQLAlchemy)       │
    └─────────────────────────────────────┘

    Routes never touch the ORM directly; services receive an AsyncSession
    and return ORM objects or schema models. Workers reuse the same services
    from a separate process.
"""

__version__ = "1.0.0"
