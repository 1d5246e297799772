"""
Pilsa Backend — Pydantic Request/Response Schemas
==================================================

The web client speaks camelCase (`verseNum`, `isPrimary`, `avatarUrl`);
schemas deriving from `CamelModel` accept and emit those aliases while the
Python side keeps snake_case attribute names.
"""
