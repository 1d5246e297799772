"""
Pilsa Backend — ORM Models
===========================

Importing this package registers every table with `Base.metadata`, which
Alembic needs for autogenerate.
"""

from pilsa.models.church import Church, UserChurchMembership
from pilsa.models.credit import DailyCredit
from pilsa.models.kv import KVEntry
from pilsa.models.progress import TranscriptionProgress
from pilsa.models.user import User

__all__ = [
    "Church",
    "DailyCredit",
    "KVEntry",
    "TranscriptionProgress",
    "User",
    "UserChurchMembership",
]
