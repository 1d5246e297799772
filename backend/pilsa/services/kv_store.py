"""
Pilsa Backend — Legacy Key-Value Store
=======================================

What:  set/get/delete and their batch variants over the `kv_store` table,
       plus prefix scans.
Who:   CreditService mirrors transcriptions here and reads them back for
       the completed-verse map.

Keys are namespaced by convention:
    user:<authUserId>:transcription:<id>   one transcription record

Writes are upserts (`INSERT ... ON CONFLICT (key) DO UPDATE`), so `set` on
an existing key replaces its value.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pilsa.database import LIKE_ESCAPE, escape_like
from pilsa.exceptions import DatabaseError
from pilsa.models.kv import KVEntry

logger = logging.getLogger(__name__)


def transcription_key(auth_user_id: str, record_id: str) -> str:
    return f"user:{auth_user_id}:transcription:{record_id}"


def transcription_prefix(auth_user_id: str) -> str:
    return f"user:{auth_user_id}:transcription:"


class KVStore:
    """Stateless accessor; every call takes the request's session."""

    async def set(self, db: AsyncSession, key: str, value: Any) -> None:
        await self.mset(db, {key: value})

    async def get(self, db: AsyncSession, key: str) -> Optional[Any]:
        try:
            result = await db.execute(select(KVEntry.value).where(KVEntry.key == key))
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise self._db_error("get", e)

    async def delete(self, db: AsyncSession, key: str) -> None:
        await self.mdel(db, [key])

    async def mset(self, db: AsyncSession, items: Dict[str, Any]) -> None:
        if not items:
            return
        stmt = pg_insert(KVEntry).values(
            [{"key": key, "value": value} for key, value in items.items()]
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[KVEntry.key],
            set_={"value": stmt.excluded.value},
        )
        try:
            await db.execute(stmt)
        except SQLAlchemyError as e:
            raise self._db_error("mset", e, count=len(items))

    async def mget(self, db: AsyncSession, keys: List[str]) -> List[Any]:
        """Values for the keys that exist, in the order the keys were given."""
        if not keys:
            return []
        try:
            result = await db.execute(
                select(KVEntry.key, KVEntry.value).where(KVEntry.key.in_(keys))
            )
            found = {row.key: row.value for row in result}
        except SQLAlchemyError as e:
            raise self._db_error("mget", e, count=len(keys))
        return [found[key] for key in keys if key in found]

    async def mdel(self, db: AsyncSession, keys: List[str]) -> None:
        if not keys:
            return
        try:
            await db.execute(delete(KVEntry).where(KVEntry.key.in_(keys)))
        except SQLAlchemyError as e:
            raise self._db_error("mdel", e, count=len(keys))

    async def get_by_prefix(self, db: AsyncSession, prefix: str) -> List[Any]:
        """Values of every key starting with `prefix`, ordered by key."""
        pattern = escape_like(prefix) + "%"
        try:
            result = await db.execute(
                select(KVEntry.value)
                .where(KVEntry.key.like(pattern, escape=LIKE_ESCAPE))
                .order_by(KVEntry.key)
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise self._db_error("get_by_prefix", e)

    @staticmethod
    def _db_error(operation: str, error: Exception, **context: Any) -> DatabaseError:
        logger.error("kv_store %s failed: %s", operation, str(error))
        return DatabaseError(
            context={"operation": f"kv_store.{operation}", "error_type": type(error).__name__, **context},
        )


kv_store = KVStore()
