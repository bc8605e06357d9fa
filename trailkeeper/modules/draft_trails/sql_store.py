"""
Relational draft trail backend (SQLAlchemy async).

Same contract as JsonFileDraftStore. Each primitive runs in its own short
transaction; updates carry a version check so writers in other processes
cannot silently overwrite each other.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from trailkeeper.core.clock import Clock
from trailkeeper.core.exceptions import ConflictError, StorageFailureError
from .models import DraftTrailRow
from .records import DraftStatus, DraftTrail
from .store import DraftStore

logger = logging.getLogger(__name__)


def _to_record(row: DraftTrailRow) -> DraftTrail:
    return DraftTrail(
        reference_code=row.reference_code,
        owner_id=row.owner_id,
        owner_email=row.owner_email,
        payload=row.payload,
        status=DraftStatus(row.status),
        is_paid=row.is_paid,
        paid_at=row.paid_at,
        created_at=row.created_at,
        expires_at=row.expires_at,
        version=row.version,
    )


def _to_columns(changes: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: value.value if isinstance(value, DraftStatus) else value
        for key, value in changes.items()
    }


class SqlDraftStore(DraftStore):
    """
    Draft trails in the `draft_trails` table.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock,
        timeout_seconds: float = 5.0,
        engine: Optional[AsyncEngine] = None,
    ) -> None:
        super().__init__(clock, timeout_seconds)
        self._session_factory = session_factory
        self._engine = engine

    async def _transaction(self, work):
        """
        Run `work(session)` in one transaction.
        Rollback on any exception; database errors become StorageFailureError.
        """
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    return await work(session)
        except SQLAlchemyError as e:
            logger.error("Draft trail database operation failed: %s", e)
            raise StorageFailureError("Database operation failed") from e

    async def _put(self, record: DraftTrail) -> DraftTrail:
        async def _upsert(db: AsyncSession) -> DraftTrail:
            result = await db.execute(
                select(DraftTrailRow).where(DraftTrailRow.reference_code == record.reference_code)
            )
            row = result.scalar_one_or_none()
            values = _to_columns(record.model_dump(exclude={"days_remaining"}))

            if row is None:
                row = DraftTrailRow(**values)
                db.add(row)
            else:
                values["version"] = row.version + 1
                for field, value in values.items():
                    setattr(row, field, value)

            await db.flush()
            return _to_record(row)

        return await self._transaction(_upsert)

    async def _fetch(self, code: str) -> Optional[DraftTrail]:
        async def _find(db: AsyncSession) -> Optional[DraftTrail]:
            result = await db.execute(
                select(DraftTrailRow).where(DraftTrailRow.reference_code == code)
            )
            row = result.scalar_one_or_none()
            return _to_record(row) if row else None

        return await self._transaction(_find)

    async def _remove(self, code: str) -> bool:
        async def _delete(db: AsyncSession) -> bool:
            result = await db.execute(
                delete(DraftTrailRow).where(DraftTrailRow.reference_code == code)
            )
            return result.rowcount > 0

        return await self._transaction(_delete)

    async def _remove_if_expired(self, code: str, now_ms: int) -> bool:
        async def _delete_expired(db: AsyncSession) -> bool:
            result = await db.execute(
                delete(DraftTrailRow).where(
                    DraftTrailRow.reference_code == code,
                    DraftTrailRow.expires_at < now_ms,
                )
            )
            return result.rowcount > 0

        return await self._transaction(_delete_expired)

    async def _all(self) -> List[DraftTrail]:
        async def _find_all(db: AsyncSession) -> List[DraftTrail]:
            result = await db.execute(
                select(DraftTrailRow).order_by(DraftTrailRow.created_at, DraftTrailRow.id)
            )
            return [_to_record(row) for row in result.scalars().all()]

        return await self._transaction(_find_all)

    async def _remove_expired(self, now_ms: int) -> int:
        async def _sweep(db: AsyncSession) -> int:
            result = await db.execute(
                delete(DraftTrailRow).where(DraftTrailRow.expires_at < now_ms)
            )
            return result.rowcount

        return await self._transaction(_sweep)

    async def _apply(self, code: str, changes: Dict[str, Any], expected_version: int) -> Optional[DraftTrail]:
        async def _update(db: AsyncSession) -> Optional[DraftTrail]:
            result = await db.execute(
                update(DraftTrailRow)
                .where(
                    DraftTrailRow.reference_code == code,
                    DraftTrailRow.version == expected_version,
                )
                .values(**_to_columns(changes), version=expected_version + 1)
            )
            row = (
                await db.execute(select(DraftTrailRow).where(DraftTrailRow.reference_code == code))
            ).scalar_one_or_none()

            if result.rowcount == 0:
                if row is None:
                    return None
                raise ConflictError("Draft trail was modified concurrently, retry the request")
            return _to_record(row)

        return await self._transaction(_update)

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
