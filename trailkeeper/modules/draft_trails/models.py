"""
Draft Trail Models - relational layout of the draft trail collection
"""

from typing import Any, Optional
from sqlalchemy import BigInteger, Boolean, Integer, String, JSON
from sqlalchemy.orm import Mapped, mapped_column

from trailkeeper.core.db.base import Base
from .records import DraftStatus


class DraftTrailRow(Base):
    """
    One draft trail.
    The opaque trail payload is stored as a JSON blob; timestamps are epoch
    milliseconds, matching the file layout.
    """
    __tablename__ = "draft_trails"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    reference_code: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False)
    owner_email: Mapped[str] = mapped_column(String(320), nullable=False, index=True)
    payload: Mapped[Any] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=DraftStatus.DRAFT.value)
    is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    paid_at: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    expires_at: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    def __repr__(self) -> str:
        return f"<DraftTrailRow(code='{self.reference_code}', status='{self.status}', version={self.version})>"
