from trailkeeper.core.db.base import Base

__all__ = ["Base"]
